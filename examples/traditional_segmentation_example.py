#!/usr/bin/env python3
"""
Example script comparing 2D Otsu and iterative triclass segmentation.
"""

import os
import sys

import cv2
import matplotlib.pyplot as plt
import numpy as np

# Add the project root directory to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(project_root)
sys.path.append(os.path.join(project_root, 'src'))

from configs.default_config import TRADITIONAL_CONFIG
from otsu_triclass import TraditionalSegmenterFactory, TriclassSegmenter
from otsu_triclass.utils import mask_metrics


def create_example_image(size=400, seed=0):
    """
    Create a synthetic test image with known ground truth.

    Bright elliptical blobs on a noisy background with a left-to-right
    illumination gradient, the case where a single global threshold struggles.

    Returns:
        tuple: (BGR image, ground truth mask)
    """
    rng = np.random.default_rng(seed)
    y, x = np.mgrid[0:size, 0:size]

    background = 40 + 50 * (x / size)
    image = background + rng.normal(0, 8, (size, size))
    truth = np.zeros((size, size), dtype=bool)

    for _ in range(15):
        center_x, center_y = rng.integers(40, size - 40, size=2)
        a, b = rng.integers(10, 30, size=2)
        angle = rng.uniform(0, np.pi)

        x_r = (x - center_x) * np.cos(angle) + (y - center_y) * np.sin(angle)
        y_r = -(x - center_x) * np.sin(angle) + (y - center_y) * np.cos(angle)
        blob = (x_r ** 2) / (a ** 2) + (y_r ** 2) / (b ** 2) <= 1

        image[blob] = rng.integers(150, 230) + rng.normal(0, 8, np.count_nonzero(blob))
        truth |= blob

    image = np.clip(image, 0, 255).astype(np.uint8)
    return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR), truth.astype(np.uint8) * 255


def display_results(image, results, truth):
    """
    Display the original image and segmentation results.

    Args:
        image (numpy.ndarray): Original input image
        results (dict): Dictionary of segmentation results
        truth (numpy.ndarray): Ground truth mask
    """
    n_panels = len(results) + 2
    fig, axes = plt.subplots(1, n_panels, figsize=(n_panels * 4, 4))

    axes[0].imshow(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
    axes[0].set_title('Original Image')
    axes[1].imshow(truth, cmap='gray')
    axes[1].set_title('Ground Truth')

    for axis, (method_name, mask) in zip(axes[2:], results.items()):
        scores = mask_metrics(mask, truth)
        axis.imshow(mask, cmap='gray')
        axis.set_title(f"{method_name} (dice {scores['dice']:.3f})")

    for axis in axes:
        axis.axis('off')

    plt.tight_layout()
    plt.show()


def main():
    image, truth = create_example_image()

    factory = TraditionalSegmenterFactory(
        TRADITIONAL_CONFIG,
        status_callback=lambda status: print(f"  {status}"),
    )
    results = factory.segment(image)

    for method_name, mask in results.items():
        scores = mask_metrics(mask, truth)
        print(f"{method_name}: " + ", ".join(f"{key} {value:.3f}" for key, value in scores.items()))

    # The triclass loop can also report how it terminated
    diagnostics = TriclassSegmenter(TRADITIONAL_CONFIG['triclass']).analyze(image)
    print(
        f"triclass stopped with state '{diagnostics.state.value}' after {diagnostics.iterations} passes, "
        f"thresholds {[round(t, 1) for t in diagnostics.thresholds]}"
    )

    display_results(image, results, truth)


if __name__ == "__main__":
    main()
