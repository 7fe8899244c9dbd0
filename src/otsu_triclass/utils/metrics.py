"""
Image quality and mask agreement metrics.
"""

from typing import Dict

import cv2
import numpy as np
from skimage.metrics import peak_signal_noise_ratio, structural_similarity

SSIM_WINDOW = 7


def _as_gray(image: np.ndarray) -> np.ndarray:
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if image.ndim == 3:
        return image[:, :, 0]
    return image


def _aligned_pair(reference: np.ndarray, processed: np.ndarray):
    """Grayscale both images and resize ``processed`` to the reference size if needed."""
    reference = _as_gray(reference).astype(np.uint8)
    processed = _as_gray(processed).astype(np.uint8)
    if processed.shape != reference.shape:
        processed = cv2.resize(processed, (reference.shape[1], reference.shape[0]), interpolation=cv2.INTER_LINEAR)
    return reference, processed


def psnr(reference: np.ndarray, processed: np.ndarray) -> float:
    """
    Peak signal-to-noise ratio in dB on the 0-255 scale.

    Returns:
        float: ``inf`` for identical images.
    """
    reference, processed = _aligned_pair(reference, processed)
    if np.array_equal(reference, processed):
        return float('inf')
    return float(peak_signal_noise_ratio(reference, processed, data_range=255))


def ssim(reference: np.ndarray, processed: np.ndarray) -> float:
    """Structural similarity index; 1.0 for identical images."""
    reference, processed = _aligned_pair(reference, processed)
    # The window must fit the image and be odd
    win_size = min(SSIM_WINDOW, *reference.shape)
    if win_size % 2 == 0:
        win_size -= 1
    if win_size < 3:
        return 1.0 if np.array_equal(reference, processed) else 0.0
    return float(structural_similarity(reference, processed, win_size=win_size, data_range=255))


def mask_metrics(predicted: np.ndarray, ground_truth: np.ndarray) -> Dict[str, float]:
    """
    Agreement between a predicted mask and a ground-truth mask.

    Both masks are binarized with ``> 0``. Ratios with an empty denominator
    are 1.0 when both masks are empty and 0.0 otherwise.

    Returns:
        dict: 'dice', 'iou', 'precision' and 'recall'.
    """
    predicted = _as_gray(predicted) > 0
    ground_truth = _as_gray(ground_truth) > 0
    if predicted.shape != ground_truth.shape:
        raise ValueError(f"Mask shapes differ: {predicted.shape} vs {ground_truth.shape}")

    tp = float(np.count_nonzero(predicted & ground_truth))
    fp = float(np.count_nonzero(predicted & ~ground_truth))
    fn = float(np.count_nonzero(~predicted & ground_truth))
    both_empty = tp + fp + fn == 0

    def ratio(numerator, denominator):
        if denominator == 0:
            return 1.0 if both_empty else 0.0
        return numerator / denominator

    return {
        'dice': ratio(2 * tp, 2 * tp + fp + fn),
        'iou': ratio(tp, tp + fp + fn),
        'precision': ratio(tp, tp + fp),
        'recall': ratio(tp, tp + fn),
    }
