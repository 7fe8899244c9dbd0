"""
Morphological cleanup of binary masks.
"""

import cv2
import numpy as np

from ..buffer import SampleBuffer

LARGE_IMAGE_PIXELS = 1_000_000
SMALL_KERNEL = 3
LARGE_KERNEL = 5
SMALL_KERNEL_LARGE_IMAGE = 5
LARGE_KERNEL_LARGE_IMAGE = 7


def cleanup_kernel_sizes(rows, cols):
    """(opening/median kernel, closing kernel) for an image of the given size."""
    if rows * cols > LARGE_IMAGE_PIXELS:
        return SMALL_KERNEL_LARGE_IMAGE, LARGE_KERNEL_LARGE_IMAGE
    return SMALL_KERNEL, LARGE_KERNEL


def cleanup_mask(mask):
    """
    Remove speckle and fill small gaps in a 0/255 mask.

    Opening with the small elliptical kernel, closing with the larger one,
    then a median filter of the small kernel size.

    Args:
        mask (SampleBuffer): Single-channel 0/255 mask.

    Returns:
        SampleBuffer: New cleaned mask, still strictly 0/255.
    """
    small, large = cleanup_kernel_sizes(mask.rows, mask.cols)
    small_kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (small, small))
    large_kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (large, large))

    opened = cv2.morphologyEx(mask.data, cv2.MORPH_OPEN, small_kernel)
    closed = cv2.morphologyEx(opened, cv2.MORPH_CLOSE, large_kernel)
    cleaned = cv2.medianBlur(closed, small)

    # Inputs with values other than 0/255 still come out binary
    return SampleBuffer(np.where(cleaned > 127, 255, 0).astype(np.uint8))
