"""
Per-pixel neighborhood aggregates used as the second 2D histogram axis.
"""

import cv2
import numpy as np
from loguru import logger
from scipy import ndimage as ndi

from ..buffer import SampleBuffer
from .integral import IntegralImage

MIN_WINDOW = 3
MAX_WINDOW = 31
METRICS = ('mean', 'median', 'gaussian')


def normalize_window_size(window_size):
    """Force an odd window size within [3, 31]; even sizes move up by one."""
    window_size = int(window_size)
    if window_size % 2 == 0:
        window_size += 1
    return max(MIN_WINDOW, min(window_size, MAX_WINDOW))


def neighborhood_feature(buffer, window_size=7, metric='mean'):
    """
    Aggregate each pixel's square neighborhood.

    Args:
        buffer (SampleBuffer): Single-channel input.
        window_size (int): Window side length; even values are bumped to the
            next odd value and the result is clamped to [3, 31].
        metric (str): 'mean' (integral image, border-clipped windows),
            'median' (windowed sort) or 'gaussian' (sigma = window / 3).
            Unknown metrics fall back to 'mean'.

    Returns:
        SampleBuffer: Same-size uint8 feature image.
    """
    window_size = normalize_window_size(window_size)
    if metric not in METRICS:
        logger.debug(f"Unknown neighbourhood metric '{metric}', using mean")
        metric = 'mean'

    gray = buffer.data
    if metric == 'median':
        feature = ndi.median_filter(gray, size=window_size, mode='nearest')
    elif metric == 'gaussian':
        sigma = window_size / 3.0
        feature = cv2.GaussianBlur(gray, (window_size, window_size), sigma, sigma, borderType=cv2.BORDER_DEFAULT)
    else:
        sums, areas = IntegralImage(gray).box_sums(window_size // 2)
        feature = (sums // areas).astype(np.uint8)

    return SampleBuffer(np.ascontiguousarray(feature, dtype=np.uint8))
