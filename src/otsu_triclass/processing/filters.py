"""
Grayscale conversion and the preprocessing filter chain.
"""

import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import cv2
import numpy as np
from loguru import logger

from ..buffer import SampleBuffer
from ..errors import InvalidInputError, ProcessingError
from .integral import IntegralImage, box_variance

# Median/Gaussian blend used for impulse-noise robustness
BLEND_MEDIAN_KERNEL = 3
BLEND_GAUSSIAN_KERNEL = 3
BLEND_GAUSSIAN_SIGMA = 0.8
BLEND_MEDIAN_WEIGHT = 0.6
BLEND_GAUSSIAN_WEIGHT = 0.4

# Non-local means settings: filter strength, patch size, search area
NLM_STRENGTH = 10.0
NLM_TEMPLATE_WINDOW = 7
NLM_SEARCH_WINDOW = 21

GAUSSIAN_MIN_KERNEL = 3
GAUSSIAN_MAX_KERNEL = 15


def to_grayscale(buffer):
    """
    Collapse a 1, 3 or 4 channel buffer to single-channel intensity.

    Args:
        buffer (SampleBuffer): Input in BGR / BGRA channel order when multi-channel.

    Returns:
        SampleBuffer: New single-channel buffer; a copy when the input is already gray.
    """
    channels = buffer.channels
    if channels == 1:
        return buffer.clone()
    if channels == 3:
        return SampleBuffer(cv2.cvtColor(buffer.data, cv2.COLOR_BGR2GRAY))
    if channels == 4:
        return SampleBuffer(cv2.cvtColor(buffer.data, cv2.COLOR_BGRA2GRAY))
    raise InvalidInputError(f"unsupported channel count: {channels}")


def apply_clahe(buffer, clip_limit=3.0, tile_size=8):
    """Contrast Limited Adaptive Histogram Equalization."""
    clahe = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=(tile_size, tile_size))
    return SampleBuffer(clahe.apply(buffer.data))


def guided_filter(buffer, radius, epsilon):
    """
    Self-guided edge-preserving filter.

    For every pixel the window of the given radius is fitted with a local
    linear model q = a * I + b where

        a = cov(I, P) / (var(I) + epsilon),  b = mean(P) - a * mean(I)

    with the guide I equal to the input P. Window statistics come from four
    integral images (I, I^2, P, I*P) so the cost per pixel is constant.
    Intensities are scaled to [0, 1] so that epsilon is independent of the
    8-bit range: small values keep texture, large values smooth harder.

    Args:
        buffer (SampleBuffer): Single-channel input.
        radius (int): Window radius.
        epsilon (float): Regularization constant.

    Returns:
        SampleBuffer: Filtered image clamped to [0, 255].
    """
    guide = buffer.data.astype(np.float64) / 255.0
    source = guide

    mean_i, var_i = box_variance(guide, radius)
    mean_p = IntegralImage(source).box_means(radius)
    mean_ip = IntegralImage(guide * source).box_means(radius)

    cov_ip = mean_ip - mean_i * mean_p

    a = cov_ip / (var_i + epsilon)
    b = mean_p - a * mean_i
    filtered = (a * guide + b) * 255.0

    return SampleBuffer(np.clip(np.rint(filtered), 0, 255).astype(np.uint8))


def gaussian_kernel_size(sigma):
    """Odd kernel size covering +-3 sigma, kept within [3, 15]."""
    size = int(sigma * 6) + 1
    if size % 2 == 0:
        size += 1
    return max(GAUSSIAN_MIN_KERNEL, min(size, GAUSSIAN_MAX_KERNEL))


def gaussian_blur(buffer, sigma):
    size = gaussian_kernel_size(sigma)
    blurred = cv2.GaussianBlur(buffer.data, (size, size), sigma, sigma, borderType=cv2.BORDER_DEFAULT)
    return SampleBuffer(blurred)


def median_gaussian_blend(buffer):
    """
    Impulse-noise robust smoothing.

    A 3x3 median removes salt-and-pepper outliers, a light Gaussian of the
    median restores spatial correlation, and the two are mixed 60/40.
    """
    median = cv2.medianBlur(buffer.data, BLEND_MEDIAN_KERNEL)
    gaussian = cv2.GaussianBlur(
        median,
        (BLEND_GAUSSIAN_KERNEL, BLEND_GAUSSIAN_KERNEL),
        BLEND_GAUSSIAN_SIGMA,
        BLEND_GAUSSIAN_SIGMA,
        borderType=cv2.BORDER_DEFAULT,
    )
    blended = BLEND_MEDIAN_WEIGHT * median.astype(np.float64) + BLEND_GAUSSIAN_WEIGHT * gaussian
    return SampleBuffer(np.clip(blended, 0, 255).astype(np.uint8))


def non_local_means(buffer):
    denoised = cv2.fastNlMeansDenoising(
        buffer.data,
        None,
        h=NLM_STRENGTH,
        templateWindowSize=NLM_TEMPLATE_WINDOW,
        searchWindowSize=NLM_SEARCH_WINDOW,
    )
    return SampleBuffer(denoised)


@dataclass
class PreprocessingStep:
    name: str
    func: Callable[[SampleBuffer], SampleBuffer]
    enabled: bool = True


class PreprocessingChain:
    """
    Ordered, individually toggleable filter steps.

    Each step reads the previous output and produces a new buffer; the input
    handed to ``run`` is never modified. Disabled steps pass a clone through.
    Intermediate buffers are closed as soon as they are superseded, and on
    failure every buffer the chain created is closed before the error
    propagates.
    """

    def __init__(self, steps: Optional[List[PreprocessingStep]] = None):
        self.steps = list(steps or [])

    def add(self, name, func, enabled=True):
        self.steps.append(PreprocessingStep(name, func, enabled))
        return self

    @property
    def enabled_steps(self):
        return [step.name for step in self.steps if step.enabled]

    def run(self, source, checkpoint=None):
        """
        Apply every step in order.

        Args:
            source (SampleBuffer): Single-channel input, left untouched.
            checkpoint (callable, optional): Called with the step name before
                each step; raising from it aborts the chain.

        Returns:
            SampleBuffer: A new buffer owned by the caller.
        """
        current = source
        try:
            for step in self.steps:
                if checkpoint is not None:
                    checkpoint(step.name)

                if step.enabled:
                    start = time.perf_counter()
                    try:
                        output = step.func(current)
                    except (MemoryError, cv2.error) as e:
                        raise ProcessingError(step.name, e) from e
                    logger.debug(f"Preprocessing step '{step.name}' took {time.perf_counter() - start:.4f}s")
                else:
                    output = current.clone()

                if current is not source:
                    current.close()
                current = output
        except BaseException:
            if current is not source:
                current.close()
            raise

        if current is source:
            return source.clone()
        return current
