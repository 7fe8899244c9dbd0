"""
Iterative triclass thresholding.

Each pass thresholds the current working region, commits pixels well above
the threshold to the foreground, drops pixels well below it, and carries the
uncertain band in between (to-be-determined, TBD) into the next pass.
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import List

import numpy as np
from loguru import logger

from ..buffer import SampleBuffer
from ..processing.filters import PreprocessingChain, guided_filter, non_local_means
from ..processing.histogram import MAX_INTENSITY, region_bin_count, region_histogram
from ..processing.threshold import select_threshold
from .base import BaseSegmenter
from .params import TriclassParams

REQUIRED_STABLE_ITERATIONS = 2

# Thresholds in dark or bright regions get a wider or narrower TBD band
DARK_REGION_LIMIT = 64.0
BRIGHT_REGION_LIMIT = 192.0
DARK_GAP_MULTIPLIER = 1.3
BRIGHT_GAP_MULTIPLIER = 0.7


class TriclassState(Enum):
    ACTIVE = 'active'
    CONVERGED = 'converged'
    EXHAUSTED = 'exhausted'
    MAX_ITERATIONS = 'max_iterations'
    EMPTY = 'empty'


@dataclass
class ConvergenceState:
    """Threshold stability tracking across passes."""

    previous_threshold: float = -1.0
    stable_iterations: int = 0

    def update(self, threshold, precision):
        """
        Record a new threshold.

        Returns:
            bool: True once the threshold moved less than ``precision`` on
            ``REQUIRED_STABLE_ITERATIONS`` consecutive passes.
        """
        if abs(threshold - self.previous_threshold) < precision:
            self.stable_iterations += 1
        else:
            self.stable_iterations = 0
        self.previous_threshold = threshold
        return self.stable_iterations >= REQUIRED_STABLE_ITERATIONS


@dataclass
class TriclassResult:
    mask: np.ndarray
    state: TriclassState
    iterations: int
    thresholds: List[float] = field(default_factory=list)
    tbd_fraction: float = 1.0


def adaptive_bounds(threshold, class_separation):
    """
    Lower and upper bounds of the TBD band around a threshold.

    Args:
        threshold (float): Region threshold on the 0-255 scale.
        class_separation (float): Relative half-width of the band.

    Returns:
        tuple: (lower, upper), both clamped to [0, 255].
    """
    gap = class_separation
    if threshold < DARK_REGION_LIMIT:
        gap *= DARK_GAP_MULTIPLIER
    elif threshold > BRIGHT_REGION_LIMIT:
        gap *= BRIGHT_GAP_MULTIPLIER

    lower = max(0.0, threshold * (1.0 - gap))
    upper = min(MAX_INTENSITY, threshold * (1.0 + gap))
    return lower, upper


def split_region(region, lower, upper):
    """
    Partition the non-zero pixels of a region.

    Returns:
        tuple: Boolean (foreground, background, tbd) masks. Every non-zero
        pixel lands in exactly one of them; zero pixels in none.
    """
    inside = region > 0
    foreground = inside & (region > upper)
    background = inside & (region < lower)
    tbd = inside & ~foreground & ~background
    return foreground, background, tbd


class TriclassSegmenter(BaseSegmenter):
    """Iterative triclass segmentation with adaptive TBD bands."""

    params_class = TriclassParams

    def preprocessing_chain(self):
        p = self.params
        return (
            PreprocessingChain()
            .add(
                'guided_filter',
                partial(guided_filter, radius=p.guided_radius, epsilon=p.guided_epsilon),
                p.preprocessing and p.guided_filtering,
            )
            .add('non_local_means', non_local_means, p.preprocessing and p.noise_robustness)
        )

    def iterate(self, working):
        """
        Run the triclass passes on a preprocessed image.

        Args:
            working (numpy.ndarray): Preprocessed uint8 image.

        Returns:
            TriclassResult: Accumulated foreground mask and loop diagnostics.
        """
        p = self.params
        total = working.size
        foreground = np.zeros(working.shape, dtype=bool)
        region = working.copy()
        convergence = ConvergenceState()
        thresholds = []
        tbd_fraction = 1.0
        completed = 0
        state = TriclassState.MAX_ITERATIONS

        for iteration in range(p.max_iterations):
            self._checkpoint(f'triclass_iteration_{iteration}')

            if not np.any(region):
                state = TriclassState.EMPTY
                break

            bins = p.histogram_bins or region_bin_count(region)
            threshold, method = select_threshold(region_histogram(region, bins), p.initial_threshold_method)
            thresholds.append(threshold)

            if convergence.update(threshold, p.convergence_precision):
                state = TriclassState.CONVERGED
                break

            lower, upper = adaptive_bounds(threshold, p.class_separation)
            region_fg, region_bg, tbd = split_region(region, lower, upper)
            foreground |= region_fg
            completed += 1

            tbd_count = int(np.count_nonzero(tbd))
            tbd_fraction = tbd_count / total
            logger.debug(
                f"Triclass pass {iteration}: {bins} bins, {method} threshold {threshold:.2f}, "
                f"band [{lower:.1f}, {upper:.1f}], fg {np.count_nonzero(region_fg)}, "
                f"bg {np.count_nonzero(region_bg)}, tbd {tbd_count}"
            )
            self._report(0.3 + 0.6 * (iteration + 1) / p.max_iterations)

            if tbd_fraction < p.minimum_tbd_fraction:
                state = TriclassState.EXHAUSTED
                break

            region = np.where(tbd, working, 0).astype(np.uint8)

        logger.debug(f"Triclass stopped: {state.value} after {completed} passes")
        return TriclassResult(
            mask=np.where(foreground, 255, 0).astype(np.uint8),
            state=state,
            iterations=completed,
            thresholds=thresholds,
            tbd_fraction=tbd_fraction,
        )

    def binarize(self, working):
        result = self.iterate(working.data)
        with self._stage('mask_output', 0.95):
            return SampleBuffer(result.mask)

    def analyze(self, image):
        """
        Segment an image and return the loop diagnostics alongside the mask.

        Args:
            image (numpy.ndarray): Input image.

        Returns:
            TriclassResult: Result with the raw (uncleaned) mask.
        """
        with SampleBuffer.from_array(image) as buffer:
            self._validate_input(buffer)
            with self.preprocess_input(buffer) as working:
                return self.iterate(working.data)
