"""
2D Otsu segmentation over a joint (intensity, neighborhood) histogram.
"""

from functools import partial

import numpy as np
from loguru import logger

from ..buffer import SampleBuffer
from ..processing.filters import (
    PreprocessingChain,
    apply_clahe,
    gaussian_blur,
    guided_filter,
    median_gaussian_blend,
)
from ..processing.histogram import Histogram2D, adaptive_bin_count
from ..processing.neighborhood import neighborhood_feature
from ..processing.threshold import QUALITY_STEPS, apply_threshold_bilinear, find_otsu_2d_threshold
from .base import BaseSegmenter
from .params import Otsu2DParams


class Otsu2DSegmenter(BaseSegmenter):
    """
    Otsu thresholding extended to two dimensions.

    Each pixel is described by its intensity and a blend of its intensity with
    the aggregate of its neighborhood. The pair of thresholds maximizing the
    between-class separation of the joint histogram splits the image; a pixel
    is foreground only when both coordinates exceed their threshold.
    """

    params_class = Otsu2DParams

    def preprocessing_chain(self):
        p = self.params
        return (
            PreprocessingChain()
            .add('clahe', partial(apply_clahe, clip_limit=p.clahe_clip_limit, tile_size=p.clahe_tile_size), p.use_clahe)
            .add(
                'guided_filter',
                partial(guided_filter, radius=p.guided_radius, epsilon=p.guided_epsilon),
                p.guided_filtering,
            )
            .add(
                'gaussian_blur',
                partial(gaussian_blur, sigma=p.smoothing_sigma),
                p.gaussian_preprocessing and p.smoothing_sigma > 0,
            )
            .add('median_gaussian_blend', median_gaussian_blend, p.noise_robustness)
        )

    def feature_image(self, pixels, neighborhood):
        """
        Blend intensity and neighborhood aggregate into the second histogram axis.

        Args:
            pixels (numpy.ndarray): Preprocessed intensities.
            neighborhood (numpy.ndarray): Neighborhood aggregate of the same shape.

        Returns:
            numpy.ndarray: float64 feature values in [0, 255].
        """
        weight = self.params.pixel_weight_factor
        return weight * pixels.astype(np.float64) + (1.0 - weight) * neighborhood.astype(np.float64)

    def build_histogram(self, pixels, features):
        p = self.params
        bins = p.histogram_bins or adaptive_bin_count(pixels)
        histogram = Histogram2D.build(pixels, features, bins)
        # A single occupied cell stays unsmoothed so the search falls back to the midpoint
        if np.count_nonzero(histogram.counts) > 1:
            histogram.smooth(p.smoothing_sigma)
        if p.use_log_histogram:
            histogram.log_scale()
        if p.normalize_histogram:
            histogram.normalize()
        logger.debug(
            f"2D histogram: {bins} bins, smoothed={histogram.smoothed}, "
            f"log={histogram.log_scaled}, normalized={histogram.normalized}"
        )
        return histogram

    def compute_threshold(self, working):
        """
        Find the threshold pair for a preprocessed image.

        Args:
            working (SampleBuffer): Preprocessed single-channel image.

        Returns:
            tuple: (ThresholdPair, feature image as float64 array)
        """
        p = self.params
        with self._stage('neighborhood', 0.4):
            with neighborhood_feature(working, p.window_size, p.neighbourhood_metric) as neighborhood:
                features = self.feature_image(working.data, neighborhood.data)

        with self._stage('histogram', 0.55):
            histogram = self.build_histogram(working.data, features)

        with self._stage('threshold_search', 0.85):
            threshold = find_otsu_2d_threshold(histogram, QUALITY_STEPS[p.quality])

        pixel_threshold, feature_threshold = threshold.to_intensity()
        logger.debug(
            f"2D Otsu threshold: bins ({threshold.pixel:.2f}, {threshold.feature:.2f}), "
            f"intensity ({pixel_threshold:.1f}, {feature_threshold:.1f}), variance {threshold.variance:.4f}"
        )
        return threshold, features

    def binarize(self, working):
        threshold, features = self.compute_threshold(working)
        with self._stage('threshold_application', 0.9):
            return SampleBuffer(apply_threshold_bilinear(working.data, features, threshold))
