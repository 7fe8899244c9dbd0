"""
Image processing building blocks shared by the segmentation algorithms.
"""

from .integral import IntegralImage
from .filters import PreprocessingChain, guided_filter, to_grayscale
from .histogram import Histogram2D
from .neighborhood import neighborhood_feature
from .threshold import ThresholdPair, apply_threshold_bilinear, find_otsu_2d_threshold, select_threshold
from .morphology import cleanup_mask

__all__ = [
    'Histogram2D',
    'IntegralImage',
    'PreprocessingChain',
    'ThresholdPair',
    'apply_threshold_bilinear',
    'cleanup_mask',
    'find_otsu_2d_threshold',
    'guided_filter',
    'neighborhood_feature',
    'select_threshold',
    'to_grayscale',
]
