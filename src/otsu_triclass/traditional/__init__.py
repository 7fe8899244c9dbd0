"""
Traditional image processing segmentation algorithms.
"""

from .base import BaseSegmenter
from .otsu_2d import Otsu2DSegmenter
from .triclass import TriclassResult, TriclassSegmenter, TriclassState
from .params import Algorithm, Otsu2DParams, TriclassParams
from .factory import TraditionalSegmenterFactory, create_segmenter, process


__all__ = [
    'Algorithm',
    'BaseSegmenter',
    'Otsu2DParams',
    'Otsu2DSegmenter',
    'TriclassParams',
    'TriclassResult',
    'TriclassSegmenter',
    'TriclassState',
    'TraditionalSegmenterFactory',
    'create_segmenter',
    'process',
]
