"""
Adaptive binary image segmentation with 2D Otsu and iterative triclass thresholding.
"""

from .buffer import SampleBuffer
from .errors import (
    BufferReleasedError,
    InvalidInputError,
    ParameterError,
    ProcessingCancelled,
    ProcessingError,
    SegmentationError,
    ValidationError,
)
from .traditional import (
    Algorithm,
    Otsu2DParams,
    Otsu2DSegmenter,
    TraditionalSegmenterFactory,
    TriclassParams,
    TriclassSegmenter,
    create_segmenter,
    process,
)

__version__ = '0.1.0'

__all__ = [
    'Algorithm',
    'BufferReleasedError',
    'InvalidInputError',
    'Otsu2DParams',
    'Otsu2DSegmenter',
    'ParameterError',
    'ProcessingCancelled',
    'ProcessingError',
    'SampleBuffer',
    'SegmentationError',
    'TraditionalSegmenterFactory',
    'TriclassParams',
    'TriclassSegmenter',
    'ValidationError',
    'create_segmenter',
    'process',
]
