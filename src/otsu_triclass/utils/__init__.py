"""
Utility functions for the segmentation package.
"""

from .data_loader import SegmentationDataLoader, SegmentationSample, load_image, save_mask
from .metrics import mask_metrics, psnr, ssim

__all__ = [
    'SegmentationDataLoader',
    'SegmentationSample',
    'load_image',
    'mask_metrics',
    'psnr',
    'save_mask',
    'ssim',
]
