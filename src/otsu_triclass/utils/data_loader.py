"""
Data loader for segmentation image datasets.
"""

import glob
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import cv2
import numpy as np

from ..buffer import SampleBuffer

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.tif', '.tiff', '.bmp')


@dataclass
class SegmentationSample:
    """Represents a single image to segment, with its ground truth when one exists."""
    image_path: str
    image: np.ndarray
    mask_path: Optional[str] = None
    mask: Optional[np.ndarray] = None

    @property
    def name(self) -> str:
        return os.path.splitext(os.path.basename(self.image_path))[0]

    def to_buffer(self) -> SampleBuffer:
        """Wrap a copy of the image in a new SampleBuffer."""
        return SampleBuffer.from_array(self.image)


class SegmentationDataLoader:
    """
    Data loader for segmentation tasks.

    Finds images in a directory by extension and, when a mask directory is
    given, pairs each image with the mask that has the same base name.
    """

    def __init__(
        self,
        image_dir: str,
        mask_dir: Optional[str] = None,
        image_ext: Union[str, List[str]] = IMAGE_EXTENSIONS,
        mask_ext: Union[str, List[str]] = IMAGE_EXTENSIONS,
        recursive: bool = False
    ):
        """
        Initialize the data loader.

        Args:
            image_dir: Directory containing the images
            mask_dir: Optional directory containing ground truth masks
            image_ext: File extensions to consider for images
            mask_ext: File extensions to consider for masks
            recursive: Whether to search directories recursively
        """
        if not os.path.isdir(image_dir):
            raise FileNotFoundError(f"Image directory not found: {image_dir}")
        self.image_dir = image_dir
        self.mask_dir = mask_dir
        self.image_ext = [image_ext] if isinstance(image_ext, str) else list(image_ext)
        self.mask_ext = [mask_ext] if isinstance(mask_ext, str) else list(mask_ext)
        self.recursive = recursive

        self.image_files = self._find_files(image_dir, self.image_ext)
        self.sample_pairs = self._pair_images_with_masks() if mask_dir else {}

    def _find_files(self, directory: str, extensions: List[str]) -> List[str]:
        """Find all files with the given extensions in the directory."""
        pattern = os.path.join(directory, '**' if self.recursive else '', '*')
        files = set()

        for ext in extensions:
            if not ext.startswith('.'):
                ext = f'.{ext}'
            for variant in {ext.lower(), ext.upper()}:
                files.update(glob.glob(f"{pattern}{variant}", recursive=self.recursive))

        return sorted(files)

    def _pair_images_with_masks(self) -> Dict[str, str]:
        mask_dict = {
            os.path.splitext(os.path.basename(path))[0]: path
            for path in self._find_files(self.mask_dir, self.mask_ext)
        }
        pairs = {}
        for image_path in self.image_files:
            basename = os.path.splitext(os.path.basename(image_path))[0]
            if basename in mask_dict:
                pairs[image_path] = mask_dict[basename]
        return pairs

    def __len__(self) -> int:
        return len(self.image_files)

    def __getitem__(self, idx: int) -> SegmentationSample:
        """Get a sample at the given index."""
        if idx < 0 or idx >= len(self):
            raise IndexError(f"Index {idx} out of range for dataset of size {len(self)}")

        image_path = self.image_files[idx]
        mask_path = self.sample_pairs.get(image_path)
        return SegmentationSample(
            image_path=image_path,
            image=load_image(image_path),
            mask_path=mask_path,
            mask=load_image(mask_path, grayscale=True) if mask_path else None,
        )

    def get_image_paths(self) -> List[str]:
        return self.image_files.copy()


def load_image(path: str, grayscale: bool = False) -> np.ndarray:
    """
    Read an 8-bit image with OpenCV.

    Color images come back in BGR order, images with transparency as BGRA.

    Raises:
        ValueError: If the file cannot be decoded.
    """
    flags = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_UNCHANGED
    image = cv2.imread(path, flags)
    if image is None:
        raise ValueError(f"Failed to load image: {path}")
    if image.dtype != np.uint8:
        # 16-bit scans are scaled down to 8 bits
        image = cv2.convertScaleAbs(image, alpha=255.0 / max(float(image.max()), 1.0))
    return image


def save_mask(mask: Union[np.ndarray, SampleBuffer], output_dir: str, name: str, algorithm: str) -> str:
    """
    Write a mask as ``<name>_<algorithm>_mask.png``.

    Returns:
        str: Path of the written file.
    """
    if isinstance(mask, SampleBuffer):
        mask = mask.data
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, f"{name}_{algorithm}_mask.png")
    if not cv2.imwrite(path, mask):
        raise IOError(f"Failed to write mask: {path}")
    return path
