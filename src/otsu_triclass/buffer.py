"""
Bounds-checked 2D sample buffer with explicit release.
"""

import numpy as np

from .errors import BufferReleasedError, InvalidInputError

SUPPORTED_CHANNELS = (1, 3, 4)


class SampleBuffer:
    """
    A rows x cols x channels grid of 8-bit samples.

    The buffer owns its array. Stages that need to keep their input intact
    work on a clone, and whoever creates a buffer closes it once it is
    superseded. Use it as a context manager to scope that release.
    """

    def __init__(self, data, copy=False):
        """
        Wrap an existing uint8 array.

        Args:
            data (numpy.ndarray): Array of shape (rows, cols) or (rows, cols, channels).
            copy (bool): Copy the array instead of taking ownership of it.

        Raises:
            InvalidInputError: If the array is not a valid 8-bit sample grid.
        """
        if not isinstance(data, np.ndarray):
            raise InvalidInputError(f"expected numpy.ndarray, got {type(data).__name__}")
        if data.dtype != np.uint8:
            raise InvalidInputError(f"expected uint8 samples, got {data.dtype}")
        if data.ndim not in (2, 3):
            raise InvalidInputError(f"expected a 2D or 3D array, got {data.ndim} dimensions")
        if data.size == 0 or data.shape[0] <= 0 or data.shape[1] <= 0:
            raise InvalidInputError(f"buffer has invalid dimensions {data.shape}")
        if data.ndim == 3 and data.shape[2] not in SUPPORTED_CHANNELS:
            raise InvalidInputError(
                f"unsupported channel count {data.shape[2]}, expected one of {SUPPORTED_CHANNELS}"
            )

        if data.ndim == 3 and data.shape[2] == 1:
            data = data[:, :, 0]
        self._data = np.array(data, copy=True) if copy else data

    @classmethod
    def from_array(cls, array):
        """
        Build a buffer from any numeric array, clipping values to [0, 255].

        Args:
            array (array-like): Image data.

        Returns:
            SampleBuffer: A new buffer owning a uint8 copy of the data.
        """
        array = np.asarray(array)
        if array.dtype == np.uint8:
            return cls(array, copy=True)
        if array.dtype == bool:
            array = array.astype(np.uint8) * 255
        return cls(np.clip(np.rint(array), 0, 255).astype(np.uint8))

    @classmethod
    def zeros(cls, rows, cols):
        """Create a single-channel buffer filled with zeros."""
        return cls(np.zeros((rows, cols), dtype=np.uint8))

    @property
    def data(self):
        if self._data is None:
            raise BufferReleasedError()
        return self._data

    @property
    def closed(self):
        return self._data is None

    @property
    def rows(self):
        return self.data.shape[0]

    @property
    def cols(self):
        return self.data.shape[1]

    @property
    def channels(self):
        data = self.data
        return 1 if data.ndim == 2 else data.shape[2]

    @property
    def shape(self):
        return self.data.shape

    @property
    def size(self):
        return self.rows * self.cols

    def get(self, y, x):
        """Return the sample(s) at (y, x), raising IndexError outside the grid."""
        self._check_bounds(y, x)
        return self.data[y, x]

    def set(self, y, x, value):
        """Write the sample(s) at (y, x), raising IndexError outside the grid."""
        self._check_bounds(y, x)
        self.data[y, x] = value

    def _check_bounds(self, y, x):
        if not (0 <= y < self.rows and 0 <= x < self.cols):
            raise IndexError(f"({y}, {x}) is outside a {self.rows}x{self.cols} buffer")

    def clone(self):
        return SampleBuffer(self.data, copy=True)

    def to_array(self):
        """Return an independent copy of the samples."""
        return self.data.copy()

    def close(self):
        self._data = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self):
        if self.closed:
            return "SampleBuffer(closed)"
        return f"SampleBuffer(rows={self.rows}, cols={self.cols}, channels={self.channels})"
