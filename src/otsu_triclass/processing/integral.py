"""
Integral images (summed-area tables) for constant-time window statistics.
"""

import numpy as np


class IntegralImage:
    """
    Prefix-sum table of a 2D array.

    The table has shape (rows + 1, cols + 1) with a zero first row and column,
    so the sum over the inclusive rectangle (y1, x1)-(y2, x2) is

        T[y2+1, x2+1] - T[y1, x2+1] - T[y2+1, x1] + T[y1, x1]

    Integer input accumulates in int64, anything else in float64. The table is
    read-only once built.
    """

    def __init__(self, values):
        values = np.asarray(values)
        if values.ndim != 2:
            raise ValueError(f"integral image needs a 2D array, got shape {values.shape}")

        dtype = np.int64 if np.issubdtype(values.dtype, np.integer) else np.float64
        rows, cols = values.shape
        table = np.zeros((rows + 1, cols + 1), dtype=dtype)
        table[1:, 1:] = values.astype(dtype).cumsum(axis=0).cumsum(axis=1)
        table.flags.writeable = False

        self.table = table
        self.rows = rows
        self.cols = cols

    def window_sum(self, y1, x1, y2, x2):
        """
        Sum over the inclusive rectangle (y1, x1)-(y2, x2).

        Args:
            y1, x1 (int): Top-left corner.
            y2, x2 (int): Bottom-right corner.

        Returns:
            Sum of the values in the rectangle.
        """
        t = self.table
        return t[y2 + 1, x2 + 1] - t[y1, x2 + 1] - t[y2 + 1, x1] + t[y1, x1]

    def box_sums(self, radius):
        """
        Per-pixel sums over a square window of the given radius.

        Windows are clipped at the image border rather than padded, so edge
        pixels aggregate fewer samples.

        Args:
            radius (int): Half window size; the full window is 2 * radius + 1.

        Returns:
            tuple: (sums, areas), both arrays of shape (rows, cols).
        """
        y1, y2 = _clipped_span(self.rows, radius)
        x1, x2 = _clipped_span(self.cols, radius)

        t = self.table
        sums = (
            t[np.ix_(y2 + 1, x2 + 1)]
            - t[np.ix_(y1, x2 + 1)]
            - t[np.ix_(y2 + 1, x1)]
            + t[np.ix_(y1, x1)]
        )
        areas = np.outer(y2 - y1 + 1, x2 - x1 + 1)
        return sums, areas

    def box_means(self, radius):
        """Per-pixel window means as float64."""
        sums, areas = self.box_sums(radius)
        return sums / areas


def _clipped_span(length, radius):
    index = np.arange(length)
    start = np.clip(index - radius, 0, length - 1)
    stop = np.clip(index + radius, 0, length - 1)
    return start, stop


def box_variance(values, radius):
    """
    Per-pixel window variance computed from the integrals of I and I^2.

    Args:
        values (numpy.ndarray): 2D input.
        radius (int): Window radius.

    Returns:
        tuple: (means, variances) as float64 arrays.
    """
    values = np.asarray(values, dtype=np.float64)
    means = IntegralImage(values).box_means(radius)
    squares = IntegralImage(values * values).box_means(radius)
    # Cancellation can leave tiny negative values on flat regions
    return means, np.maximum(squares - means * means, 0.0)
