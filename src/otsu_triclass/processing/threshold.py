"""
Threshold selection.

Covers the 2D Otsu search over a joint histogram, the bilinear application
of the resulting threshold pair, and the 1D methods (Otsu, mean, median,
triangle) used per region by the iterative triclass loop.

Bin-space convention: bin i covers the real interval [i, i + 1). A
threshold t at a fractional position assigns the fraction clip(t - i, 0, 1)
of bin i to the lower class and the rest to the upper class, which is the
bilinear interpolation used for sub-bin accuracy.
"""

from dataclasses import dataclass

import numpy as np

from .histogram import MAX_INTENSITY, bin_to_intensity, to_bin_position

QUALITY_STEPS = {'fast': 0.5, 'best': 0.1}
SUBPIXEL_STEP = 0.1
MIN_CLASS_MASS = 1e-10
# Candidates whose separation does not beat this are treated as no separation
MIN_SEPARATION = 1e-12
MIDPOINT_INTENSITY = MAX_INTENSITY / 2.0
SEARCH_BLOCK_ELEMENTS = 1_000_000

THRESHOLD_METHODS = ('otsu', 'mean', 'median', 'triangle')
BIMODAL_SMOOTHING_RADIUS = 2
BIMODAL_MIN_PEAKS = 2


@dataclass(frozen=True)
class ThresholdPair:
    """Threshold in bin-space for the (pixel, feature) axes of a 2D histogram."""

    pixel: float
    feature: float
    bins: int
    variance: float = 0.0

    def to_intensity(self):
        """Return (pixel, feature) thresholds on the 0-255 scale."""
        return (
            float(bin_to_intensity(self.pixel, self.bins)),
            float(bin_to_intensity(self.feature, self.bins)),
        )

    @classmethod
    def midpoint(cls, bins):
        middle = (bins - 1) / 2.0
        return cls(middle, middle, bins)


def search_candidates(start, stop, step):
    """Evenly spaced positions start, start + step, ... strictly below stop."""
    count = int(np.ceil((stop - start) / step - 1e-9))
    if count <= 0:
        return np.empty(0, dtype=np.float64)
    candidates = np.round(start + step * np.arange(count), 6)
    return candidates[candidates < stop]


def lower_class_coverage(thresholds, bins):
    """Matrix (len(thresholds), bins) of the fraction of each bin below each threshold."""
    index = np.arange(bins, dtype=np.float64)
    return np.clip(np.asarray(thresholds)[:, None] - index[None, :], 0.0, 1.0)


def find_otsu_2d_threshold(histogram, step=QUALITY_STEPS['fast']):
    """
    Maximize the between-class variance over a grid of threshold pairs.

    Class 0 is the lower-left quadrant of the joint histogram, class 1 the
    upper-right one. For each candidate (t1, t2), with both coordinates in
    [1, bins - 1) at the given step, the score is

        w0 * w1 * |mean0 - mean1|^2

    where the weights are normalized by the total histogram mass and the
    means are 2D (pixel bin, feature bin) centroids. Candidates leaving a
    class with mass below 1e-10 are skipped. Ties keep the first candidate in
    (t1, t2) scan order.

    Args:
        histogram (Histogram2D or numpy.ndarray): Square joint histogram.
        step (float): Sub-bin search step.

    Returns:
        ThresholdPair: Best pair, or the bin-space midpoint when the histogram
        is empty or no candidate separates anything.
    """
    counts = np.asarray(getattr(histogram, 'counts', histogram), dtype=np.float64)
    bins = counts.shape[0]
    best = ThresholdPair.midpoint(bins)

    total = counts.sum()
    if total < MIN_CLASS_MASS:
        return best

    candidates = search_candidates(1.0, bins - 1.0, step)
    if candidates.size == 0:
        return best

    index = np.arange(bins, dtype=np.float64)
    lower = lower_class_coverage(candidates, bins)
    upper = 1.0 - lower

    # Feature-axis sums for every t2 candidate, shared by all t1 rows
    weighted_feature = counts * index[None, :]
    mass_lower = counts @ lower.T
    feature_lower = weighted_feature @ lower.T
    mass_upper = counts @ upper.T
    feature_upper = weighted_feature @ upper.T

    best_variance = MIN_SEPARATION
    block = max(1, SEARCH_BLOCK_ELEMENTS // candidates.size)

    for start in range(0, candidates.size, block):
        rows_lower = lower[start:start + block]
        rows_upper = upper[start:start + block]

        w0 = rows_lower @ mass_lower
        w1 = rows_upper @ mass_upper
        pixel_sum0 = (rows_lower * index) @ mass_lower
        pixel_sum1 = (rows_upper * index) @ mass_upper
        feature_sum0 = rows_lower @ feature_lower
        feature_sum1 = rows_upper @ feature_upper

        valid = (w0 >= MIN_CLASS_MASS) & (w1 >= MIN_CLASS_MASS)
        if not valid.any():
            continue

        safe_w0 = np.where(valid, w0, 1.0)
        safe_w1 = np.where(valid, w1, 1.0)
        pixel_diff = pixel_sum0 / safe_w0 - pixel_sum1 / safe_w1
        feature_diff = feature_sum0 / safe_w0 - feature_sum1 / safe_w1
        variance = (w0 / total) * (w1 / total) * (pixel_diff ** 2 + feature_diff ** 2)
        variance = np.where(valid, variance, -np.inf)

        flat = int(np.argmax(variance))
        row, col = np.unravel_index(flat, variance.shape)
        if variance[row, col] > best_variance:
            best_variance = float(variance[row, col])
            best = ThresholdPair(
                float(candidates[start + row]), float(candidates[col]), bins, best_variance
            )

    return best


def apply_threshold_bilinear(pixels, features, threshold):
    """
    Classify pixels against a bin-space threshold pair.

    Positions are compared as real numbers without rounding to a bin; a pixel
    is foreground only when both its intensity and feature positions exceed
    the corresponding threshold coordinate.

    Args:
        pixels (numpy.ndarray): Intensity image.
        features (numpy.ndarray): Same-shape feature image.
        threshold (ThresholdPair): Pair found by ``find_otsu_2d_threshold``.

    Returns:
        numpy.ndarray: uint8 mask with values 0 or 255.
    """
    pixel_position = to_bin_position(pixels, threshold.bins)
    feature_position = to_bin_position(features, threshold.bins)
    foreground = (pixel_position > threshold.pixel) & (feature_position > threshold.feature)
    return np.where(foreground, 255, 0).astype(np.uint8)


def _to_intensity(position, bins):
    return float(np.clip(bin_to_intensity(position, bins), 0.0, MAX_INTENSITY))


def otsu_threshold(histogram, step=SUBPIXEL_STEP):
    """1D Otsu with sub-bin candidate positions; returns an intensity."""
    hist = np.asarray(histogram, dtype=np.float64)
    bins = hist.size
    total = hist.sum()
    if total <= 0:
        return MIDPOINT_INTENSITY

    centers = np.arange(bins, dtype=np.float64) + 0.5
    candidates = search_candidates(step, float(bins), step)
    below = lower_class_coverage(candidates, bins)

    w0 = below @ hist
    w1 = total - w0
    sum0 = below @ (hist * centers)
    sum1 = float((hist * centers).sum()) - sum0

    valid = (w0 >= MIN_CLASS_MASS) & (w1 >= MIN_CLASS_MASS)
    if not valid.any():
        return MIDPOINT_INTENSITY

    safe_w0 = np.where(valid, w0, 1.0)
    safe_w1 = np.where(valid, w1, 1.0)
    variance = (w0 * w1 / (total * total)) * (sum0 / safe_w0 - sum1 / safe_w1) ** 2
    variance = np.where(valid, variance, -np.inf)

    best = int(np.argmax(variance))
    if variance[best] <= MIN_SEPARATION:
        return MIDPOINT_INTENSITY
    return _to_intensity(candidates[best], bins)


def mean_threshold(histogram):
    hist = np.asarray(histogram, dtype=np.float64)
    total = hist.sum()
    if total <= 0:
        return MIDPOINT_INTENSITY
    centers = np.arange(hist.size, dtype=np.float64) + 0.5
    return _to_intensity(float((hist * centers).sum() / total), hist.size)


def median_threshold(histogram):
    """Median position, linearly interpolated inside the bin that crosses half the mass."""
    hist = np.asarray(histogram, dtype=np.float64)
    total = hist.sum()
    if total <= 0:
        return MIDPOINT_INTENSITY

    half = total / 2.0
    cumulative = np.cumsum(hist)
    crossing = int(np.searchsorted(cumulative, half, side='left'))
    before = cumulative[crossing] - hist[crossing]
    position = crossing + (half - before) / hist[crossing]
    return _to_intensity(position, hist.size)


def triangle_threshold(histogram):
    """
    Triangle method for skewed, unimodal histograms.

    Draws a line from the peak to the far end of the longer tail and picks
    the bin with the largest perpendicular distance to it.
    """
    hist = np.asarray(histogram, dtype=np.float64)
    bins = hist.size
    occupied = np.flatnonzero(hist > 0)
    if occupied.size == 0:
        return MIDPOINT_INTENSITY

    peak = int(np.argmax(hist))
    left_end, right_end = int(occupied[0]), int(occupied[-1])
    far_end = left_end if peak - left_end > right_end - peak else right_end

    best = peak
    if far_end != peak:
        x1, y1 = float(peak), hist[peak]
        x2, y2 = float(far_end), hist[far_end]
        span = np.arange(min(peak, far_end), max(peak, far_end) + 1)
        distance = np.abs((y2 - y1) * span - (x2 - x1) * hist[span] + x2 * y1 - y2 * x1)
        distance /= np.hypot(y2 - y1, x2 - x1)
        best = int(span[int(np.argmax(distance))])

    return _to_intensity(best + 0.5, bins)


def is_bimodal(histogram):
    """
    True when the histogram, smoothed with a 5-bin moving average, has at
    least two strict local maxima.
    """
    hist = np.asarray(histogram, dtype=np.float64)
    if hist.size < 3:
        return False

    window = np.ones(2 * BIMODAL_SMOOTHING_RADIUS + 1)
    sums = np.convolve(hist, window, mode='same')
    counts = np.convolve(np.ones_like(hist), window, mode='same')
    smoothed = sums / counts

    middle = smoothed[1:-1]
    peaks = (middle > smoothed[:-2]) & (middle > smoothed[2:]) & (middle > 0)
    return int(np.count_nonzero(peaks)) >= BIMODAL_MIN_PEAKS


_METHODS = {
    'otsu': otsu_threshold,
    'mean': mean_threshold,
    'median': median_threshold,
    'triangle': triangle_threshold,
}


def select_threshold(histogram, method='otsu'):
    """
    Compute a region threshold with the configured method.

    Otsu falls back to the triangle method when the histogram is not bimodal.

    Returns:
        tuple: (threshold intensity, name of the method actually used)
    """
    if method not in _METHODS:
        raise ValueError(f"Unknown threshold method '{method}', expected one of {THRESHOLD_METHODS}")
    if method == 'otsu' and not is_bimodal(histogram):
        method = 'triangle'
    return _METHODS[method](histogram), method
