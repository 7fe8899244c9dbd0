"""
Histogram construction: adaptive bin counts, the joint 2D histogram and
the 1D region histogram used by the iterative triclass loop.
"""

import numpy as np
from scipy import ndimage as ndi

MAX_INTENSITY = 255.0

# Empirically tuned bin heuristics for the joint histogram
BASE_BINS = 32
MIN_BINS = 8
MAX_BINS = 256
LOW_NOISE_MAX_BINS = 128
LOW_DYNAMIC_RANGE = 30
HIGH_DYNAMIC_RANGE = 150
HIGH_NOISE_LEVEL = 15.0
LOW_NOISE_LEVEL = 5.0
LARGE_IMAGE_PIXELS = 1_000_000
SMALL_IMAGE_PIXELS = 100_000

# Region variant used on each triclass iteration
REGION_LOW_DYNAMIC_RANGE = 20
REGION_HIGH_DYNAMIC_RANGE = 100
REGION_HIGH_NOISE_LEVEL = 10.0
REGION_MIN_OCCUPANCY = 0.25

# RMS of the 4-neighbour Laplacian is divided by this to land on an
# intensity-like noise scale
LAPLACIAN_NOISE_SCALE = 6.0
DEFAULT_IMAGE_NOISE = 10.0
DEFAULT_REGION_NOISE = 5.0


def bin_scale(bins):
    if bins < 2:
        raise ValueError(f"histogram needs at least 2 bins, got {bins}")
    return (bins - 1) / MAX_INTENSITY


def to_bin_position(values, bins):
    """Map intensities to real-valued bin-space coordinates in [0, bins - 1]."""
    return np.asarray(values, dtype=np.float64) * bin_scale(bins)


def to_bin_index(values, bins):
    """
    Map intensities to integer bin indices.

    ``bin = floor(value * (bins - 1) / 255)`` clamped to [0, bins - 1].
    """
    index = np.floor(to_bin_position(values, bins)).astype(np.int64)
    return np.clip(index, 0, bins - 1)


def bin_to_intensity(position, bins):
    """Inverse of ``to_bin_position``."""
    return position / bin_scale(bins)


def estimate_noise_level(gray, nonzero_only=False, default=DEFAULT_IMAGE_NOISE):
    """
    Noise estimate from the RMS response of a discrete Laplacian.

    Args:
        gray (numpy.ndarray): 2D intensity array.
        nonzero_only (bool): Only sample interior pixels whose own value is
            non-zero, for masked regions.
        default (float): Returned when there are no interior samples.

    Returns:
        float: Noise level in intensity-like units.
    """
    gray = np.asarray(gray, dtype=np.float64)
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return default

    center = gray[1:-1, 1:-1]
    laplacian = (
        4.0 * center
        - gray[:-2, 1:-1]
        - gray[2:, 1:-1]
        - gray[1:-1, :-2]
        - gray[1:-1, 2:]
    )
    if nonzero_only:
        laplacian = laplacian[center > 0]
    if laplacian.size == 0:
        return default

    return float(np.sqrt(np.mean(laplacian * laplacian)) / LAPLACIAN_NOISE_SCALE)


def dynamic_range(gray):
    """max - min over the non-zero intensities; 0 when every pixel is zero."""
    nonzero = np.asarray(gray)[np.asarray(gray) > 0]
    if nonzero.size == 0:
        return 0
    return int(nonzero.max()) - int(nonzero.min())


def adaptive_bin_count(gray):
    """
    Choose a joint histogram bin count from the image itself.

    Starts at 32, halves for a narrow dynamic range or heavy noise, doubles
    for a wide range or little noise, then scales with the pixel count.
    """
    gray = np.asarray(gray)
    value_range = dynamic_range(gray)
    noise = estimate_noise_level(gray)
    total_pixels = gray.size

    bins = BASE_BINS
    if value_range < LOW_DYNAMIC_RANGE:
        bins = BASE_BINS // 2
    elif value_range > HIGH_DYNAMIC_RANGE:
        bins = BASE_BINS * 2

    if noise > HIGH_NOISE_LEVEL:
        bins = max(bins // 2, MIN_BINS)
    elif noise < LOW_NOISE_LEVEL:
        bins = min(bins * 2, LOW_NOISE_MAX_BINS)

    if total_pixels > LARGE_IMAGE_PIXELS:
        bins = min(bins * 2, MAX_BINS)
    elif total_pixels < SMALL_IMAGE_PIXELS:
        bins = max(bins // 2, MIN_BINS)

    return bins


def region_bin_count(region):
    """
    Bin count for a triclass working region (zero pixels are outside it).

    Same idea as ``adaptive_bin_count`` but the size adjustment looks at how
    much of the frame the region still occupies.
    """
    region = np.asarray(region)
    occupied = int(np.count_nonzero(region))
    if occupied == 0:
        return BASE_BINS

    value_range = dynamic_range(region)
    noise = estimate_noise_level(region, nonzero_only=True, default=DEFAULT_REGION_NOISE)

    bins = BASE_BINS
    if value_range < REGION_LOW_DYNAMIC_RANGE:
        bins = BASE_BINS // 2
    elif value_range > REGION_HIGH_DYNAMIC_RANGE:
        bins = BASE_BINS * 2

    if noise > REGION_HIGH_NOISE_LEVEL:
        bins = max(bins // 2, MIN_BINS)

    if occupied < region.size * REGION_MIN_OCCUPANCY:
        bins = max(bins // 2, MIN_BINS)

    return bins


def region_histogram(region, bins):
    """1D histogram of the non-zero pixels of a region."""
    values = np.asarray(region)
    values = values[values > 0]
    return np.bincount(to_bin_index(values, bins), minlength=bins).astype(np.int64)


def gaussian_kernel_1d(sigma):
    """Normalized Gaussian kernel with radius max(1, int(3 * sigma))."""
    radius = max(1, int(sigma * 3))
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-(x * x) / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


class Histogram2D:
    """
    Joint histogram over (pixel intensity bin, neighborhood feature bin).

    ``counts[i, j]`` holds the (possibly smoothed / compressed / normalized)
    mass of pixels whose intensity falls in bin i and whose feature falls in
    bin j. The post-processing passes mutate ``counts`` in place.
    """

    def __init__(self, counts):
        counts = np.asarray(counts, dtype=np.float64)
        if counts.ndim != 2 or counts.shape[0] != counts.shape[1]:
            raise ValueError(f"2D histogram must be square, got shape {counts.shape}")
        self.counts = counts
        self.smoothed = False
        self.log_scaled = False
        self.normalized = False

    @classmethod
    def build(cls, pixels, features, bins):
        """
        Accumulate one count per pixel at (pixel bin, feature bin).

        Args:
            pixels (numpy.ndarray): Intensity image.
            features (numpy.ndarray): Same-shape feature image (may be float).
            bins (int): Bins per axis.

        Returns:
            Histogram2D
        """
        pixel_bins = to_bin_index(pixels, bins).ravel()
        feature_bins = to_bin_index(features, bins).ravel()
        flat = np.bincount(pixel_bins * bins + feature_bins, minlength=bins * bins)
        return cls(flat.reshape(bins, bins))

    @property
    def bins(self):
        return self.counts.shape[0]

    @property
    def total(self):
        return float(self.counts.sum())

    def smooth(self, sigma):
        """
        Separable Gaussian smoothing with zero mass assumed outside the grid.

        Args:
            sigma (float): Standard deviation in bins; non-positive is a no-op.
        """
        if sigma <= 0.0:
            return self
        kernel = gaussian_kernel_1d(sigma)
        smoothed = ndi.convolve1d(self.counts, kernel, axis=1, mode='constant', cval=0.0)
        smoothed = ndi.convolve1d(smoothed, kernel, axis=0, mode='constant', cval=0.0)
        self.counts[...] = smoothed
        self.smoothed = True
        return self

    def log_scale(self):
        """Compress the dynamic range with log1p."""
        np.log1p(self.counts, out=self.counts)
        self.log_scaled = True
        return self

    def normalize(self):
        """Scale to unit total mass (no-op on an empty histogram)."""
        total = self.total
        if total > 0:
            self.counts /= total
            self.normalized = True
        return self
