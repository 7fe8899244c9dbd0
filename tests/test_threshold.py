import numpy as np
import pytest

from otsu_triclass.processing.histogram import Histogram2D
from otsu_triclass.processing.threshold import (
    ThresholdPair,
    apply_threshold_bilinear,
    find_otsu_2d_threshold,
    is_bimodal,
    lower_class_coverage,
    mean_threshold,
    median_threshold,
    otsu_threshold,
    search_candidates,
    select_threshold,
    triangle_threshold,
)


def two_peaks(bins=32, centers=(4, 26)):
    hist = np.zeros(bins)
    for center in centers:
        hist[center - 3:center + 4] += [5, 10, 20, 40, 20, 10, 5]
    return hist


def test_search_candidates():
    np.testing.assert_allclose(search_candidates(1.0, 3.0, 0.5), [1.0, 1.5, 2.0, 2.5])
    assert search_candidates(1.0, 1.0, 0.5).size == 0
    assert search_candidates(1.0, 15.0, 0.1).size == 140


def test_lower_class_coverage_is_bilinear():
    coverage = lower_class_coverage(np.array([2.0, 2.25]), 4)
    np.testing.assert_allclose(coverage[0], [1.0, 1.0, 0.0, 0.0])
    np.testing.assert_allclose(coverage[1], [1.0, 1.0, 0.25, 0.0])


def test_empty_histogram_returns_midpoint():
    threshold = find_otsu_2d_threshold(np.zeros((16, 16)))
    assert (threshold.pixel, threshold.feature) == (7.5, 7.5)
    assert threshold.to_intensity() == pytest.approx((127.5, 127.5))


def test_single_point_mass_returns_midpoint():
    counts = np.zeros((16, 16))
    counts[5, 5] = 100
    threshold = find_otsu_2d_threshold(Histogram2D(counts))
    assert (threshold.pixel, threshold.feature) == (7.5, 7.5)


def test_two_clusters_are_separated():
    counts = np.zeros((16, 16))
    counts[1, 1:4] = 10
    counts[11, 9:12] = 10
    threshold = find_otsu_2d_threshold(counts, step=0.5)
    assert threshold.pixel == 2.0
    assert threshold.feature == 4.0
    assert threshold.variance > 0


def test_finer_step_never_scores_worse():
    rng = np.random.default_rng(5)
    counts = rng.random((16, 16)) ** 4
    fast = find_otsu_2d_threshold(counts, step=0.5)
    best = find_otsu_2d_threshold(counts, step=0.1)
    assert best.variance >= fast.variance - 1e-12


def test_search_is_deterministic():
    rng = np.random.default_rng(6)
    counts = rng.random((32, 32))
    assert find_otsu_2d_threshold(counts) == find_otsu_2d_threshold(counts.copy())


def test_bilinear_application_needs_both_coordinates():
    pixels = np.array([[200, 200, 20]], dtype=np.uint8)
    features = np.array([[200.0, 20.0, 200.0]])
    threshold = ThresholdPair(7.5, 7.5, 16)
    np.testing.assert_array_equal(apply_threshold_bilinear(pixels, features, threshold), [[255, 0, 0]])


def test_bilinear_application_uses_real_positions():
    # 135 and 137 sit just either side of bin position 8.0
    pixels = np.array([[135, 137]], dtype=np.uint8)
    features = np.array([[255.0, 255.0]])
    mask = apply_threshold_bilinear(pixels, features, ThresholdPair(8.0, 0.0, 16))
    np.testing.assert_array_equal(mask, [[0, 255]])


def test_mask_values_are_binary():
    rng = np.random.default_rng(8)
    pixels = rng.integers(0, 256, (20, 20)).astype(np.uint8)
    mask = apply_threshold_bilinear(pixels, pixels.astype(float), ThresholdPair(10.3, 9.7, 32))
    assert set(np.unique(mask)) <= {0, 255}


def test_is_bimodal():
    bimodal = two_peaks()
    assert is_bimodal(bimodal)

    unimodal = np.zeros(32)
    unimodal[10:15] = [5, 20, 40, 20, 5]
    assert not is_bimodal(unimodal)
    assert not is_bimodal(np.array([1, 2]))


def test_otsu_threshold_between_modes():
    threshold = otsu_threshold(two_peaks())
    low = 7.5 * 255 / 31
    high = 23.5 * 255 / 31
    assert low < threshold < high


def test_mean_and_median_threshold():
    hist = np.zeros(16)
    hist[2] = hist[12] = 10
    assert mean_threshold(hist) == pytest.approx(7.5 * 17)
    assert median_threshold(hist) == pytest.approx(3.0 * 17)


def test_triangle_threshold_on_skewed_histogram():
    hist = np.array([0, 100, 60, 30, 15, 8, 4, 2, 1, 0, 0, 0, 0, 0, 0, 0], dtype=float)
    threshold = triangle_threshold(hist)
    assert 1.5 * 17 < threshold < 8.5 * 17


def test_degenerate_histograms_return_midpoint():
    for method in (otsu_threshold, mean_threshold, median_threshold, triangle_threshold):
        assert method(np.zeros(16)) == 127.5


def test_single_bin_triangle_is_bin_center():
    hist = np.zeros(16)
    hist[7] = 100
    assert triangle_threshold(hist) == pytest.approx(127.5)


def test_select_threshold_falls_back_to_triangle():
    hist = np.zeros(16)
    hist[7] = 100
    threshold, method = select_threshold(hist, 'otsu')
    assert method == 'triangle'
    assert threshold == pytest.approx(127.5)

    bimodal = two_peaks()
    assert select_threshold(bimodal, 'otsu')[1] == 'otsu'
    assert select_threshold(hist, 'median')[1] == 'median'


def test_select_threshold_unknown_method():
    with pytest.raises(ValueError):
        select_threshold(np.ones(8), 'kmeans')
