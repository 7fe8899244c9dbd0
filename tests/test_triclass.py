import numpy as np
import pytest

from otsu_triclass import InvalidInputError, ProcessingCancelled, SampleBuffer, TriclassParams, TriclassSegmenter
from otsu_triclass.traditional.triclass import (
    REQUIRED_STABLE_ITERATIONS,
    ConvergenceState,
    TriclassResult,
    TriclassState,
    adaptive_bounds,
    split_region,
)


@pytest.fixture
def plain_triclass_config():
    return {
        'preprocessing': False,
        'result_cleanup': False,
        'initial_threshold_method': 'mean',
        'histogram_bins': 64,
    }


def test_uniform_image_converges(uniform_image):
    result = TriclassSegmenter().analyze(uniform_image)
    assert result.state is TriclassState.CONVERGED
    assert result.iterations == REQUIRED_STABLE_ITERATIONS
    assert result.iterations < TriclassParams().max_iterations
    assert result.thresholds == pytest.approx([127.5] * 3)
    assert not result.mask.any()


def test_uniform_image_mask_is_empty(uniform_image):
    mask = TriclassSegmenter().segment(uniform_image)
    assert mask.shape == uniform_image.shape
    assert not mask.any()


def test_well_separated_image_exhausts_tbd(split_image, plain_triclass_config):
    result = TriclassSegmenter(plain_triclass_config).analyze(split_image)
    assert result.state is TriclassState.EXHAUSTED
    assert result.iterations == 1
    assert result.tbd_fraction == 0.0
    np.testing.assert_array_equal(result.mask, np.where(split_image == 220, 255, 0))


def test_black_image_is_empty(plain_triclass_config):
    result = TriclassSegmenter(plain_triclass_config).analyze(np.zeros((8, 8), dtype=np.uint8))
    assert result.state is TriclassState.EMPTY
    assert result.iterations == 0
    assert result.thresholds == []
    assert not result.mask.any()


def test_iterations_never_exceed_limit():
    rng = np.random.default_rng(11)
    image = rng.integers(1, 256, (32, 32)).astype(np.uint8)
    config = {'preprocessing': False, 'max_iterations': 3, 'minimum_tbd_fraction': 0.001}
    result = TriclassSegmenter(config).analyze(image)
    assert result.iterations <= 3
    assert len(result.thresholds) <= 3
    assert result.state is not TriclassState.ACTIVE


def test_foreground_only_grows():
    rng = np.random.default_rng(12)
    image = rng.integers(1, 256, (24, 24)).astype(np.uint8)
    segmenter = TriclassSegmenter({'preprocessing': False, 'max_iterations': 3})
    first = segmenter.analyze(image).mask > 0
    longer = TriclassSegmenter({'preprocessing': False, 'max_iterations': 6}).analyze(image).mask > 0
    assert np.all(longer[first])


def test_blobs_without_preprocessing(blobs_image):
    image, truth = blobs_image
    mask = TriclassSegmenter({'preprocessing': False}).segment(image)
    assert np.mean((mask > 0) == truth) > 0.9


def test_blobs_with_defaults(blobs_image):
    image, truth = blobs_image
    mask = TriclassSegmenter().segment(image)
    assert set(np.unique(mask)) <= {0, 255}
    assert np.mean((mask > 0) == truth) > 0.8


@pytest.mark.parametrize('method', ['otsu', 'mean', 'median', 'triangle'])
def test_all_initial_methods(blobs_image, method):
    image, _ = blobs_image
    result = TriclassSegmenter({'initial_threshold_method': method, 'preprocessing': False}).analyze(image)
    assert isinstance(result, TriclassResult)
    assert result.mask.shape == image.shape
    assert all(0.0 <= t <= 255.0 for t in result.thresholds)


def test_split_region_partitions_nonzero_pixels():
    rng = np.random.default_rng(13)
    region = rng.integers(0, 256, (30, 30)).astype(np.uint8)
    region[rng.random((30, 30)) < 0.3] = 0
    foreground, background, tbd = split_region(region, 80.0, 170.0)

    total = foreground.astype(int) + background.astype(int) + tbd.astype(int)
    np.testing.assert_array_equal(total, (region > 0).astype(int))
    assert np.all(region[foreground] > 170)
    assert np.all(region[background] < 80)
    assert np.all((region[tbd] >= 80) & (region[tbd] <= 170))


@pytest.mark.parametrize('threshold, expected', [
    (128.0, (64.0, 192.0)),
    (50.0, (17.5, 82.5)),
    (200.0, (130.0, 255.0)),
])
def test_adaptive_bounds(threshold, expected):
    assert adaptive_bounds(threshold, 0.5) == pytest.approx(expected)


def test_adaptive_bounds_zero_separation():
    assert adaptive_bounds(100.0, 0.0) == (100.0, 100.0)


def test_convergence_state():
    state = ConvergenceState()
    assert not state.update(100.0, 1.0)
    assert not state.update(100.5, 1.0)
    assert state.stable_iterations == 1
    assert not state.update(110.0, 1.0)
    assert state.stable_iterations == 0
    assert not state.update(110.2, 1.0)
    assert state.update(110.4, 1.0)


def test_cancel_inside_loop(uniform_image):
    segmenter = TriclassSegmenter({'preprocessing': False}, cancel_check=lambda: True)
    with pytest.raises(ProcessingCancelled) as excinfo:
        segmenter.iterate(uniform_image)
    assert excinfo.value.stage == 'triclass_iteration_0'


def test_cancel_before_start(uniform_image):
    segmenter = TriclassSegmenter(cancel_check=lambda: True)
    with pytest.raises(ProcessingCancelled) as excinfo:
        segmenter.segment(uniform_image)
    assert excinfo.value.stage == 'grayscale'


def test_cancel_after_some_iterations(blobs_image):
    calls = []

    def cancel_check():
        calls.append(1)
        return len(calls) > 6

    segmenter = TriclassSegmenter({'preprocessing': False}, cancel_check=cancel_check)
    with pytest.raises(ProcessingCancelled):
        segmenter.segment(blobs_image[0])


def test_closed_buffer_is_rejected():
    buf = SampleBuffer.zeros(4, 4)
    buf.close()
    with pytest.raises(InvalidInputError):
        TriclassSegmenter().process(buf)


def test_progress_and_status_reporting(blobs_image):
    progress, statuses = [], []
    segmenter = TriclassSegmenter(progress_callback=progress.append, status_callback=statuses.append)
    observed = segmenter.segment(blobs_image[0])

    assert progress[-1] == 1.0
    assert all(0.0 <= value <= 1.0 for value in progress)
    assert progress == sorted(progress)
    assert any('preprocessing' in status for status in statuses)
    np.testing.assert_array_equal(observed, TriclassSegmenter().segment(blobs_image[0]))
