import numpy as np
import pytest

from otsu_triclass import SampleBuffer


@pytest.fixture
def checkerboard():
    """4x4 image of 2x2 blocks alternating between 20 and 200."""
    return np.array(
        [
            [20, 20, 200, 200],
            [20, 20, 200, 200],
            [200, 200, 20, 20],
            [200, 200, 20, 20],
        ],
        dtype=np.uint8,
    )


@pytest.fixture
def uniform_image():
    return np.full((10, 10), 128, dtype=np.uint8)


@pytest.fixture
def split_image():
    """10x10 image, left half 30, right half 220."""
    image = np.full((10, 10), 30, dtype=np.uint8)
    image[:, 5:] = 220
    return image


@pytest.fixture
def blobs_image():
    """Noisy 64x64 image with two bright squares on a dark background, and its ground truth."""
    rng = np.random.default_rng(7)
    image = rng.normal(50, 6, (64, 64))
    truth = np.zeros((64, 64), dtype=bool)
    truth[10:26, 10:26] = True
    truth[36:56, 30:54] = True
    image[truth] = rng.normal(190, 6, int(truth.sum()))
    return np.clip(image, 0, 255).astype(np.uint8), truth


@pytest.fixture
def color_image(blobs_image):
    image, _ = blobs_image
    return np.dstack([image, image, image])


@pytest.fixture
def buffer(blobs_image):
    with SampleBuffer(blobs_image[0].copy()) as buf:
        yield buf


@pytest.fixture
def plain_otsu_config():
    """2D Otsu without any smoothing, for exact expectations on tiny images."""
    return {
        'window_size': 3,
        'histogram_bins': 16,
        'pixel_weight_factor': 0.5,
        'smoothing_sigma': 0.0,
        'gaussian_preprocessing': False,
        'noise_robustness': False,
        'result_cleanup': False,
    }
