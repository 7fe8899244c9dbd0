import numpy as np
import pytest

from otsu_triclass import BufferReleasedError, InvalidInputError, SampleBuffer


def test_wraps_gray_and_color_arrays():
    gray = SampleBuffer(np.zeros((3, 5), dtype=np.uint8))
    assert (gray.rows, gray.cols, gray.channels, gray.size) == (3, 5, 1, 15)

    color = SampleBuffer(np.zeros((3, 5, 3), dtype=np.uint8))
    assert color.channels == 3
    assert color.shape == (3, 5, 3)


def test_single_channel_3d_array_is_squeezed():
    buf = SampleBuffer(np.zeros((4, 4, 1), dtype=np.uint8))
    assert buf.shape == (4, 4)
    assert buf.channels == 1


@pytest.mark.parametrize('array', [
    np.zeros((0, 5), dtype=np.uint8),
    np.zeros((5,), dtype=np.uint8),
    np.zeros((4, 4, 2), dtype=np.uint8),
    np.zeros((4, 4), dtype=np.float32),
    [[1, 2], [3, 4]],
])
def test_rejects_invalid_arrays(array):
    with pytest.raises(InvalidInputError):
        SampleBuffer(array)


def test_invalid_input_is_a_value_error():
    with pytest.raises(ValueError):
        SampleBuffer(np.zeros((2, 2), dtype=np.int32))


def test_from_array_clips_and_rounds():
    buf = SampleBuffer.from_array(np.array([[-5.0, 12.6], [300.0, 128.0]]))
    assert buf.data.dtype == np.uint8
    np.testing.assert_array_equal(buf.data, [[0, 13], [255, 128]])


def test_from_array_maps_booleans_to_mask_values():
    buf = SampleBuffer.from_array(np.array([[True, False]]))
    np.testing.assert_array_equal(buf.data, [[255, 0]])


def test_from_array_copies_uint8_input():
    source = np.zeros((2, 2), dtype=np.uint8)
    buf = SampleBuffer.from_array(source)
    buf.set(0, 0, 9)
    assert source[0, 0] == 0


def test_get_and_set_are_bounds_checked():
    buf = SampleBuffer.zeros(2, 3)
    buf.set(1, 2, 77)
    assert buf.get(1, 2) == 77
    with pytest.raises(IndexError):
        buf.get(2, 0)
    with pytest.raises(IndexError):
        buf.set(0, -1, 1)


def test_clone_and_to_array_are_independent():
    buf = SampleBuffer.zeros(2, 2)
    clone = buf.clone()
    array = buf.to_array()
    clone.set(0, 0, 1)
    array[1, 1] = 2
    assert buf.get(0, 0) == 0
    assert buf.get(1, 1) == 0


def test_access_after_close_raises():
    buf = SampleBuffer.zeros(2, 2)
    buf.close()
    buf.close()
    assert buf.closed
    assert repr(buf) == 'SampleBuffer(closed)'
    with pytest.raises(BufferReleasedError):
        buf.data


def test_context_manager_releases():
    with SampleBuffer.zeros(2, 2) as buf:
        assert not buf.closed
    assert buf.closed
