import threading
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from otsu_triclass import (
    Otsu2DParams,
    Otsu2DSegmenter,
    ParameterError,
    ProcessingCancelled,
    SampleBuffer,
    TraditionalSegmenterFactory,
    TriclassParams,
    TriclassSegmenter,
    create_segmenter,
    process,
)


def test_all_methods_enabled_by_default(blobs_image):
    factory = TraditionalSegmenterFactory()
    assert factory.available_methods == ['otsu_2d', 'triclass']

    results = factory.segment(blobs_image[0])
    assert set(results) == {'otsu_2d', 'triclass'}
    for mask in results.values():
        assert mask.shape == blobs_image[0].shape


def test_disabled_method_is_skipped(blobs_image):
    factory = TraditionalSegmenterFactory({'triclass': {'enable': False}})
    assert factory.available_methods == ['otsu_2d']
    with pytest.raises(ValueError):
        factory.segment(blobs_image[0], 'triclass')


def test_single_method_returns_mask(blobs_image):
    factory = TraditionalSegmenterFactory()
    mask = factory.segment(blobs_image[0], 'Iterative Triclass')
    assert isinstance(mask, np.ndarray)
    np.testing.assert_array_equal(mask, TriclassSegmenter().segment(blobs_image[0]))


def test_config_is_validated_up_front():
    with pytest.raises(ParameterError):
        TraditionalSegmenterFactory({'otsu_2d': {'window_size': 99}})
    with pytest.raises(ValueError):
        TraditionalSegmenterFactory({'watershed': {}})
    with pytest.raises(ParameterError):
        TraditionalSegmenterFactory(max_workers=-1)


def test_create_segmenter_dispatches_on_record_type():
    assert isinstance(create_segmenter(Otsu2DParams()), Otsu2DSegmenter)
    assert isinstance(create_segmenter(TriclassParams()), TriclassSegmenter)
    with pytest.raises(ParameterError):
        create_segmenter({'window_size': 7})


def test_process_function(buffer):
    with process(buffer, Otsu2DParams()) as mask:
        assert mask.shape == buffer.shape
        assert mask is not buffer


def test_concurrent_calls_match_sequential(blobs_image):
    image = blobs_image[0]
    factory = TraditionalSegmenterFactory(max_workers=2)
    expected = factory.segment(image, 'otsu_2d')

    with ThreadPoolExecutor(max_workers=4) as executor:
        masks = list(executor.map(lambda _: factory.segment(image, 'otsu_2d'), range(6)))

    for mask in masks:
        np.testing.assert_array_equal(mask, expected)


def test_worker_slots_bound_concurrency():
    factory = TraditionalSegmenterFactory(max_workers=2)
    active = []
    peak = []
    lock = threading.Lock()

    def hold():
        with factory.worker_slot():
            with lock:
                active.append(1)
                peak.append(len(active))
            time.sleep(0.05)
            with lock:
                active.pop()

    threads = [threading.Thread(target=hold) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert max(peak) <= 2


def test_slot_released_after_failure():
    factory = TraditionalSegmenterFactory(max_workers=1, cancel_check=lambda: True)
    for _ in range(2):
        with pytest.raises(ProcessingCancelled):
            factory.segment(np.zeros((8, 8), dtype=np.uint8), 'otsu_2d')


def test_callbacks_reach_segmenters(blobs_image):
    statuses = []
    factory = TraditionalSegmenterFactory(status_callback=statuses.append)
    factory.segment(blobs_image[0], 'otsu_2d')
    assert any(status.startswith('2D Otsu') for status in statuses)


def test_input_buffer_untouched(buffer):
    original = buffer.to_array()
    factory = TraditionalSegmenterFactory()
    with factory.process(buffer, 'triclass') as mask:
        assert isinstance(mask, SampleBuffer)
    np.testing.assert_array_equal(buffer.data, original)
