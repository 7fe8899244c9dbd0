"""
Factory class for creating and running the traditional segmentation algorithms.
"""

import os
import threading
from contextlib import contextmanager

from loguru import logger

from ..buffer import SampleBuffer
from ..errors import ParameterError
from .otsu_2d import Otsu2DSegmenter
from .params import Algorithm
from .triclass import TriclassSegmenter

SEGMENTER_TYPES = {
    Algorithm.OTSU_2D: Otsu2DSegmenter,
    Algorithm.TRICLASS: TriclassSegmenter,
}


def create_segmenter(params, progress_callback=None, status_callback=None, cancel_check=None):
    """
    Build the segmenter matching a parameter record.

    Args:
        params (Otsu2DParams or TriclassParams): Validated parameters; the
            record type selects the algorithm.

    Returns:
        BaseSegmenter
    """
    algorithm = getattr(params, 'algorithm', None)
    if algorithm not in SEGMENTER_TYPES:
        raise ParameterError('params', f"expected a segmentation parameter record, got {type(params).__name__}")
    return SEGMENTER_TYPES[algorithm](
        params,
        progress_callback=progress_callback,
        status_callback=status_callback,
        cancel_check=cancel_check,
    )


def process(buffer, params, progress_callback=None, status_callback=None, cancel_check=None):
    """
    Segment a sample buffer with the algorithm selected by ``params``.

    Returns:
        SampleBuffer: New 0/255 mask owned by the caller.
    """
    segmenter = create_segmenter(params, progress_callback, status_callback, cancel_check)
    return segmenter.process(buffer)


class TraditionalSegmenterFactory:
    """
    Factory class for creating and running traditional segmentation algorithms.

    Segmenters hold only immutable parameters, so one factory can serve
    several threads. At most ``max_workers`` calls run at the same time;
    further callers block until a slot frees up.
    """

    def __init__(self, config=None, max_workers=None, progress_callback=None, status_callback=None,
                 cancel_check=None):
        """
        Initialize the factory with the configuration.

        Args:
            config (dict, optional): Configuration for all segmentation methods.
                Should have keys for each method ('otsu_2d', 'triclass') with
                their respective configurations; ``enable: False`` skips one.
            max_workers (int, optional): Concurrent call limit. Defaults to the
                number of CPUs.
            progress_callback, status_callback, cancel_check (callable, optional):
                Passed to every segmenter.
        """
        self.config = config or {}
        self.max_workers = max_workers or os.cpu_count() or 1
        if self.max_workers < 1:
            raise ParameterError('max_workers', f"must be positive, got {self.max_workers}")
        self._slots = threading.BoundedSemaphore(self.max_workers)
        self._callbacks = {
            'progress_callback': progress_callback,
            'status_callback': status_callback,
            'cancel_check': cancel_check,
        }
        self.segmenters = {}

        self._init_segmenters()

    def _init_segmenters(self):
        """Initialize all enabled segmentation methods based on config."""
        for key in self.config:
            Algorithm.from_name(key)

        for algorithm, segmenter_type in SEGMENTER_TYPES.items():
            algorithm_config = self.config.get(algorithm.key, {})
            if algorithm_config.get('enable', True):
                self.segmenters[algorithm.key] = segmenter_type(algorithm_config, **self._callbacks)

        logger.debug(f"Enabled segmenters: {self.available_methods}, max workers: {self.max_workers}")

    @property
    def available_methods(self):
        return list(self.segmenters)

    def get(self, method):
        key = Algorithm.from_name(method).key
        if key not in self.segmenters:
            raise ValueError(f"Method '{method}' not available or not enabled")
        return self.segmenters[key]

    @contextmanager
    def worker_slot(self):
        """Hold one of the ``max_workers`` processing slots."""
        self._slots.acquire()
        try:
            yield
        finally:
            self._slots.release()

    def process(self, buffer, method):
        """
        Run one method on a sample buffer.

        Returns:
            SampleBuffer: New mask owned by the caller.
        """
        segmenter = self.get(method)
        with self.worker_slot():
            return segmenter.process(buffer)

    def segment(self, image, method=None):
        """
        Segment the image using the specified method or all enabled methods.

        Args:
            image (numpy.ndarray): The input image to segment.
            method (str, optional): The specific method to use ('otsu_2d' or 'triclass').
                If None, all enabled methods are used.

        Returns:
            dict or numpy.ndarray: If method is None, returns a dictionary with all results.
                Otherwise, returns the mask from the specified method.
        """
        if method is not None:
            return self._segment_one(image, method)

        return {name: self._segment_one(image, name) for name in self.segmenters}

    def _segment_one(self, image, method):
        with SampleBuffer.from_array(image) as buffer:
            with self.process(buffer, method) as mask:
                return mask.to_array()
