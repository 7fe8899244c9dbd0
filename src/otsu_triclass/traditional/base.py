"""
Base class for all traditional segmentation algorithms.
"""

import time
from abc import ABC, abstractmethod
from contextlib import ExitStack, contextmanager

import cv2
import numpy as np
from loguru import logger

from ..buffer import SampleBuffer
from ..errors import InvalidInputError, ParameterError, ProcessingCancelled, ProcessingError
from ..processing.filters import PreprocessingChain, to_grayscale
from ..processing.morphology import cleanup_mask


class BaseSegmenter(ABC):
    """Base class that all traditional segmentation algorithms should inherit from."""

    params_class = None

    def __init__(self, config=None, progress_callback=None, status_callback=None, cancel_check=None):
        """
        Initialize the segmenter.

        Parameters are validated here, so an invalid configuration fails before
        any image is touched.

        Args:
            config (dict or parameter record, optional): Configuration parameters for the segmenter.
            progress_callback (callable, optional): Receives a completion fraction in [0, 1].
            status_callback (callable, optional): Receives short status strings.
            cancel_check (callable, optional): Returns True when processing should stop.
        """
        self.params = self._build_params(config)
        self.progress_callback = progress_callback
        self.status_callback = status_callback
        self.cancel_check = cancel_check

    def _build_params(self, config):
        if config is None:
            return self.params_class()
        if isinstance(config, self.params_class):
            return config
        if isinstance(config, dict):
            return self.params_class.from_dict(config)
        raise ParameterError('config', f"expected dict or {self.params_class.__name__}, got {type(config).__name__}")

    @property
    def name(self):
        return self.params.algorithm.display_name

    def segment(self, image):
        """
        Segment the input image.

        Args:
            image (numpy.ndarray): Input image with 1, 3 (BGR) or 4 (BGRA) channels.

        Returns:
            numpy.ndarray: uint8 mask where 255 marks the segmented region.
        """
        with SampleBuffer.from_array(image) as buffer:
            with self.process(buffer) as mask:
                return mask.to_array()

    def process(self, buffer):
        """
        Run the full pipeline on a sample buffer.

        Grayscale conversion, preprocessing, the algorithm-specific
        binarization and the optional cleanup run in that order. Every
        intermediate buffer is released before returning, including when a
        stage fails or the call is cancelled.

        Args:
            buffer (SampleBuffer): Input with 1, 3 or 4 channels; left unchanged.

        Returns:
            SampleBuffer: New single-channel 0/255 mask owned by the caller.

        Raises:
            InvalidInputError: If the buffer is not usable.
            ProcessingError: If a stage fails, naming the stage.
            ProcessingCancelled: If ``cancel_check`` fired at a step boundary.
        """
        self._validate_input(buffer)
        start = time.perf_counter()
        self._report(0.0, f"{self.name}: starting")

        with ExitStack() as stack:
            working = stack.enter_context(self.preprocess_input(buffer))

            mask = stack.enter_context(self.binarize(working))

            with self._stage('postprocessing', 1.0):
                result = self.postprocess(mask)

        logger.debug(f"{self.name} finished {result.rows}x{result.cols} in {time.perf_counter() - start:.4f}s")
        self._report(1.0, f"{self.name}: done")
        return result

    def preprocess_input(self, buffer):
        """Grayscale conversion followed by ``preprocess``; returns a new buffer."""
        with self._stage('grayscale', 0.05):
            gray = to_grayscale(buffer)
        with gray:
            with self._stage('preprocessing', 0.25):
                return self.preprocess(gray)

    def preprocessing_chain(self):
        """The filter steps applied to the grayscale image. Empty by default."""
        return PreprocessingChain()

    def preprocess(self, gray):
        """
        Preprocess the grayscale image before segmentation.

        Args:
            gray (SampleBuffer): Single-channel input.

        Returns:
            SampleBuffer: New preprocessed buffer.
        """
        chain = self.preprocessing_chain()
        logger.debug(f"{self.name} preprocessing steps: {chain.enabled_steps}")
        return chain.run(gray, checkpoint=self._checkpoint)

    @abstractmethod
    def binarize(self, working):
        """
        Produce the raw 0/255 mask from the preprocessed image.

        Args:
            working (SampleBuffer): Preprocessed single-channel image.

        Returns:
            SampleBuffer: New mask of the same size.
        """

    def postprocess(self, mask):
        """
        Postprocess the segmentation mask.

        Args:
            mask (SampleBuffer): Raw 0/255 mask.

        Returns:
            SampleBuffer: New mask, cleaned when ``result_cleanup`` is enabled.
        """
        if not self.params.result_cleanup:
            return mask.clone()

        cleaned = cleanup_mask(mask)
        logger.debug(
            f"{self.name} cleanup: foreground {np.count_nonzero(mask.data)} -> {np.count_nonzero(cleaned.data)} pixels"
        )
        return cleaned

    def _validate_input(self, buffer):
        if not isinstance(buffer, SampleBuffer):
            raise InvalidInputError(f"expected SampleBuffer, got {type(buffer).__name__}")
        if buffer.closed:
            raise InvalidInputError("input buffer has already been released")

    def _checkpoint(self, stage):
        if self.cancel_check is not None and self.cancel_check():
            logger.debug(f"{self.name} cancelled at '{stage}'")
            raise ProcessingCancelled(stage)

    def _report(self, fraction, status=None):
        if fraction is not None and self.progress_callback is not None:
            self.progress_callback(min(max(fraction, 0.0), 1.0))
        if status is not None and self.status_callback is not None:
            self.status_callback(status)

    @contextmanager
    def _stage(self, stage, fraction):
        """
        Step boundary: checks for cancellation, times the step, turns
        allocation and OpenCV failures into ProcessingError and reports progress.
        """
        self._checkpoint(stage)
        self._report(None if fraction is None else max(fraction - 0.05, 0.0), f"{self.name}: {stage}")
        start = time.perf_counter()
        try:
            yield
        except (MemoryError, cv2.error) as e:
            raise ProcessingError(stage, e) from e
        logger.debug(f"{self.name} stage '{stage}' took {time.perf_counter() - start:.4f}s")
        self._report(fraction)

    def __repr__(self):
        return f"{type(self).__name__}({self.params!r})"
