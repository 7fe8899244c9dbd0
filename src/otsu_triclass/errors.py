"""
Exception hierarchy for the segmentation pipeline.
"""


class SegmentationError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(SegmentationError, ValueError):
    """Input or parameters were rejected before any processing started."""


class InvalidInputError(ValidationError):
    """The input sample buffer is malformed (empty, zero-sized, bad channel count)."""


class ParameterError(ValidationError):
    """A parameter value is missing, of the wrong type or out of range."""

    def __init__(self, key, message):
        super().__init__(f"{key}: {message}")
        self.key = key


class ProcessingError(SegmentationError):
    """
    A pipeline stage failed part way through.

    Every buffer created by the call has been released by the time this
    propagates to the caller.
    """

    def __init__(self, stage, cause=None):
        message = f"stage '{stage}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.stage = stage
        self.cause = cause


class BufferReleasedError(ProcessingError):
    """A sample buffer was accessed after it was closed."""

    def __init__(self):
        super().__init__("buffer access", "buffer has already been released")


class ProcessingCancelled(SegmentationError):
    """
    Raised when the cancellation predicate fires at a step boundary.

    This is not a ProcessingError: callers treat it as a normal, requested
    termination rather than a failure.
    """

    def __init__(self, stage):
        super().__init__(f"processing cancelled at '{stage}'")
        self.stage = stage
