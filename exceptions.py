# exceptions.py
# Error taxonomy for the face matching pipeline.


class RecognitionError(Exception):
    """Base exception for the face matching pipeline."""


class DeviceUnavailable(RecognitionError):
    """Raised when the camera or frame source cannot be acquired."""


class ModelUnready(RecognitionError):
    """Raised by the detector before its models have warmed up."""


class DetectionDegraded(RecognitionError):
    """Detection has failed on several consecutive ticks."""


class DimensionMismatch(RecognitionError, ValueError):
    """Raised when two embeddings do not share the system-wide dimensionality."""


class PreconditionNotMet(RecognitionError):
    """Raised when a session transition is requested from the wrong state."""


class GalleryFetchError(RecognitionError):
    """Raised when the gallery store cannot be read."""
