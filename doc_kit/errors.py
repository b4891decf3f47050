class DetectionError(Exception):
    """
    Base class for failures of a single `DetectionPipeline.detect()` call.

    Every subclass is terminal for the call that raised it: no partial result
    is returned and nothing is retried.
    """


class InvalidInput(DetectionError, ValueError):
    """Zero-sized or malformed frame, or a model input shape mismatch."""


class InferenceFailure(DetectionError, RuntimeError):
    """The tensor runtime raised while running one of the two models."""


class ShapeMismatch(DetectionError, ValueError):
    """A returned tensor does not match the expected layout or index bounds."""
