"""Engine error types.

Validation errors are raised before any pixel is touched, so a caller that
catches them can keep displaying the buffer it already has.
"""


class ScrambleryError(Exception):
    """Base class for every error the engine surfaces to callers."""


class InvalidBuffer(ScrambleryError, ValueError):
    """Zero-size buffer, wrong shape/dtype, or byte length mismatch."""


class InvalidParameter(ScrambleryError, ValueError):
    """Operation parameter outside its accepted domain."""


class OutOfBounds(ScrambleryError, IndexError):
    """Point access outside the buffer. Bulk operations clip instead."""


class EffectFailed(ScrambleryError, RuntimeError):
    """An effect raised something other than a validation error."""

    def __init__(self, effect_id: str, cause: Exception):
        super().__init__(f"Effect {effect_id} failed: {type(cause).__name__}")
        self.effect_id = effect_id
        self.cause = cause
