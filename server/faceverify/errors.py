"""
Failure taxonomy for a verification request.

Every failure carries a stable ``kind`` (reported to the browser) and a
short user-facing ``message``. "No face detected" is an outcome of a
request, not an error, and has no class here.
"""
from __future__ import annotations


class FaceVerifyError(Exception):
    kind = "internal_error"
    message = "Error processing image"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)
        self.detail = detail or self.message


class ProviderUnavailable(FaceVerifyError):
    """Model assets could not be loaded. Retry on the next request."""

    kind = "provider_unavailable"
    message = "Face model is unavailable"


class InvalidImage(FaceVerifyError):
    kind = "invalid_image"
    message = "Error processing image"


class DimensionMismatch(FaceVerifyError):
    kind = "dimension_mismatch"
    message = "Stored face data is inconsistent"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"embedding length {actual} does not match query length {expected}")
        self.expected = expected
        self.actual = actual


class StoreReadFailure(FaceVerifyError):
    kind = "store_read_failure"
    message = "Error checking database"


class StoreWriteFailure(FaceVerifyError):
    kind = "store_write_failure"
    message = "Failed to save face"


class CaptureDeviceFailure(FaceVerifyError):
    """Camera missing, busy or permission denied. Retry or upload a file."""

    kind = "capture_device_failure"
    message = "Error accessing camera"
