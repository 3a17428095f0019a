from typing import Optional


class PhotoboothError(Exception):
    pass


class CaptureError(PhotoboothError):
    pass


class CameraUnavailable(CaptureError):
    PERMISSION_DENIED = "permission-denied"
    NOT_FOUND = "not-found"
    DEVICE_BUSY = "device-busy"
    UNSUPPORTED = "unsupported"

    REASONS = (PERMISSION_DENIED, NOT_FOUND, DEVICE_BUSY, UNSUPPORTED)

    def __init__(self, reason: str, detail: Optional[str] = None):
        if reason not in self.REASONS:
            raise ValueError(f"Unknown camera failure reason: {reason}")
        self.reason = reason
        self.detail = detail
        super().__init__(f"Camera unavailable ({reason})" + (f": {detail}" if detail else ""))


class SessionStateError(PhotoboothError):
    pass


class CompositionError(PhotoboothError):
    pass


class DecodeFailure(CompositionError):
    def __init__(self, index: int, detail: Optional[str] = None):
        self.index = index
        super().__init__(f"Could not decode frame {index + 1}" + (f": {detail}" if detail else ""))


class StorageFailure(PhotoboothError):
    pass


class StripNotFound(PhotoboothError):
    def __init__(self, strip_id: str):
        self.strip_id = strip_id
        super().__init__(f"Photo strip not found: {strip_id}")
