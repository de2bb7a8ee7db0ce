from typing import Optional


class VideoShareError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(VideoShareError):
    status_code = 400


class PayloadTooLargeError(VideoShareError):
    status_code = 413


class NotFoundError(VideoShareError):
    status_code = 404


class DuplicateVideoError(VideoShareError):
    status_code = 409


class RangeNotSatisfiableError(VideoShareError):
    """
    Raised for malformed or out-of-bounds Range headers.
    `total` is the full length, reported back as `Content-Range: bytes */total`.
    """

    status_code = 416

    def __init__(self, message: str, total: Optional[int] = None) -> None:
        super().__init__(message)
        self.total = total
