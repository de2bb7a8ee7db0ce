import logging
import mimetypes
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import Response, UploadFile

from core.config import CHUNK_SIZE, MAX_UPLOAD_BYTES, VIDEO_MIME_PREFIX
from core.errors import (
    PayloadTooLargeError,
    RangeNotSatisfiableError,
    ValidationError,
)
from schemas.video import VideoRecord

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_video_id() -> str:
    """
    Millisecond clock in base36 followed by 12 hex chars of a uuid4.
    The clock prefix keeps ids roughly upload ordered; the random part
    makes collisions between concurrent uploads negligible. The store
    still rejects duplicates, see `VideoStore.add`.
    """
    return _to_base36(time.time_ns() // 1_000_000) + uuid.uuid4().hex[:12]


def guess_mime(filename: str, fallback: str = "application/octet-stream") -> str:
    m, _ = mimetypes.guess_type(filename)
    return m or fallback


def resolve_content_type(file: UploadFile) -> str:
    content_type = (file.content_type or "").strip()
    if not content_type:
        content_type = guess_mime(file.filename or "")
    if not content_type.lower().startswith(VIDEO_MIME_PREFIX):
        logger.warning(
            "Rejected upload %r with content type %r", file.filename, content_type
        )
        raise ValidationError("Only video files are allowed")
    return content_type


def upload_limit_message(max_bytes: int) -> str:
    return f"File too large, limit is {max_bytes // (1024 * 1024)} MB"


def strip_extension(filename: str) -> str:
    root, _ = os.path.splitext(filename)
    return root or filename


def build_record(
    video_id: str,
    original_name: str,
    mime_type: str,
    size: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> VideoRecord:
    ext = os.path.splitext(original_name)[1]
    title = (title or "").strip() or strip_extension(original_name)
    return VideoRecord(
        id=video_id,
        title=title,
        description=description or "",
        stored_name=f"{video_id}{ext}",
        original_name=original_name,
        mime_type=mime_type,
        size_bytes=size,
        uploaded_at=datetime.now(timezone.utc),
        view_count=0,
    )


async def read_upload(
    file: UploadFile,
    max_bytes: int = MAX_UPLOAD_BYTES,
    chunk_size: int = CHUNK_SIZE,
) -> bytes:
    """
    Read the whole upload, giving up as soon as it grows past `max_bytes`.
    """
    buf = bytearray()
    try:
        while chunk := await file.read(chunk_size):
            buf.extend(chunk)
            if len(buf) > max_bytes:
                logger.warning(
                    "Rejected upload %r: larger than %d bytes", file.filename, max_bytes
                )
                raise PayloadTooLargeError(upload_limit_message(max_bytes))
    finally:
        await file.close()
    return bytes(buf)


def parse_range(range_header: str, file_size: int) -> Tuple[int, int]:
    """
    Parse a header like: Range: bytes=start-end
    Return (start, end) inclusive.

    Supports `bytes=start-end`, `bytes=start-` and the suffix form
    `bytes=-N`. An `end` past the last byte is clamped. Anything else
    (other units, multiple ranges, start past the end, start > end)
    raises RangeNotSatisfiableError.
    """
    try:
        units, _, rng = range_header.partition("=")
        rng = rng.strip()
        if units.strip().lower() != "bytes" or not rng or "," in rng:
            raise ValueError
        start_str, sep, end_str = rng.partition("-")
        start_str, end_str = start_str.strip(), end_str.strip()

        if not sep or (start_str == "" and end_str == ""):
            raise ValueError
        if not (start_str.isdigit() or start_str == ""):
            raise ValueError
        if not (end_str.isdigit() or end_str == ""):
            raise ValueError

        if start_str == "":
            # suffix range: last N bytes
            length = int(end_str)
            if length <= 0 or file_size == 0:
                raise ValueError
            start = max(file_size - length, 0)
            end = file_size - 1
        else:
            start = int(start_str)
            end = int(end_str) if end_str else file_size - 1
            end = min(end, file_size - 1)

        if start >= file_size or end < start:
            raise ValueError

        return start, end
    except ValueError:
        logger.warning("Unsatisfiable range %r for %d bytes", range_header, file_size)
        raise RangeNotSatisfiableError("Requested range not satisfiable", total=file_size)


def build_video_response(
    data: bytes,
    content_type: str,
    range_header: Optional[str] = None,
) -> Response:
    file_size = len(data)

    if not range_header:
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Length": str(file_size),
            "Cache-Control": "no-cache",
        }
        return Response(content=data, headers=headers, media_type=content_type)

    start, end = parse_range(range_header, file_size)
    content_length = end - start + 1
    headers = {
        "Content-Range": f"bytes {start}-{end}/{file_size}",
        "Accept-Ranges": "bytes",
        "Content-Length": str(content_length),
        "Cache-Control": "no-cache",
    }
    logger.debug("Serving bytes %d-%d/%d", start, end, file_size)
    return Response(
        content=data[start:end + 1],
        status_code=206,
        headers=headers,
        media_type=content_type,
    )
