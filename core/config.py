import os
from dataclasses import dataclass, field
from typing import List

MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50 MiB per upload
CHUNK_SIZE = 1024 * 1024  # 1 MiB for upload reads

# multipart boundaries and form fields on top of the file itself
MULTIPART_OVERHEAD = 64 * 1024

UPLOAD_FIELD = "video"
VIDEO_MIME_PREFIX = "video/"

CORS_METHODS = ["GET", "POST", "DELETE"]
CORS_HEADERS = ["Content-Type", "Authorization"]


def _env_int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _env_list(key: str, default: List[str]) -> List[str]:
    value = os.getenv(key)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime settings, read once by the app factory."""

    max_upload_bytes: int = MAX_UPLOAD_BYTES
    chunk_size: int = CHUNK_SIZE
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            max_upload_bytes=_env_int("VIDEO_MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES),
            chunk_size=_env_int("VIDEO_CHUNK_SIZE", CHUNK_SIZE),
            cors_origins=_env_list("VIDEO_CORS_ORIGINS", ["*"]),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 8000),
        )
