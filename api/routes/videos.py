import asyncio
import functools
import logging
from datetime import datetime, timezone
from typing import Optional, List, Union

from fastapi import APIRouter, Depends, File, Form, Header, Request, Response, UploadFile
from starlette.datastructures import UploadFile as StarletteUploadFile

from core.config import Settings
from core.errors import DuplicateVideoError, NotFoundError, ValidationError
from schemas.video import (
    ErrorResponse,
    HealthStatus,
    MessageResponse,
    UploadResult,
    VideoRecord,
)
from services.video_service import (
    build_record,
    build_video_response,
    generate_video_id,
    read_upload,
    resolve_content_type,
)
from services.video_store import VideoStore

logger = logging.getLogger(__name__)

ID_ATTEMPTS = 3

router = APIRouter(prefix="/api", tags=["videos"])


def get_store(request: Request) -> VideoStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/videos", response_model=List[VideoRecord])
def list_videos(
    q: Optional[str] = None,
    store: VideoStore = Depends(get_store),
):
    videos = store.list()
    if q and q.strip():
        needle = q.strip().lower()
        videos = [
            v for v in videos
            if needle in v.title.lower() or needle in v.description.lower()
        ]
    return videos


@router.post(
    "/upload",
    response_model=UploadResult,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
)
async def upload_video(
    video: Union[UploadFile, str, None] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    store: VideoStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    # a plain text field named "video" is not a file either
    if not isinstance(video, StarletteUploadFile) or not video.filename:
        raise ValidationError("No file uploaded")

    content_type = resolve_content_type(video)
    data = await read_upload(
        video, max_bytes=settings.max_upload_bytes, chunk_size=settings.chunk_size
    )

    loop = asyncio.get_running_loop()
    for attempt in range(ID_ATTEMPTS):
        record = build_record(
            generate_video_id(),
            original_name=video.filename,
            mime_type=content_type,
            size=len(data),
            title=title,
            description=description,
        )
        try:
            saved = await loop.run_in_executor(
                None, functools.partial(store.add, record, data)
            )
            break
        except DuplicateVideoError:
            if attempt == ID_ATTEMPTS - 1:
                raise
            logger.warning("Video id collision on %s, retrying", record.id)

    logger.info(
        "Uploaded video %s (%r, %s, %d bytes)",
        saved.id, saved.original_name, saved.mime_type, saved.size_bytes,
    )
    return UploadResult(
        success=True,
        message="Video uploaded successfully",
        video=saved,
    )


@router.head("/video/{video_id}")
def head_video(video_id: str, store: VideoStore = Depends(get_store)):
    meta, data = store.get_with_blob(video_id)
    if meta is None:
        raise NotFoundError("Video not found")
    if data is None:
        raise NotFoundError("Video file not found")

    return Response(
        status_code=200,
        headers={
            "Accept-Ranges": "bytes",
            "Content-Length": str(len(data)),
            "Content-Type": meta.mime_type,
        },
    )


@router.get(
    "/video/{video_id}",
    response_class=Response,
    responses={404: {"model": ErrorResponse}, 416: {"model": ErrorResponse}},
)
def stream_video(
    video_id: str,
    range: Optional[str] = Header(None),
    store: VideoStore = Depends(get_store),
):
    meta, data = store.get_with_blob(video_id)
    if meta is None:
        raise NotFoundError("Video not found")
    if data is None:
        raise NotFoundError("Video file not found")

    return build_video_response(data, meta.mime_type, range)


@router.get(
    "/video-info/{video_id}",
    response_model=VideoRecord,
    responses={404: {"model": ErrorResponse}},
)
def get_video_info(video_id: str, store: VideoStore = Depends(get_store)):
    record = store.record_view(video_id)
    if record is None:
        raise NotFoundError("Video not found")
    return record


@router.delete(
    "/video/{video_id}",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse}},
)
def delete_video(video_id: str, store: VideoStore = Depends(get_store)):
    record = store.remove(video_id)
    if record is None:
        raise NotFoundError("Video not found")

    logger.info("Deleted video %s (%r)", record.id, record.original_name)
    return MessageResponse(message="Video deleted successfully")


@router.get("/health", response_model=HealthStatus)
def health(store: VideoStore = Depends(get_store)):
    return HealthStatus(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        videos=store.count(),
    )
