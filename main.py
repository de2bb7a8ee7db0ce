import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.middleware import UploadSizeLimitMiddleware
from api.routes.videos import router as videos_router
from core.config import CORS_HEADERS, CORS_METHODS, MULTIPART_OVERHEAD, Settings
from core.errors import RangeNotSatisfiableError, VideoShareError
from services.video_store import VideoStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(VideoShareError)
    async def video_share_error_handler(request: Request, exc: VideoShareError):
        headers = None
        if isinstance(exc, RangeNotSatisfiableError) and exc.total is not None:
            headers = {"Content-Range": f"bytes */{exc.total}"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[VideoStore] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store if store is not None else VideoStore()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Video share service started (upload limit %d bytes)",
            settings.max_upload_bytes,
        )
        yield
        # in-memory only: nothing survives a restart
        app.state.store.clear()

    app = FastAPI(title="Video share service", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store

    app.add_middleware(
        UploadSizeLimitMiddleware,
        path="/api/upload",
        max_body_size=settings.max_upload_bytes + MULTIPART_OVERHEAD,
        max_upload_bytes=settings.max_upload_bytes,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    register_exception_handlers(app)
    app.include_router(videos_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)
