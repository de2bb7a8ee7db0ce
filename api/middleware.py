import logging

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.errors import PayloadTooLargeError
from services.video_service import upload_limit_message

logger = logging.getLogger(__name__)


class UploadSizeLimitMiddleware:
    """
    Rejects uploads to `path` whose body grows past `max_body_size`.

    A declared Content-Length over the limit is refused before the app
    runs. Otherwise body messages are counted as they are received, so a
    chunked upload is cut off at the first message over the limit instead
    of being spooled by the multipart parser first.
    """

    def __init__(
        self,
        app: ASGIApp,
        path: str,
        max_body_size: int,
        max_upload_bytes: int,
    ) -> None:
        self.app = app
        self.path = path
        self.max_body_size = max_body_size
        self.max_upload_bytes = max_upload_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["method"] != "POST"
            or scope["path"] != self.path
        ):
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > self.max_body_size:
            logger.warning("Rejected upload: Content-Length %s over limit", length)
            await self._reject(scope, receive, send)
            return

        received = 0
        exceeded = False
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_size:
                    exceeded = True
                    raise PayloadTooLargeError(upload_limit_message(self.max_upload_bytes))
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            # whatever the app answers after the cutoff is replaced by a 413
            if exceeded:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except Exception:
            if not exceeded:
                raise

        if exceeded and not response_started:
            logger.warning("Rejected upload: body over %d bytes", self.max_body_size)
            await self._reject(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(
            status_code=413,
            content={"error": upload_limit_message(self.max_upload_bytes)},
        )
        await response(scope, receive, send)
