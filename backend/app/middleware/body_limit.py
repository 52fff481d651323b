"""Request body size limiting middleware."""

import logging

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from backend.app.api.routes.study_material import error_response

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware:
    """ASGI middleware rejecting request bodies above a byte limit with 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked transfer) are read up to the limit before the application
    sees them, then replayed.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        """Initialize body size limit middleware.

        Args:
            app: Wrapped ASGI application
            max_bytes: Largest accepted body in bytes
        """
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            if content_length.isdigit() and int(content_length) > self.max_bytes:
                await self._reject(scope, receive, send, int(content_length))
                return
            await self.app(scope, receive, send)
            return

        buffered: list[Message] = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            buffered.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > self.max_bytes:
                await self._reject(scope, receive, send, received)
                return
            more_body = message.get("more_body", False)

        async def replay() -> Message:
            if buffered:
                return buffered.pop(0)
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: int) -> None:
        logger.warning(
            f"Rejected {scope.get('path', '')} body of at least {size} bytes (limit {self.max_bytes})"
        )
        response = error_response(413, "Document too large")
        await response(scope, receive, send)
