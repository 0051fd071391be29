"""Request logging middleware.

Pure ASGI middleware rather than BaseHTTPMiddleware, so streaming responses
and lifespan events pass through untouched.
"""

import logging
import time

from fastapi import FastAPI
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class LoggingMiddleware:
    """Logs each HTTP request with its status and timing."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        request = Request(scope)
        logger.debug(f"Request: {request.method} {request.url.path}")

        status_code: int = 0

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
            process_time = time.time() - start_time
            logger.debug(
                f"Response: {status_code} | Time: {process_time:.4f}s | Path: {request.url.path}"
            )
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"Request failed: {request.method} {request.url.path} | "
                f"Time: {process_time:.4f}s | "
                f"Error: {str(e)}"
            )
            raise


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(LoggingMiddleware)
