"""Cross-cutting HTTP pieces: request logging, last-resort error handling, cached static files."""
import os
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from upload_gateway.config import CACHE_CONTROL
from upload_gateway.logger_config import setup_logger

logger = setup_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One line per request: ``METHOD path status length - N ms``."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} "
            f"{response.headers.get('content-length', '-')} - {elapsed_ms:.3f} ms"
        )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error"},
            )


class CachedStaticFiles(StaticFiles):
    """Flat, read-only file serving with a fixed one hour cache lifetime."""

    async def get_response(self, path: str, scope):
        # Stored files live directly in the upload directory
        if os.sep in path or (os.altsep and os.altsep in path):
            raise StarletteHTTPException(status_code=404)
        return await super().get_response(path, scope)

    def file_response(self, *args, **kwargs):
        response = super().file_response(*args, **kwargs)
        response.headers["Cache-Control"] = CACHE_CONTROL
        return response
