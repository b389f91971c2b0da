import asyncio
import secrets
from contextlib import asynccontextmanager, suppress
from typing import Optional
from urllib.parse import quote

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from upload_gateway import config
from upload_gateway.config import Settings
from upload_gateway.errors import (
    GatewayError,
    NoFilesReceived,
    ServerMisconfigured,
    Unauthorized,
)
from upload_gateway.logger_config import setup_logger
from upload_gateway.middleware import CachedStaticFiles, ErrorHandlerMiddleware, RequestLoggingMiddleware
from upload_gateway.schemas import DeleteResponse, HealthResponse, UploadedFile, UploadResponse
from upload_gateway.services.multipart_upload import MultipartUpload
from upload_gateway.services.retention import retention_loop
from upload_gateway.services.storage_manager import StorageManager

# Logger setup
logger = setup_logger()

security_scheme = HTTPBearer(auto_error=False)

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage_manager(request: Request) -> StorageManager:
    return request.app.state.storage_manager


async def require_bearer(
    settings: Settings = Depends(get_settings),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
):
    """Reject the request unless it carries the configured bearer token."""
    if not settings.upload_token:
        raise ServerMisconfigured()
    # Exact "Bearer" scheme, case included
    if credentials is None or credentials.scheme != "Bearer" or not secrets.compare_digest(
        credentials.credentials.encode(), settings.upload_token.encode()
    ):
        raise Unauthorized()


def public_base_url(request: Request, settings: Settings) -> str:
    """Base for returned URLs: PUBLIC_BASE, else the host the client used."""
    if settings.public_base:
        return settings.public_base.rstrip("/")
    forwarded = request.headers.get("x-forwarded-host", "").split(",")[0].strip()
    host = forwarded or request.headers.get("host") or request.url.netloc
    return f"{request.url.scheme}://{host}"


@router.get("/health", response_model=HealthResponse)
async def health():
    return {"ok": True}


@router.post("/upload", response_model=UploadResponse, dependencies=[Depends(require_bearer)])
async def upload_files(request: Request):
    """Store the parts of the ``file`` (max 1) and ``files`` (max 20) fields.

    The token is checked before the body is read. The body is then streamed
    part by part into the upload directory; a rejected part removes whatever
    the request already stored.
    """
    settings = get_settings(request)
    storage_manager = get_storage_manager(request)

    logger.info("Receiving upload")
    stored = await MultipartUpload(storage_manager, request.headers).parse(request.stream())
    if not stored:
        raise NoFilesReceived()

    base = public_base_url(request, settings)
    uploaded = [
        UploadedFile(
            url=f"{base}{config.FILES_PREFIX}/{quote(item.filename)}",
            filename=item.filename,
            size=item.size,
            mimetype=item.mimetype,
        )
        for item in stored
    ]
    logger.info(f"Stored {len(uploaded)} file(s): {', '.join(item.filename for item in uploaded)}")
    return UploadResponse(uploaded=uploaded)


@router.delete(config.FILES_PREFIX + "/{name}", response_model=DeleteResponse, dependencies=[Depends(require_bearer)])
async def delete_file(name: str, request: Request):
    """Delete a stored file. Deleting a missing file still succeeds."""
    storage_manager = get_storage_manager(request)
    logger.info(f"Receiving delete request for: {name}")

    basename = await storage_manager.delete_file(name)

    logger.info(f"Deleted file: {basename}")
    return DeleteResponse(deleted=True, name=basename)


async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(status_code=422, content={"error": message or "Invalid request"})


def create_app(settings: Settings) -> FastAPI:
    storage_manager = StorageManager(settings.upload_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await storage_manager.initialize()
        sweeper = asyncio.create_task(
            retention_loop(storage_manager, settings.max_age_seconds, settings.sweep_interval_seconds)
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(title="Upload Gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.storage_manager = storage_manager

    # Last added is outermost: CORS headers end up on every response
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Routes before the mount so DELETE /files/{name} wins over static serving
    app.include_router(router)
    app.mount(
        config.FILES_PREFIX,
        CachedStaticFiles(directory=str(settings.upload_dir), check_dir=False),
        name="files",
    )
    return app


def run():
    load_dotenv()
    settings = Settings.from_env()
    setup_logger(settings.log_dir, settings.log_level)

    logger.info("Starting upload gateway...")
    logger.info(f"Upload directory: {settings.upload_dir}")
    logger.info(f"Maximum file age: {settings.max_age_hours}h")
    if not settings.upload_token:
        logger.warning("UPLOAD_TOKEN is not set; upload and delete will fail")

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
