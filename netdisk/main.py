import unicodedata
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable
from urllib.parse import quote

import uvicorn
from fastapi import Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from netdisk.blobs import BlobGateway
from netdisk.config import Settings, get_settings
from netdisk.errors import BadRequest, NetdiskError
from netdisk.kv import KeyValueStore, build_kv_store
from netdisk.ledger import FileLedger, LedgerLocks
from netdisk.logger_config import setup_logger
from netdisk.models import (
    FileRecord,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ShareResponse,
    UploadResponse,
    UserResponse,
    utc_now,
)
from netdisk.shares import ShareLedger
from netdisk.storage import BlobStore, LocalBlobStore
from netdisk.tokens import TokenService, parse_bearer
from netdisk.users import UserDirectory


def content_disposition(filename: str) -> str:
    cleaned = filename.replace("\r", "").replace("\n", "")
    fallback = unicodedata.normalize("NFKD", cleaned).encode("ascii", "ignore").decode("ascii")
    escaped = fallback.replace("\\", "\\\\").replace('"', '\\"')
    value = f'attachment; filename="{escaped}"'
    if fallback != cleaned:
        value += f"; filename*=utf-8''{quote(cleaned)}"
    return value


def attachment_response(record: FileRecord, body: AsyncIterator[bytes]) -> StreamingResponse:
    return StreamingResponse(
        body,
        media_type="application/octet-stream",
        headers={"Content-Disposition": content_disposition(record.name)},
    )


async def iter_upload(upload: UploadFile, chunk_size: int) -> AsyncIterator[bytes]:
    while chunk := await upload.read(chunk_size):
        yield chunk


def create_app(
    settings: Settings | None = None,
    kv_store: KeyValueStore | None = None,
    blob_store: BlobStore | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    settings = settings or get_settings()
    logger = setup_logger(settings)

    kv_store = kv_store or build_kv_store(settings)
    blob_store = blob_store or LocalBlobStore(settings.blob_dir, settings.blob_chunk_size)

    tokens = TokenService(
        kv_store,
        session_ttl_seconds=settings.session_ttl_seconds,
        share_ttl_seconds=settings.share_ttl_seconds,
        clock=clock,
    )
    users = UserDirectory(kv_store, clock=clock)
    ledger = FileLedger(kv_store, LedgerLocks() if settings.serialize_ledger_writes else None)
    shares = ShareLedger(ledger, tokens)
    gateway = BlobGateway(
        blob_store,
        ledger,
        shares,
        max_upload_size_bytes=settings.max_upload_size_bytes,
        clock=clock,
    )
    cors_headers = settings.cors_headers()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        blob_store.init()
        logger.info("Starting %s (%s), kv backend: %s", settings.app_name, settings.app_env, settings.kv_backend)
        yield
        await kv_store.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    def error_response(status_code: int, message: str) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"error": message}, headers=cors_headers)

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=cors_headers)
        response = await call_next(request)
        response.headers.update(cors_headers)
        return response

    @app.exception_handler(NetdiskError)
    async def netdisk_exception_handler(request: Request, exc: NetdiskError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        missing_fields = [
            ".".join(str(item) for item in error["loc"] if item != "body") or "body"
            for error in exc.errors()
            if error.get("type") == "missing"
        ]
        if missing_fields:
            message = f"missing parameters: {', '.join(missing_fields)}"
        else:
            message = "invalid request parameters"
        return error_response(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_: Request, exc: StarletteHTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        return error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "internal server error")

    async def current_user(authorization: str | None = Header(default=None)) -> str:
        binding = await tokens.resolve_session_token(parse_bearer(authorization))
        return binding.username

    @app.get("/")
    async def root() -> dict:
        return {"message": "netdisk API"}

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "environment": settings.app_env}

    @app.post("/api/login", response_model=LoginResponse)
    async def login(payload: LoginRequest):
        identity = await users.ensure_identity(payload.username)
        token = await tokens.issue_session_token(identity.username)
        logger.info("Issued session for %s", identity.username)
        return LoginResponse(token=token, username=identity.username)

    @app.get("/api/user", response_model=UserResponse)
    async def get_user(username: str = Depends(current_user)):
        return UserResponse(username=username)

    @app.get("/api/files", response_model=list[FileRecord])
    async def list_files(username: str = Depends(current_user)):
        return await ledger.list_files(username)

    @app.post("/api/upload", response_model=UploadResponse)
    async def upload_file(
        file: UploadFile | None = File(default=None),
        username: str = Depends(current_user),
    ):
        if file is None:
            raise BadRequest("no file uploaded")
        record = await gateway.upload(
            username,
            file.filename or "unnamed",
            iter_upload(file, settings.blob_chunk_size),
        )
        return UploadResponse(message="upload succeeded", file=record)

    @app.get("/api/download/{file_id}")
    async def download_file(file_id: str, username: str = Depends(current_user)):
        record, body = await gateway.download(file_id, username)
        return attachment_response(record, body)

    @app.post("/api/share/{file_id}", response_model=ShareResponse)
    async def share_file(file_id: str, request: Request, username: str = Depends(current_user)):
        share_url = await shares.create_share(username, file_id, str(request.url))
        return ShareResponse(share_url=share_url)

    @app.delete("/api/files/{file_id}", response_model=MessageResponse)
    async def delete_file(file_id: str, username: str = Depends(current_user)):
        await gateway.delete(file_id, username)
        return MessageResponse(message="delete succeeded")

    @app.get("/share/{token}")
    async def download_shared(token: str):
        record, body = await gateway.download_shared(token)
        return attachment_response(record, body)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
