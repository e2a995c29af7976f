"""FastAPI application exposing the mailbox operations.

Every response uses the ``ApiResponse`` envelope. Errors are mapped by a
single exception handler so internal error text never reaches the caller.
"""

from __future__ import annotations

from urllib.parse import quote

import structlog
from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from gmail_sync.config import Settings, get_settings
from gmail_sync.exceptions import GmailSyncError
from gmail_sync.models import Account, OutboundAttachment
from gmail_sync.responses import ApiResponse, ResponseMessage, error_response, success_response
from gmail_sync.service import MailboxService
from gmail_sync.utils import configure_logging

logger = structlog.get_logger()


class CreateAccountRequest(BaseModel):
    full_name: str
    email: str


class UpdateAccountRequest(BaseModel):
    full_name: str | None = None
    email: str | None = None


class DownloadAttachmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    filename: str
    mime_type: str = Field(alias="mimeType")


def _public_account(account: Account) -> dict[str, str]:
    return {"id": account.id, "full_name": account.full_name, "email": account.email}


def build_service(settings: Settings) -> MailboxService:
    """Wire repositories and the Google OAuth provider from settings."""

    from gmail_sync.gmail.oauth import GoogleOAuthProvider
    from gmail_sync.store import (
        AccountRepository,
        ThreadRepository,
        create_db_engine,
        initialize_schema,
    )

    engine = create_db_engine(settings.database_url)
    initialize_schema(engine)
    return MailboxService(
        AccountRepository(engine),
        ThreadRepository(engine),
        GoogleOAuthProvider(settings),
        settings,
    )


def _router(service: MailboxService) -> APIRouter:
    router = APIRouter(prefix="/gmail-accounts", tags=["gmail-accounts"])

    @router.post("", response_model=ApiResponse, status_code=201)
    def create_account(body: CreateAccountRequest) -> ApiResponse:
        connection = service.create_account(body.full_name, body.email)
        return success_response(
            {"account": _public_account(connection.account), "auth_url": connection.auth_url},
            status_code=201,
        )

    @router.patch("/{account_id}", response_model=ApiResponse)
    def update_account(account_id: str, body: UpdateAccountRequest) -> ApiResponse:
        account = service.update_account(account_id, full_name=body.full_name, email=body.email)
        return success_response(_public_account(account))

    @router.get("/webhook", response_model=ApiResponse)
    async def oauth_webhook(code: str = "", state: str = "") -> ApiResponse:
        account = await service.complete_oauth(code, state)
        return success_response(_public_account(account))

    @router.get("/sync/{account_id}", response_model=ApiResponse)
    async def sync_threads(account_id: str, page: int = 1, page_size: int | None = None) -> ApiResponse:
        threads = await service.sync_threads(account_id, page=page, page_size=page_size)
        return success_response([t.model_dump(mode="json") for t in threads])

    @router.get("/trash/{account_id}/{thread_id}", response_model=ApiResponse)
    async def trash_thread(account_id: str, thread_id: str) -> ApiResponse:
        thread = await service.trash_thread(account_id, thread_id)
        return success_response(thread.model_dump(mode="json"))

    @router.get("/un-trash/{account_id}/{thread_id}", response_model=ApiResponse)
    async def restore_thread(account_id: str, thread_id: str) -> ApiResponse:
        thread = await service.restore_thread(account_id, thread_id)
        return success_response(thread.model_dump(mode="json"))

    @router.get("/read/{account_id}/{thread_id}", response_model=ApiResponse)
    async def mark_read(account_id: str, thread_id: str) -> ApiResponse:
        thread = await service.mark_read(account_id, thread_id)
        return success_response(thread.model_dump(mode="json"))

    @router.get("/un-read/{account_id}/{thread_id}", response_model=ApiResponse)
    async def mark_unread(account_id: str, thread_id: str) -> ApiResponse:
        thread = await service.mark_unread(account_id, thread_id)
        return success_response(thread.model_dump(mode="json"))

    @router.post("/download-attachment/{account_id}")
    async def download_attachment(account_id: str, body: DownloadAttachmentRequest) -> StreamingResponse:
        download = await service.download_attachment(
            account_id, body.url, body.filename, body.mime_type
        )
        return StreamingResponse(
            download.iter_chunks(),
            media_type=download.mime_type,
            headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(download.filename)}"},
        )

    @router.post("/{account_id}", response_model=ApiResponse)
    async def send_email(
        account_id: str,
        to: str = Form(...),
        cc: str | None = Form(None),
        bcc: str | None = Form(None),
        subject: str | None = Form(None),
        body: str | None = Form(None),
        files: list[UploadFile] | None = File(None),
    ) -> ApiResponse:
        attachments = [
            OutboundAttachment(
                filename=f.filename or "attachment",
                mime_type=f.content_type or "application/octet-stream",
                content=await f.read(),
            )
            for f in files or []
        ]
        message_id = await service.send_email(
            account_id,
            to,
            cc=cc,
            bcc=bcc,
            subject=subject,
            body=body,
            attachments=attachments,
        )
        return success_response({"id": message_id})

    return router


def create_app(service: MailboxService | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app; a service is wired from settings when not given."""

    settings = settings or get_settings()
    configure_logging(settings.log_level)
    service = service or build_service(settings)

    app = FastAPI(title="Gmail Sync")
    app.state.service = service
    app.include_router(_router(service))

    @app.exception_handler(GmailSyncError)
    async def _handle_gmail_sync_error(_request: Request, exc: GmailSyncError) -> JSONResponse:
        envelope = error_response(exc)
        logger.info(
            "request_failed",
            error_type=type(exc).__name__,
            error=str(exc),
            status_code=envelope.status_code,
        )
        return JSONResponse(status_code=envelope.status_code, content=envelope.model_dump())

    @app.exception_handler(Exception)
    async def _handle_unexpected_error(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request_crashed", error_type=type(exc).__name__)
        envelope = error_response(exc)
        return JSONResponse(status_code=envelope.status_code, content=envelope.model_dump())

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        envelope = ApiResponse(status_code=400, message=[ResponseMessage.BAD_REQUEST.value])
        return JSONResponse(status_code=400, content=envelope.model_dump())

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
