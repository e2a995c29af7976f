"""Uniform response envelope and error mapping."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from gmail_sync.exceptions import (
    AttachmentTooLargeError,
    AuthenticationError,
    GmailAPIError,
    GmailSyncError,
    NotFoundError,
    ValidationError,
)


class ResponseMessage(str, Enum):
    """Fixed messages returned to API callers."""

    BAD_REQUEST = "bad request"
    SUCCESS = "success"
    UNAUTHORIZED = "user is not authorized"
    USER_NOT_FOUND = "user is not registered"
    FILE_SIZE_EXCEPTION = "total file size exceeds the maximum limit of 25 MB"


class ApiResponse(BaseModel):
    status_code: int = Field(description="HTTP status code")
    message: list[str] = Field(description="Human readable outcome")
    data: Any = Field(default_factory=dict)


def success_response(data: Any = None, status_code: int = 200) -> ApiResponse:
    return ApiResponse(
        status_code=status_code,
        message=[ResponseMessage.SUCCESS.value],
        data={} if data is None else data,
    )


_ERROR_MAP: tuple[tuple[type[GmailSyncError], int, ResponseMessage], ...] = (
    (ValidationError, 400, ResponseMessage.BAD_REQUEST),
    (AttachmentTooLargeError, 400, ResponseMessage.FILE_SIZE_EXCEPTION),
    (NotFoundError, 404, ResponseMessage.USER_NOT_FOUND),
    (AuthenticationError, 401, ResponseMessage.UNAUTHORIZED),
    (GmailAPIError, 400, ResponseMessage.BAD_REQUEST),
)


def error_response(exc: Exception) -> ApiResponse:
    """Map an exception to the envelope without exposing its text."""

    for exc_type, status_code, message in _ERROR_MAP:
        if isinstance(exc, exc_type):
            return ApiResponse(status_code=status_code, message=[message.value])
    return ApiResponse(status_code=500, message=[ResponseMessage.BAD_REQUEST.value])
