from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("blobstore")


class BlobStoreError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BlobStoreError):
    status_code = 400


class UnsupportedMediaType(ValidationError):
    status_code = 415


class PayloadTooLarge(BlobStoreError):
    status_code = 413

    def __init__(self, limit_bytes: int) -> None:
        super().__init__(f"File too large. Maximum allowed size is {limit_bytes} bytes.")
        self.limit_bytes = limit_bytes


class ReadError(BlobStoreError):
    """The request body could not be consumed."""

    status_code = 400


class NotFoundError(BlobStoreError):
    status_code = 404


class AuthenticationError(BlobStoreError):
    status_code = 401


class StorageError(BlobStoreError):
    """Backend unavailable or failed unexpectedly. Never retried here."""

    status_code = 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BlobStoreError)
    async def blobstore_error_handler(request: Request, exc: BlobStoreError):
        if exc.status_code >= 500:
            logger.error(
                "event=request_failed path=%s error=%s", request.url.path, exc.message
            )
        return JSONResponse({"detail": exc.message}, status_code=exc.status_code)
