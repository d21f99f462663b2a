from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ernest.core.export_jobs import UnknownExportJob
from ernest.publish import PublishError
from ernest.security.credentials import (
    CredentialStoreError,
    CredentialValueError,
    ProjectRootNotFound,
)

_log = logging.getLogger("ernest.errors")


def _error_response(
    *, status: int, code: str, message: str, details: Any = None
) -> JSONResponse:
    body: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(body, status_code=status)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def _http_exc(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        return _error_response(
            status=exc.status_code,
            code=f"http_{exc.status_code}",
            message=str(detail) if detail else "Request failed",
            details=detail if isinstance(detail, (dict, list)) else None,
        )

    @app.exception_handler(RequestValidationError)
    async def _val_exc(request: Request, exc: RequestValidationError):
        return _error_response(
            status=422,
            code="validation_error",
            message="Request validation failed",
            details=exc.errors(),
        )

    @app.exception_handler(UnknownExportJob)
    async def _unknown_job(request: Request, exc: UnknownExportJob):
        return _error_response(status=404, code="unknown_job", message=str(exc))

    @app.exception_handler(CredentialValueError)
    async def _credential_value(request: Request, exc: CredentialValueError):
        return _error_response(status=400, code="credential_empty", message=str(exc))

    @app.exception_handler(ProjectRootNotFound)
    async def _project_missing(request: Request, exc: ProjectRootNotFound):
        return _error_response(status=404, code="config_missing", message=str(exc))

    @app.exception_handler(CredentialStoreError)
    async def _credential_store(request: Request, exc: CredentialStoreError):
        _log.warning("Credential store failure: %s", exc)
        return _error_response(status=500, code="credential_store", message=str(exc))

    @app.exception_handler(PublishError)
    async def _publish(request: Request, exc: PublishError):
        return _error_response(status=400, code="publish_failed", message=str(exc))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        err_id = uuid.uuid4().hex
        _log.error("Unhandled exception [%s]", err_id, exc_info=exc)
        return _error_response(
            status=500,
            code="internal_error",
            message="Internal server error",
            details={"errorId": err_id},
        )


__all__ = ["register_exception_handlers"]
