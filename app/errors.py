"""
Domain errors raised by the service layer and their HTTP mapping.
"""
from typing import Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError


class DomainError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        if entity_id is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(DomainError):
    status_code = 400

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields or {}


class InvalidStateError(DomainError):
    status_code = 409

    def __init__(self, message: str, current_state: Optional[str] = None):
        super().__init__(message)
        self.current_state = current_state


def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    body = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.fields:
        body["fields"] = exc.fields
    if isinstance(exc, InvalidStateError) and exc.current_state:
        body["current_state"] = exc.current_state
    return JSONResponse(status_code=exc.status_code, content=body)


def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        fields[".".join(loc) or "body"] = err.get("msg", "invalid")
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "fields": fields})


def _stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    structlog.get_logger(__name__).warning("stale_write_rejected", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=409,
        content={"detail": "Record was modified or removed by another request, reload and retry"},
    )


def _integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    structlog.get_logger(__name__).warning("integrity_error", path=request.url.path, error=str(exc.orig))
    return JSONResponse(
        status_code=409,
        content={"detail": "Conflicts with an existing record, retry the request"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StaleDataError, _stale_data_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
