from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Missing or malformed input, invalid enum value, out-of-range number."""


class ConflictError(ValidationError):
    """Operation clashes with current state (completed batch, stage regression, duplicate key)."""


class InsufficientResourceError(ValidationError):
    """Inventory or batch volume cannot cover the request."""


class NotFoundError(LookupError):
    pass


class ConfigurationError(RuntimeError):
    pass


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': message})


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.warning('%s %s rejected: %s', request.method, request.url.path, exc)
        return _error_response(400, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        logger.warning('%s %s not found: %s', request.method, request.url.path, exc)
        return _error_response(404, str(exc))

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error('%s %s misconfigured: %s', request.method, request.url.path, exc)
        return _error_response(500, str(exc))

    @app.exception_handler(SQLAlchemyError)
    async def persistence_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception('%s %s persistence failure', request.method, request.url.path)
        return _error_response(500, f'Database error: {exc.__class__.__name__}')

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = []
        for err in exc.errors():
            field = '.'.join(str(part) for part in err.get('loc', ()) if part != 'body')
            messages.append(f'{field}: {err.get("msg")}' if field else str(err.get('msg')))
        return _error_response(400, '; '.join(messages) or 'Invalid request')
