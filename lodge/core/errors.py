import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LodgeError(Exception):
    """Base class for failures raised by the service layer."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LodgeError, ValueError):
    status_code = 400


class NotFoundError(LodgeError, LookupError):
    status_code = 404


class ConflictError(LodgeError):
    status_code = 409


def _error_payload(request: Request, detail: Any) -> Dict[str, Any]:
    return {"detail": detail, "path": str(request.url)}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation failed.",
                "errors": jsonable_errors(exc),
                "path": str(request.url),
            },
        )

    @app.exception_handler(LodgeError)
    async def lodge_exception_handler(request: Request, exc: LodgeError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(status_code=exc.status_code, content=_error_payload(request, exc.message))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload = _error_payload(request, exc.detail or "HTTP error.")
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_payload(request, "Internal server error."))


def jsonable_errors(exc: RequestValidationError) -> list:
    errors = []
    for error in exc.errors():
        entry = {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
        entry["loc"] = [str(part) for part in entry.get("loc", ())]
        errors.append(entry)
    return errors
