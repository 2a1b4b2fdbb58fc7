"""Error taxonomy shared by the API handlers.

Every error is reported to clients as ``{"error": "<message>"}`` with the
status code carried by the exception class.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class BookVaultError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(BookVaultError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(BookVaultError):
    status_code = 403
    default_message = "Admin access required"


class ValidationFailed(BookVaultError):
    status_code = 400
    default_message = "Missing required fields"


class NotFound(BookVaultError):
    status_code = 404
    default_message = "Not found"


class UpstreamFailure(BookVaultError):
    status_code = 500


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def describe_validation_error(exc) -> str:
    """Summarize a request or pydantic validation error as one sentence."""
    missing = []
    invalid = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        if err.get("type") == "missing":
            missing.append(field)
        else:
            invalid.append(f"{field}: {err.get('msg', 'invalid value')}")
    parts = []
    if missing:
        parts.append("Missing required fields: " + ", ".join(missing))
    if invalid:
        parts.append("Invalid fields: " + "; ".join(invalid))
    return ". ".join(parts) or "Invalid request"


def register_error_handlers(app: FastAPI):
    @app.exception_handler(BookVaultError)
    async def _bookvault_error(request: Request, exc: BookVaultError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return error_response(400, describe_validation_error(exc))
