"""Exception handlers that render domain errors in the response envelope."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ProteanException

from warehousing.api.schemas import Envelope, ErrorBody
from warehousing.domain import logger
from warehousing.shared.errors import error_details, error_kind

STATUS_BY_KIND = {
    "NotFound": 404,
    "ValidationError": 400,
    "Conflict": 409,
    "InsufficientQuantity": 422,
    "InvalidStateTransition": 409,
    "ConcurrencyConflict": 409,
    "InternalError": 500,
}


def error_response(kind: str, details: dict, message: str | None = None) -> JSONResponse:
    body = Envelope(success=False, message=message or kind, error=ErrorBody(kind=kind, details=details))
    return JSONResponse(status_code=STATUS_BY_KIND.get(kind, 500), content=body.model_dump(mode="json"))


async def _domain_error(request: Request, exc: ProteanException) -> JSONResponse:
    kind = error_kind(exc)
    if kind == "InternalError":
        logger.exception("unhandled_domain_error", path=request.url.path)
    else:
        logger.info("request_rejected", path=request.url.path, kind=kind)
    return error_response(kind, error_details(exc))


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: dict[str, list[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "_body"
        details.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return error_response("ValidationError", details, message="Request validation failed")


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return error_response("InternalError", {"_error": ["Internal server error"]})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProteanException, _domain_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(Exception, _unexpected_error)
