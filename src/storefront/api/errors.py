"""Exception handlers for the storefront API.

Every failure leaves the API as ``{"success": false, "message", "errorCode"}``.
Protean's own handlers are registered first and the storefront shapes are
layered over them for the exceptions the cart and order flows raise.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from storefront.config import is_production
from storefront.domain import logger
from storefront.errors import StorefrontError


def error_body(message, error_code=None, **extra) -> dict:
    body = {"success": False, "message": message}
    if error_code:
        body["errorCode"] = error_code
    body.update(extra)
    return body


def _first_message(messages) -> str:
    if isinstance(messages, dict):
        for field, errors in messages.items():
            if isinstance(errors, list | tuple) and errors:
                return str(errors[0])
            if errors:
                return str(errors)
            return f"Invalid value for {field}"
    return str(messages) or "Invalid request"


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error_code=exc.error_code, exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code),
    )


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body(_first_message(exc.messages), "VALIDATION_ERROR", errors=exc.messages),
    )


async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content=error_body("Resource not found", "NOT_FOUND"))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content=error_body(message, "VALIDATION_ERROR"))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", path=request.url.path, method=request.method, exc_info=exc)
    body = error_body("Internal Server Error", "INTERNAL_ERROR")
    if not is_production():
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
