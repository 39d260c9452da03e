"""Exception handlers: every failure still answers with presentable text."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from listing_concierge.agents.prompts.fallback_templates import get_text
from listing_concierge.services.errors import ConciergeError

logger = logging.getLogger(__name__)


def _request_language(request: Request) -> str:
    accept = request.headers.get("accept-language", "").lower()
    return "en" if accept.startswith("en") else "id"


async def concierge_error_handler(request: Request, exc: ConciergeError) -> JSONResponse:
    logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.status_code, exc.error_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()})
    logger.info("%s %s -> 400 invalid fields %s", request.method, request.url.path, fields)
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalid_request",
            "text": get_text("invalid_request", _request_language(request)),
            "fields": fields,
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "text": get_text("error", _request_language(request))},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ConciergeError, concierge_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
