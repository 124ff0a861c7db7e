"""RFC 7807 Problem Details rendering for domain errors."""
from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .domain_errors import DomainError

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.production-feedback.local/problems/"


def _status_title(http_status: int) -> str:
    try:
        return HTTPStatus(http_status).phrase
    except ValueError:
        return "Domain Error"


def build_problem_details_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as RFC 7807 payload with stable domain code."""
    payload: dict[str, object] = {
        "type": f"{PROBLEM_TYPE_BASE}{exc.code.lower()}",
        "title": _status_title(exc.http_status),
        "status": exc.http_status,
        "detail": exc.message,
        "code": exc.code,
    }
    if exc.details is not None:
        payload["details"] = exc.details

    return JSONResponse(
        status_code=exc.http_status,
        content=payload,
        media_type="application/problem+json",
    )


async def _handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return build_problem_details_response(exc)


def install_problem_details(app: FastAPI) -> None:
    """Map every DomainError raised by a route to a problem+json response."""
    app.add_exception_handler(DomainError, _handle_domain_error)
