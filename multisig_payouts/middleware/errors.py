from __future__ import annotations

"""
Exception → RFC7807 "problem+json" mappers for FastAPI.

- Produces `application/problem+json` for:
    * ApiError subclasses (the payout error taxonomy in multisig_payouts.errors)
    * Starlette/FastAPI HTTPException
    * Pydantic/RequestValidationError
    * Unhandled exceptions (500)
- Attaches `request.state.request_id` when available.
- Never leaks stack traces in responses; logs them instead.
"""

from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from multisig_payouts.errors import ApiError
from multisig_payouts.logging import get_logger

PROBLEM_CT = "application/problem+json"

log = get_logger(__name__)


def _state_ids(request: Request) -> Dict[str, str]:
    return {"request_id": getattr(request.state, "request_id", "") or ""}


def _base_problem(
    request: Request,
    *,
    status: int,
    title: str,
    detail: Optional[str] = None,
    type_uri: str = "about:blank",
    code: Optional[str] = None,
    extras: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build an RFC7807 dictionary with safe extension members.
    """
    prob: Dict[str, Any] = {
        "type": type_uri,
        "title": title,
        "status": status,
        "detail": detail or "",
        "instance": str(request.url.path),
        **_state_ids(request),
    }
    if code:
        prob["code"] = code
    if extras:
        # RFC7807 allows arbitrary extension members at top-level
        for k, v in extras.items():
            if k not in prob:
                prob[k] = v
    return prob


def _to_status_title(status_code: int) -> Tuple[int, str]:
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        422: "Unprocessable Entity",
        500: "Internal Server Error",
        502: "Bad Gateway",
        503: "Service Unavailable",
        504: "Gateway Timeout",
    }
    return status_code, titles.get(status_code, "Error")


# --------------------------- Handlers ---------------------------


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    problem = exc.to_problem()
    body = _base_problem(
        request,
        status=exc.status_code,
        title=problem["title"],
        detail=problem["detail"],
        type_uri=problem["type"],
        code=exc.code,
        extras={"details": problem["details"]} if "details" in problem else None,
    )
    body = jsonable_encoder(body)

    if exc.status_code >= 500:
        log.error("api_error", code=exc.code, status=exc.status_code, detail=exc.message, instance=body["instance"])
    else:
        log.warning("api_error", code=exc.code, status=exc.status_code, detail=exc.message, instance=body["instance"])

    return JSONResponse(status_code=exc.status_code, content=body, media_type=PROBLEM_CT)


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status, title = _to_status_title(int(exc.status_code))
    detail = str(exc.detail) if getattr(exc, "detail", None) else ""
    body = _base_problem(request, status=status, title=title, detail=detail)
    (log.warning if 400 <= status < 500 else log.error)("http_exception", **body)
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_CT, headers=getattr(exc, "headers", None))


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    status, title = _to_status_title(422)
    body = _base_problem(
        request,
        status=status,
        title=title,
        detail="Request validation failed.",
        code="validation_error",
        extras={"errors": jsonable_encoder(exc.errors())},
    )
    log.warning("validation_error", instance=body["instance"], errors=len(body["errors"]))
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_CT)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    status, title = _to_status_title(500)
    body = _base_problem(
        request,
        status=status,
        title=title,
        detail="An unexpected error occurred. Please retry or contact support with the request_id.",
        code="server_error",
    )
    # Log full exception with stack
    log.exception("unhandled_exception", **body)
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_CT)


# --------------------------- Installer ---------------------------


def install_error_handlers(app: FastAPI) -> None:
    """
    Register exception handlers on the given FastAPI app.

    Usage:
        app = FastAPI()
        install_error_handlers(app)
    """
    app.add_exception_handler(ApiError, _handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected_error)


__all__ = [
    "install_error_handlers",
    "PROBLEM_CT",
]
