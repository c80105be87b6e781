# error_handlers.py
# Description: App-level handlers that give framework-raised failures (schema parsing, rate limiting) the same
# {"detail": {"category", "message"}} body the endpoints use.
#
# Imports
from typing import Any, Dict, List
#
# 3rd-party Libraries
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
#
#######################################################################################################################
#
# Functions:

def _describe_validation_errors(errors: List[Dict[str, Any]]) -> str:
    parts = []
    for err in errors:
        # 'body' is implied for request payloads
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(parts) or "Request could not be parsed."


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _describe_validation_errors(exc.errors())
    logger.warning(f"Rejected unparseable request to {request.url.path}: {message}")
    return JSONResponse(
        status_code=422,
        content={"detail": {"category": "bad-request", "message": message}},
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Wraps slowapi's handler so its rate-limit headers survive and the body carries a category."""
    original = _rate_limit_exceeded_handler(request, exc)
    headers = {key: value for key, value in original.headers.items()
               if key.lower() not in ("content-length", "content-type")}
    logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": {"category": "internal",
                            "message": f"Rate limit exceeded: {exc.detail}. Retry later."}},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

#
# End of error_handlers.py
#######################################################################################################################
