"""
HTTP Error Mapping

Known failures become small JSON bodies of the form
``{"error": <code>, "detail": <message>}``. Anything else falls through to
the catch-all, which logs the traceback and hides it from the client.

An unloaded index answers 503, never an empty result list, so callers can
tell "nothing matched" apart from "nothing to search".
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("docs.errors")


def _error_response(status_code: int, code: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code, "detail": detail})


async def index_not_loaded_handler(request: Request, exc: Exception) -> JSONResponse:
    """503: the server is up but has no index to query yet."""
    logger.warning("Rejected %s %s: index not loaded", request.method, request.url.path)
    return _error_response(503, "index_not_loaded", "The documentation index is not loaded.")


async def invalid_session_handler(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(400, "invalid_session_id", str(exc))


async def llm_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """502: the upstream chat model failed or answered garbage."""
    logger.error("LLM failure on %s: %s", request.url.path, exc)
    return _error_response(502, "llm_unavailable", "The language model service failed.")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last-resort handler, registered for ``Exception``.

    The traceback goes to the log only; the client sees a fixed 500 body.
    """
    logger.exception(
        "Unhandled exception during %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error_response(500, "internal_server_error", "Internal server error")
