# src/recordstore/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from recordstore.util.log import log_event


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Send log records to stderr as bare messages (log_event already emits JSON).

    Safe to call again; later calls only change the level.
    """
    level = getattr(logging, (level_name or "INFO").strip().upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, "_recordstore_configured", False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    setattr(root, "_recordstore_configured", True)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, tagged with an x-request-id.

    A client-supplied x-request-id is echoed back so record mutations can be
    traced end to end. RECORDSTORE_LOG_REQUESTS=0 turns the events off.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = (os.environ.get("RECORDSTORE_LOG_REQUESTS") or "1").strip().lower() not in {"0", "false", "off"}
        self._logger = logging.getLogger("recordstore.http")

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        if not self._enabled:
            response = await call_next(request)
            response.headers.setdefault("x-request-id", request_id)
            return response

        started = time.monotonic()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers.setdefault("x-request-id", request_id)
            return response
        finally:
            log_event(
                self._logger,
                "http_request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
