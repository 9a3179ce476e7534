"""
Request correlation.

Every request carries one request_id: the caller's x-request-id when it is a
plausible identifier, otherwise a fresh uuid4. The id is bound to the logging
context for the duration of the request and echoed on the response.
"""
from typing import Optional
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from contractorai.core.logging import latency_bucket_ms, log_event, request_id_ctx_var


REQUEST_ID_HEADER = "x-request-id"
# Ids end up in log lines and response headers
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(incoming: Optional[str]) -> str:
    """Reuse the caller's id when it is safe to echo, otherwise mint one."""
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request_id to each request and log its completion."""

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        rid = resolve_request_id(request.headers.get(self.header_name))
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            log_event(
                "info",
                "request.complete",
                request_id=rid,
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
                },
            )
        finally:
            request_id_ctx_var.reset(token)
        return response
