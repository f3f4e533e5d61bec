"""FastAPI middleware that captures unhandled exceptions and logs them to the DB.

Every 5xx response is recorded in the error_logs table; 4xx responses are
recorded as warnings so rejected operations can be audited per tenant.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from tally.models.error_log import ErrorSeverity
from tally.services.error_logger import RequestContext, log_error_standalone

logger = logging.getLogger("tally.middleware")

# Portal tokens travel in the query string / body of these paths
_SENSITIVE_SUFFIXES = ("/clients/access-link", "/portal")

_TENANT_PATH = re.compile(r"^/api/tenants/([^/]+)")

# Max body size to capture (avoid storing huge payloads)
_MAX_BODY_SIZE = 4096


def _tenant_from_path(path: str) -> Optional[str]:
    match = _TENANT_PATH.match(path)
    return match.group(1) if match else None


class ErrorCaptureMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions, returns 500, and persists the error."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        path = request.url.path
        request_body: Optional[str] = None

        _is_sensitive = path.endswith(_SENSITIVE_SUFFIXES)
        if request.method in ("POST", "PUT", "PATCH") and not _is_sensitive:
            try:
                body_bytes = await request.body()
                if len(body_bytes) <= _MAX_BODY_SIZE:
                    request_body = body_bytes.decode("utf-8", errors="replace")
            except Exception:
                logger.debug("Could not read request body for %s", path)

        tenant_id = _tenant_from_path(path)
        ip_address = request.client.host if request.client else None

        try:
            response = await call_next(request)
            elapsed_ms = round((time.time() - start) * 1000, 2)

            if response.status_code >= 400:
                severity = (
                    ErrorSeverity.ERROR if response.status_code >= 500 else ErrorSeverity.WARNING
                )
                await log_error_standalone(
                    Exception(f"HTTP {response.status_code} on {request.method} {path}"),
                    severity=severity,
                    module="middleware.error_capture",
                    function_name="dispatch",
                    tenant_id=tenant_id,
                    request=RequestContext(
                        method=request.method,
                        path=path,
                        body=request_body,
                        status_code=response.status_code,
                        elapsed_ms=elapsed_ms,
                        ip_address=ip_address,
                    ),
                )

            return response

        except Exception as exc:
            elapsed_ms = round((time.time() - start) * 1000, 2)

            severity = ErrorSeverity.CRITICAL if "database" in str(exc).lower() else ErrorSeverity.ERROR

            await log_error_standalone(
                exc,
                severity=severity,
                module="middleware.error_capture",
                tenant_id=tenant_id,
                request=RequestContext(
                    method=request.method,
                    path=path,
                    body=request_body,
                    status_code=500,
                    elapsed_ms=elapsed_ms,
                    ip_address=ip_address,
                ),
            )

            logger.exception("Unhandled exception on %s %s", request.method, path)

            return JSONResponse(
                status_code=500,
                content={"detail": {"error": "InternalError", "message": "Internal Server Error"}},
            )
