"""Error logging to the Python logger and the ``error_logs`` table.

Handlers call ``log_error`` from their last ``except`` clause; the capture
middleware calls ``log_error_standalone`` for anything answered with 4xx/5xx.
"""

from __future__ import annotations

import logging
import traceback as tb_module
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.error_log import ErrorLog, ErrorSeverity

logger = logging.getLogger("tally.errors")


@dataclass
class RequestContext:
    """HTTP details recorded alongside an error."""

    method: str
    path: str
    body: Optional[str] = None
    status_code: Optional[int] = None
    elapsed_ms: Optional[float] = None
    ip_address: Optional[str] = None


def _sanitize_text(value: object, *, max_len: Optional[int] = None) -> str:
    """Normalize control characters before persisting/serializing text."""
    text = str(value)
    text = "".join(ch if (ch >= " " or ch in "\n\r\t") else " " for ch in text)
    if max_len is not None:
        return text[:max_len]
    return text


def _clip(value: Optional[str], max_len: int) -> Optional[str]:
    return _sanitize_text(value, max_len=max_len) if value else None


def _error_type(exc: Exception) -> str:
    # Domain errors are recorded under their stable kind
    return getattr(exc, "kind", None) or type(exc).__name__


def _origin(exc: Exception) -> tuple[Optional[str], Optional[str], Optional[int]]:
    """File, function and line of the innermost traceback frame."""
    frame = exc.__traceback__
    if frame is None:
        return None, None, None
    while frame.tb_next:
        frame = frame.tb_next
    code = frame.tb_frame.f_code
    return code.co_filename, code.co_name, frame.tb_lineno


def _build_entry(
    exc: Exception,
    severity: ErrorSeverity,
    module: Optional[str],
    function_name: Optional[str],
    tenant_id: Optional[str],
    request: Optional[RequestContext],
) -> ErrorLog:
    line_number = None
    if not module:
        module, detected_function, line_number = _origin(exc)
        function_name = function_name or detected_function

    entry = ErrorLog(
        severity=severity,
        error_type=_error_type(exc),
        message=_sanitize_text(exc, max_len=2000),
        traceback=_sanitize_text(
            "".join(tb_module.format_exception(type(exc), exc, exc.__traceback__)),
            max_len=10000,
        ),
        module=_clip(module, 300),
        function_name=_clip(function_name, 200),
        line_number=line_number,
        tenant_id=tenant_id,
    )
    if request is not None:
        entry.request_method = request.method
        entry.request_path = _clip(request.path, 500)
        entry.request_body = _clip(request.body, 5000)
        entry.status_code = request.status_code
        entry.response_time_ms = request.elapsed_ms
        entry.ip_address = _clip(request.ip_address, 45)
    return entry


async def log_error(
    exc: Exception,
    *,
    db: Optional[AsyncSession] = None,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    module: Optional[str] = None,
    function_name: Optional[str] = None,
    tenant_id: Optional[str] = None,
    request: Optional[RequestContext] = None,
) -> Optional[ErrorLog]:
    """Log an exception and, when a session is given, persist it.

    The row is committed on ``db`` by itself: callers reach this after
    ``run_in_transaction`` has rolled their work back, and the request
    session is rolled back again once the handler re-raises.  Returns the
    row, or None when there is no session or the write fails.
    """
    entry = _build_entry(exc, severity, module, function_name, tenant_id, request)

    log_msg = f"[{severity.value.upper()}] {entry.error_type}: {entry.message}"
    if tenant_id:
        log_msg = f"tenant={tenant_id} {log_msg}"
    if request is not None:
        log_msg = f"{request.method} {request.path} -> {log_msg}"
    if severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL):
        logger.error(log_msg, exc_info=exc)
    else:
        logger.warning(log_msg)

    if db is None:
        return None

    try:
        db.add(entry)
        await db.commit()
        return entry
    except Exception as db_err:
        logger.warning("Failed to persist error log to DB: %s", db_err)
        await db.rollback()
        return None


async def log_error_standalone(
    exc: Exception,
    *,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    module: Optional[str] = None,
    function_name: Optional[str] = None,
    tenant_id: Optional[str] = None,
    request: Optional[RequestContext] = None,
) -> Optional[ErrorLog]:
    """Same as ``log_error`` on a fresh session (for middleware use)."""
    from tally.database import async_session

    try:
        async with async_session() as db:
            return await log_error(
                exc,
                db=db,
                severity=severity,
                module=module,
                function_name=function_name,
                tenant_id=tenant_id,
                request=request,
            )
    except Exception as db_err:
        logger.warning("Failed standalone error log: %s", db_err)
        return None
