"""
Newsroom Workflow Engine - Response Envelope
============================================
Every response body is `{ok, data, error, meta}`. `meta` always carries the
request and correlation IDs so a client error can be matched to audit rows
and log lines.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from fastapi.responses import JSONResponse

from app.core.correlation import get_correlation_id, get_request_id
from app.core.errors import WorkflowError


def response_meta(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "request_id": get_request_id() or None,
        "correlation_id": get_correlation_id() or None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    meta.update(extra or {})
    return meta


def _envelope(
    *,
    ok: bool,
    data: Any,
    error: dict[str, Any] | None,
    status_code: int,
    meta: dict[str, Any] | None,
) -> JSONResponse:
    body = {"ok": ok, "data": data, "error": error, "meta": response_meta(meta)}
    return JSONResponse(status_code=status_code, content=body)


def success_envelope(data: Any, *, status_code: int = 200, meta: dict[str, Any] | None = None) -> JSONResponse:
    return _envelope(ok=True, data=data, error=None, status_code=status_code, meta=meta)


def paginated_envelope(items: Sequence[Any], *, page: int, per_page: int, total: int) -> JSONResponse:
    pages = (total + per_page - 1) // per_page if per_page else 0
    return success_envelope(
        list(items),
        meta={"page": page, "per_page": per_page, "total": total, "pages": pages},
    )


def error_envelope(
    *,
    code: str,
    message: str,
    status_code: int = 400,
    details: Any = None,
    meta: dict[str, Any] | None = None,
) -> JSONResponse:
    error = {"code": code, "message": message, "details": details}
    return _envelope(ok=False, data=None, error=error, status_code=status_code, meta=meta)


def workflow_error_envelope(exc: WorkflowError, *, path: str) -> JSONResponse:
    """Render a domain error with its own status and code; empty details become null."""
    return error_envelope(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details or None,
        meta={"path": path},
    )
