"""
JSON envelope shared by every route: {"ok", "data", "error", "message"}.
"""
from typing import Any, Optional

from fastapi.responses import JSONResponse


def _envelope(ok: bool, data: Any, error: Optional[str], message: str) -> dict:
    return {
        "ok": ok,
        "data": data if data is not None else {},
        "error": error,
        "message": message,
    }


def success_response(data=None, message="OK", status=200):
    return JSONResponse(status_code=status, content=_envelope(True, data, None, message))


def error_response(error_code, status=400, message="An error occurred", data=None, headers: Optional[dict] = None):
    """
    error_code is a stable machine-readable string (e.g. "TRIAL_USED")
    the frontend switches on.
    """
    return JSONResponse(
        status_code=status,
        content=_envelope(False, data, error_code, message),
        headers=headers,
    )
