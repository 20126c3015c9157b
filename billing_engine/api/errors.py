"""Translate failed service Results into HTTP errors"""

import logging
from typing import Any

from fastapi import HTTPException

from billing_engine.domain.models import Result

STATUS_BY_ERROR_CODE = {
    "validation_error": 400,
    "unauthorized": 403,
    "not_found": 404,
    "conflict": 409,
    "invalid_state": 422,
    "persistence_error": 503,
}


def unwrap(result: Result, request_id: str) -> Any:
    """Return the Result's data, or raise the HTTPException matching its error code"""
    if result.success:
        return result.data

    status_code = STATUS_BY_ERROR_CODE.get(result.error_code, 500)
    log = logging.error if status_code >= 500 else logging.warning
    log(f"Request failed: {result.error}", extra={"request_id": request_id, "error_code": result.error_code})
    raise HTTPException(status_code=status_code, detail={"code": result.error_code, "message": result.error})
