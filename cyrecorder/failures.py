"""Deterministic failure taxonomy and fingerprint utilities."""

from __future__ import annotations

import hashlib

from cyrecorder.contracts import ERROR_SCHEMA_V1
from cyrecorder.recorder.errors import RecorderError


def build_failure(
    *,
    error_class: str,
    error_code: str,
    action: str,
    message: str,
    detail: str = "",
) -> dict[str, str]:
    """Build a stable failure payload for command results and server replies."""
    fingerprint_input = "|".join(
        [
            error_class,
            error_code,
            action or "",
            detail or "",
        ]
    )
    fingerprint = hashlib.sha256(fingerprint_input.encode("utf-8")).hexdigest()
    return {
        "error_schema_version": ERROR_SCHEMA_V1,
        "error_class": error_class,
        "error_code": error_code,
        "action": action or "",
        "message": message,
        "fingerprint": fingerprint,
    }


def classify_failure(*, error: Exception, action: str = "", detail: str = "") -> dict[str, str]:
    """Classify a recorder exception into the versioned error taxonomy."""
    message = str(error)
    if isinstance(error, RecorderError):
        return build_failure(
            error_class=error.error_class,
            error_code=error.error_code,
            action=action,
            message=message,
            detail=detail,
        )

    lower = message.lower()
    if isinstance(error, TimeoutError) or "timeout" in lower:
        return build_failure(
            error_class="timeout",
            error_code="TIMEOUT_OPERATION",
            action=action,
            message=message,
            detail=detail,
        )
    if isinstance(error, ValueError):
        return build_failure(
            error_class="invalid_message",
            error_code="MSG_INVALID",
            action=action,
            message=message,
            detail=detail,
        )

    return build_failure(
        error_class="internal",
        error_code="REC_INTERNAL_ERROR",
        action=action,
        message=message,
        detail=detail,
    )
