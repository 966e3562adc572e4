"""
sap_odata.core.classifier - Response classification
====================================================

Maps a service response to SUCCESS, CREDENTIAL_INVALID or SERVICE_ERROR
and turns error bodies into ``ServiceError``.
"""

from __future__ import annotations

from dataclasses import dataclass
import enum
import json
from typing import Any, Dict, Mapping, Optional, Union

from sap_odata.core.errors import ServiceError

CSRF_HEADER = "X-CSRF-Token"
CSRF_FETCH = "Fetch"
CSRF_REQUIRED = "Required"

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE", "MERGE"})
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class Classification(enum.Enum):
    SUCCESS = "success"
    CREDENTIAL_INVALID = "credential_invalid"
    SERVICE_ERROR = "service_error"


@dataclass(frozen=True)
class ODataErrorDetail:
    """Parsed ``{"error": {...}}`` body."""
    code: Optional[str]
    message: Optional[str]
    lang: Optional[str] = None
    transaction_id: Optional[str] = None
    timestamp: Optional[str] = None


def is_mutating_method(method: str) -> bool:
    return method.upper() in MUTATING_METHODS


def is_error_status(status: int) -> bool:
    return status >= 400 or status in REDIRECT_STATUSES


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if key.lower() == lowered:
            return val
    return None


def csrf_header_value(headers: Mapping[str, str]) -> Optional[str]:
    """Value of the X-CSRF-Token response header, case-insensitive on the name."""
    return _header(headers, CSRF_HEADER)


def classify(status: int, headers: Mapping[str, str], mutating: bool) -> Classification:
    """
    Classify a response.

    A response is CREDENTIAL_INVALID iff the request was state-mutating and
    either the status is 403 or the service answered ``X-CSRF-Token: Required``.
    """
    if mutating:
        signal = csrf_header_value(headers)
        if status == 403 or (signal or "").strip().lower() == CSRF_REQUIRED.lower():
            return Classification.CREDENTIAL_INVALID
    if is_error_status(status):
        return Classification.SERVICE_ERROR
    return Classification.SUCCESS


def parse_service_error(body: Union[bytes, str, None]) -> Optional[ODataErrorDetail]:
    """Parse a structured OData error body; None if the body is anything else."""
    if not body:
        return None
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    err = data.get("error")
    if not isinstance(err, dict):
        return None

    message: Optional[str] = None
    lang: Optional[str] = None
    raw_message = err.get("message")
    if isinstance(raw_message, dict):
        message = raw_message.get("value")
        lang = raw_message.get("lang")
    elif isinstance(raw_message, str):
        message = raw_message

    inner = err.get("innererror") or err.get("innerError")
    txid = inner.get("transactionid") if isinstance(inner, dict) else None
    ts = inner.get("timestamp") if isinstance(inner, dict) else None

    code = err.get("code")
    if code is None and message is None:
        return None
    return ODataErrorDetail(
        code=str(code) if code is not None else None,
        message=message,
        lang=lang,
        transaction_id=txid,
        timestamp=ts,
    )


def service_error(status: int, body: bytes, url: str, headers: Mapping[str, str]) -> ServiceError:
    """Build a ServiceError, using the structured error body when there is one."""
    text = body.decode("utf-8", errors="replace") if body else ""
    detail = parse_service_error(body)
    if detail is None:
        return ServiceError(status, text, url, dict(headers))

    extra: Dict[str, Any] = {}
    if detail.transaction_id:
        extra["transaction_id"] = detail.transaction_id
    if detail.timestamp:
        extra["timestamp"] = detail.timestamp
    return ServiceError(
        status,
        text,
        url,
        dict(headers),
        code=detail.code,
        message=detail.message,
        lang=detail.lang,
        details=extra,
    )
