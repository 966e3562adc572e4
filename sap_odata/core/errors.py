"""
sap_odata.core.errors - Exception taxonomy
===========================================

Every error raised by the client derives from ``ODataClientError``.

- TransportError: connection, timeout or protocol failure (never retried here)
- FetchError: the CSRF refresh probe failed
- ServiceError: non-success response from the OData service
- DecodeError: response body does not match the expected envelope/shape
- ConfigurationError: missing base URL or credentials
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union


class ODataClientError(RuntimeError):
    """Base class for all sap_odata errors."""


class ConfigurationError(ODataClientError, ValueError):
    """Raised when the connection configuration is incomplete."""


class TransportError(ODataClientError):
    """
    Raised when the HTTP transport could not produce a response.

    Attributes
    ----------
    method : str
        HTTP method of the failed request
    url : str
        The URL that was called
    """

    def __init__(self, method: str, url: str, reason: Union[str, BaseException]):
        super().__init__(f"{method.upper()} {url} failed: {reason}")
        self.method = method.upper()
        self.url = url
        self.reason = reason


class FetchError(ODataClientError):
    """
    Raised when a fresh CSRF token could not be obtained.

    The original request is aborted; ``cause`` holds the underlying
    reason (an exception or a short description).
    """

    def __init__(self, cause: Union[str, BaseException]):
        super().__init__(f"failed to refresh CSRF token: {cause}")
        self.cause = cause


class ServiceError(ODataClientError):
    """
    Exception raised when the SAP OData service returns an error.

    Attributes
    ----------
    status : int
        HTTP status code from SAP
    body : str
        Raw response body
    url : str
        The URL that was called
    headers : dict
        Response headers
    code : str or None
        Error code from a structured ``{"error": {...}}`` body
    message : str or None
        Error message text (falls back to the raw body)
    lang : str or None
        Language of the error message
    """

    def __init__(
        self,
        status: int,
        body: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        *,
        code: Optional[str] = None,
        message: Optional[str] = None,
        lang: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        summary = message or body or ""
        if code:
            summary = f"{code}: {summary}"
        snippet = summary[:1200]
        super().__init__(f"OData upstream error {status} for {url}: {snippet}")
        self.status = status
        self.body = body or ""
        self.url = url
        self.headers = headers or {}
        self.code = code
        self.message = message if message is not None else self.body
        self.lang = lang
        self.details = details or {}


class DecodeError(ODataClientError):
    """
    Raised when a response body cannot be decoded into the requested shape.

    Attributes
    ----------
    reason : str
        What went wrong
    raw : bytes
        The original response body, kept for diagnostics
    """

    def __init__(self, reason: str, raw: Union[bytes, str, None]):
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        self.reason = reason
        self.raw = raw or b""
        preview = self.raw[:200].decode("utf-8", errors="replace")
        super().__init__(f"cannot decode OData response: {reason} (body: {preview!r})")
