"""
sap_odata.core.transport - HTTP transport
==========================================

The executor only needs ``send(method, url, ...) -> TransportResponse``.
``RequestsTransport`` implements it on top of a pooled ``requests.Session``
with basic/bearer auth and urllib3 retries for 429/5xx.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple, Union
import logging
import time

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict
from urllib3.util.retry import Retry

from sap_odata.core.errors import TransportError
from sap_odata.core.state import Cookie


@dataclass
class TransportResponse:
    """Raw response as seen by the executor."""
    status: int
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    cookies: Tuple[Cookie, ...] = ()
    body: bytes = b""
    url: str = ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Transport(Protocol):
    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        cookies: Sequence[Cookie] = (),
        params: Optional[Mapping[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        **options: Any,
    ) -> TransportResponse:
        ...


def _cookies_from_jar(jar: Any) -> Tuple[Cookie, ...]:
    out = []
    for c in jar:
        attrs: Dict[str, object] = {}
        if getattr(c, "domain", None):
            attrs["domain"] = c.domain
        if getattr(c, "path", None):
            attrs["path"] = c.path
        if getattr(c, "secure", False):
            attrs["secure"] = True
        if getattr(c, "expires", None) is not None:
            attrs["expires"] = c.expires
        out.append(Cookie(c.name, c.value or "", attrs))
    return tuple(out)


class RequestsTransport:
    """
    ``requests`` based transport.

    Parameters
    ----------
    base_url : str
        Relative URLs passed to ``send`` are resolved against this
    auth : tuple or str, optional
        (user, password) for basic auth, or a bearer token string
    auth_kind : str
        "basic" or "bearer"
    default_headers : dict, optional
        Headers applied to every request
    timeout : float
        Default timeout in seconds; a ``timeout`` option on ``send`` wins
    retries, backoff : int, float
        urllib3 retry policy for 429/5xx
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth: Optional[Union[Tuple[str, str], str]] = None,
        auth_kind: str = "basic",
        default_headers: Optional[Dict[str, str]] = None,
        timeout: float = 60.0,
        retries: int = 3,
        backoff: float = 0.5,
        verify: Union[bool, str] = True,
    ) -> None:
        self.base = base_url.rstrip("/") + "/"
        self.timeout = float(timeout)
        self.verify = verify
        self.logger = logging.getLogger("sap_odata")
        self.session = self._build_session(auth, auth_kind, default_headers or {}, retries, backoff)

    def _build_session(
        self,
        auth: Optional[Union[Tuple[str, str], str]],
        auth_kind: str,
        default_headers: Dict[str, str],
        retries: int,
        backoff: float,
    ) -> Session:
        sess = requests.Session()

        if auth is not None:
            if auth_kind == "basic":
                sess.auth = auth  # type: ignore[assignment]
            elif auth_kind == "bearer":
                sess.headers.update({"Authorization": f"Bearer {auth}"})
            else:
                raise ValueError("auth.kind must be 'basic' or 'bearer'")

        sess.headers.update(default_headers)

        retry = Retry(
            total=retries,
            backoff_factor=backoff,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE", "MERGE"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=20, pool_maxsize=50)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        return sess

    def resolve(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return self.base + url.lstrip("/")

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        cookies: Sequence[Cookie] = (),
        params: Optional[Mapping[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        **options: Any,
    ) -> TransportResponse:
        full_url = self.resolve(url)
        options.setdefault("timeout", self.timeout)
        options.setdefault("verify", self.verify)

        t0 = time.perf_counter()
        try:
            r = self.session.request(
                method=method.upper(),
                url=full_url,
                params=dict(params) if params else None,
                headers=dict(headers) if headers else None,
                cookies={c.name: c.value for c in cookies} or None,
                data=body,
                **options,
            )
        except requests.RequestException as exc:
            raise TransportError(method, full_url, exc) from exc

        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("%s %s %s %sms", method.upper(), full_url, r.status_code, round(dt, 1))
        return TransportResponse(
            status=r.status_code,
            headers=CaseInsensitiveDict(r.headers),
            cookies=_cookies_from_jar(r.cookies),
            body=r.content or b"",
            url=full_url,
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "RequestsTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
