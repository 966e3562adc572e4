"""
sap_odata.core.session - SAP OData HTTP Session Management
===========================================================

Session handling for SAP OData v2 services with:
- Basic and Bearer token authentication
- Automatic retry with exponential backoff on 429/5xx
- Transparent CSRF token handling for write operations
- sap-client and $format injection
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union
import logging

from sap_odata.core.executor import RequestExecutor
from sap_odata.core.state import SessionState
from sap_odata.core.transport import RequestsTransport, Transport, TransportResponse


@dataclass
class ODataAuth:
    """
    Authentication configuration for SAP OData.

    Parameters
    ----------
    kind : str
        Either "basic" or "bearer"
    value : tuple or str
        For basic: (username, password) tuple
        For bearer: access token string

    Examples
    --------
    >>> auth = ODataAuth("basic", ("USER", "PASSWORD"))
    >>> auth = ODataAuth("bearer", "eyJ...")
    """
    kind: str  # "basic" | "bearer"
    value: Union[Tuple[str, str], str]  # (user, pass) or access_token


@dataclass
class ODataConfig:
    """
    Connection configuration for SAP OData services.

    Parameters
    ----------
    base_url : str
        Base URL of the service host or OData root, e.g. "https://host/"
    auth : ODataAuth
        Authentication configuration
    default_sap_client : str, optional
        Default SAP client number (can be overridden per-request)
    lang : str
        Language for SAP (default: "EN")
    timeout : float
        Request timeout in seconds (default: 60.0)
    retries : int
        Number of transport-level retry attempts on 429/5xx (default: 3)
    backoff : float
        Backoff factor for retries (default: 0.5)
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    user_agent : str
        User-Agent header value
    csrf_probe_path : str
        Path, relative to base_url, probed for a fresh CSRF token
    """
    base_url: str
    auth: ODataAuth
    default_sap_client: Optional[str] = None
    lang: str = "EN"
    timeout: float = 60.0
    retries: int = 3
    backoff: float = 0.5
    verify: Union[bool, str] = True
    user_agent: str = "sap-odata/0.1"
    csrf_probe_path: str = "/"


class SAPODataSession:
    """
    HTTP session for SAP OData v2 services.

    Owns the transport, the shared CSRF state and the request executor.
    Safe to share between threads. Use as a context manager for cleanup.

    Parameters
    ----------
    cfg : ODataConfig
        Connection configuration
    transport : Transport, optional
        Replaces the default ``requests`` transport (mainly for tests)

    Examples
    --------
    >>> cfg = ODataConfig(...)
    >>> with SAPODataSession(cfg) as sess:
    ...     resp = sess.request("GET", "/sap/opu/odata/sap/ZSRV/Orders")
    """

    def __init__(self, cfg: ODataConfig, transport: Optional[Transport] = None) -> None:
        self.cfg = cfg
        self.base = cfg.base_url.rstrip("/") + "/"
        self.logger = logging.getLogger("sap_odata")

        if cfg.auth.kind not in ("basic", "bearer"):
            raise ValueError("auth.kind must be 'basic' or 'bearer'")

        self.transport = transport if transport is not None else self._build_transport()
        self.state = SessionState()

        self.executor = RequestExecutor(
            self.transport,
            self.state,
            probe_url=cfg.csrf_probe_path,
            probe_params=self._params(include_format=False),
        )

    def close(self) -> None:
        """Drop cached CSRF state and close the transport."""
        self.state.clear()
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "SAPODataSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- auth/session ----------------

    def _build_transport(self) -> RequestsTransport:
        return RequestsTransport(
            self.base,
            auth=self.cfg.auth.value,
            auth_kind=self.cfg.auth.kind,
            default_headers={
                "Accept": "application/json",
                "Accept-Language": self.cfg.lang.lower(),
                "sap-language": self.cfg.lang.upper(),
                "DataServiceVersion": "2.0",
                "MaxDataServiceVersion": "2.0",
                "User-Agent": self.cfg.user_agent,
            },
            timeout=self.cfg.timeout,
            retries=self.cfg.retries,
            backoff=self.cfg.backoff,
            verify=self.cfg.verify,
        )

    @property
    def csrf_token(self) -> Optional[str]:
        """The currently cached CSRF token, if any."""
        return self.state.current().token

    def refresh_csrf_token(
        self,
        service_root: Optional[str] = None,
        sap_client: Optional[str] = None,
    ) -> Optional[str]:
        """
        Force a CSRF token refresh and return the new token.

        The token is fetched from ``service_root`` (relative to the base URL)
        when given, otherwise from ``cfg.csrf_probe_path``.
        """
        return self.executor.refresh(
            probe_url=self._probe_url(service_root),
            probe_params=self._params(sap_client=sap_client, include_format=False),
        ).token

    # ---------------- helpers ----------------

    def _params(
        self,
        params: Optional[Mapping[str, str]] = None,
        sap_client: Optional[str] = None,
        *,
        include_format: bool = True,
        include_client: bool = True,
    ) -> Dict[str, str]:
        p: Dict[str, str] = {}
        if include_format:
            p["$format"] = "json"
        if include_client:
            client = sap_client if sap_client is not None else self.cfg.default_sap_client
            if client:
                p["sap-client"] = str(client)
        if params:
            p.update(params)
        return p

    def _probe_url(self, service_root: Optional[str]) -> str:
        if service_root is None:
            return self.cfg.csrf_probe_path
        return "/" + service_root.strip("/") + "/"

    # ---------------- public ops ----------------

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        body: Any = None,
        sap_client: Optional[str] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
        service_root: Optional[str] = None,
        **options: Any,
    ) -> TransportResponse:
        """
        Execute a request against the service with CSRF handling.

        ``$format=json`` is added to GET and POST requests, except for
        ``$metadata``.

        Parameters
        ----------
        method : str
            HTTP method
        path : str
            Path relative to the base URL, or an absolute URL
        params : dict, optional
            Additional query parameters
        body : dict, list, str or bytes, optional
            Request body; dicts and lists are sent as JSON
        sap_client : str, optional
            Override default sap-client; also sent on the CSRF probe
        extra_headers : dict, optional
            Additional HTTP headers
        service_root : str, optional
            Root of the OData service the path belongs to, relative to the
            base URL. A CSRF refresh probes this root; ``cfg.csrf_probe_path``
            is used when omitted.
        **options
            Passed through to the transport (e.g. ``timeout``)

        Returns
        -------
        TransportResponse
            The successful response
        """
        m = method.upper()
        is_metadata = path.rstrip("/").lower().endswith("$metadata")
        include_format = m in ("GET", "POST") and not is_metadata
        q = self._params(params, sap_client, include_format=include_format, include_client=True)
        return self.executor.execute(
            m,
            path,
            body,
            q,
            headers=extra_headers,
            probe_url=self._probe_url(service_root),
            probe_params=self._params(sap_client=sap_client, include_format=False),
            **options,
        )
