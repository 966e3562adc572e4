"""
sap_odata.core.connection - High-level connection management
=============================================================

Builds an ODataConfig from arguments, S4_* environment variables or a
``.env`` file, and wraps it in a lazily opened session.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from dotenv import load_dotenv

from sap_odata.core.errors import ConfigurationError
from sap_odata.core.session import ODataAuth, ODataConfig, SAPODataSession

if TYPE_CHECKING:
    from sap_odata.odata.service import ODataService


def load_env(path: Optional[Union[str, Path]] = None) -> bool:
    """
    Load a ``.env`` file into the environment without overriding set variables.

    Looks in the current directory when no path is given. Returns True if a
    file was loaded.
    """
    env_path = Path(path) if path is not None else Path.cwd() / ".env"
    if not env_path.exists():
        return False
    return load_dotenv(env_path, override=False)


def config_from_env(
    base_url: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    bearer_token: Optional[str] = None,
    sap_client: Optional[str] = None,
    verify: Optional[bool] = None,
    timeout: Optional[float] = None,
) -> ODataConfig:
    """
    Resolve connection settings, explicit arguments first.

    ==============  ==================================
    argument        environment fallback
    ==============  ==================================
    base_url        S4_BASE_URL, then SAP_HOST
    user/password   S4_USER / S4_PASS (basic auth)
    bearer_token    S4_BEARER_TOKEN (wins over basic)
    sap_client      S4_SAP_CLIENT
    verify          S4_VERIFY_TLS ("false" disables)
    timeout         ODATA_TIMEOUT, then 60 seconds
    ==============  ==================================

    Raises
    ------
    ConfigurationError
        No base URL, or neither basic nor bearer credentials
    """
    env = os.environ
    base = (base_url or env.get("S4_BASE_URL") or env.get("SAP_HOST", "")).rstrip("/")
    if not base:
        raise ConfigurationError(
            "Missing base_url. Set S4_BASE_URL environment variable "
            "or pass base_url parameter."
        )

    token = bearer_token or env.get("S4_BEARER_TOKEN", "")
    user = user or env.get("S4_USER", "")
    password = password or env.get("S4_PASS", "")
    if token:
        auth = ODataAuth("bearer", token)
    elif user and password:
        auth = ODataAuth("basic", (user, password))
    else:
        raise ConfigurationError(
            "Missing credentials. Set S4_USER/S4_PASS or S4_BEARER_TOKEN "
            "environment variables, or pass user/password or bearer_token parameters."
        )

    if verify is None:
        verify = env.get("S4_VERIFY_TLS", "true").lower() != "false"

    return ODataConfig(
        base_url=base + "/",
        auth=auth,
        default_sap_client=sap_client or env.get("S4_SAP_CLIENT"),
        verify=verify,
        timeout=float(timeout if timeout is not None else env.get("ODATA_TIMEOUT", "60")),
    )


class ConnectionContext:
    """
    hana_ml-style entry point: configuration plus a session opened on first use.

    Accepts the same arguments as :func:`config_from_env`.

    Examples
    --------
    >>> with ConnectionContext() as conn:
    ...     service = conn.get_service("/sap/opu/odata/sap/API_MAINTENANCEORDER_SRV")
    ...     orders = service.get_entity_set("A_MaintenanceOrder")
    """

    def __init__(self, **settings) -> None:
        self._cfg = config_from_env(**settings)
        self._session: Optional[SAPODataSession] = None

    def config(self) -> ODataConfig:
        return self._cfg

    @property
    def base_url(self) -> str:
        return self._cfg.base_url

    @property
    def sap_client(self) -> Optional[str]:
        return self._cfg.default_sap_client

    @property
    def session(self) -> SAPODataSession:
        if self._session is None:
            self._session = SAPODataSession(self._cfg)
        return self._session

    def get_service(self, service_path: str) -> "ODataService":
        """ODataService for a path relative to the base URL, e.g. "/sap/opu/odata/sap/ZSRV/"."""
        from sap_odata.odata.service import ODataService
        return ODataService(self.session, service_path, default_sap_client=self.sap_client)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ConnectionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
