"""
sap_odata.core - Core connectivity and CSRF handling
====================================================

- SessionState: thread-safe cache of the CSRF token and its cookies
- RequestExecutor: attach -> send -> classify -> refresh -> retry
- RequestsTransport: pooled ``requests`` transport with auth and retries
- SAPODataSession: ties the above together for one service host
- ConnectionContext: high-level connection manager (hana_ml style)

"""

from sap_odata.core.classifier import Classification, classify, is_mutating_method
from sap_odata.core.errors import (
    ODataClientError,
    ConfigurationError,
    TransportError,
    FetchError,
    ServiceError,
    DecodeError,
)
from sap_odata.core.executor import ExecState, RequestExecutor
from sap_odata.core.session import ODataAuth, ODataConfig, SAPODataSession
from sap_odata.core.state import Cookie, Credential, SessionState
from sap_odata.core.transport import RequestsTransport, Transport, TransportResponse
from sap_odata.core.connection import ConnectionContext, config_from_env, load_env

__all__ = [
    "Classification",
    "classify",
    "is_mutating_method",
    "ODataClientError",
    "ConfigurationError",
    "TransportError",
    "FetchError",
    "ServiceError",
    "DecodeError",
    "ExecState",
    "RequestExecutor",
    "ODataAuth",
    "ODataConfig",
    "SAPODataSession",
    "Cookie",
    "Credential",
    "SessionState",
    "RequestsTransport",
    "Transport",
    "TransportResponse",
    "ConnectionContext",
    "config_from_env",
    "load_env",
]
