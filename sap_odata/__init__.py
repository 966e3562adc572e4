"""
SAP OData v2 Python client (sap_odata)
======================================

CRUD access to SAP Gateway OData v2 services with transparent CSRF token
handling and uniform response-envelope decoding.

Usage
-----
>>> from sap_odata import ConnectionContext, QueryOptions
>>>
>>> with ConnectionContext() as conn:
...     service = conn.get_service("/sap/opu/odata/sap/YGW_MM_001_SRV")
...     mats = service.get_entity_set("MaterialMainSet", QueryOptions().top(5))
...     service.create_entity("MaterialMainSet", {"Material": "M-01"})

Subpackages
-----------
- sap_odata.core: session, CSRF state, request executor, transport, errors
- sap_odata.odata: envelope decoding, query options, service CRUD client
- sap_odata.api: Optional FastAPI REST gateway

"""

__version__ = "0.1.0"

from sap_odata.core.errors import (
    ODataClientError,
    ConfigurationError,
    TransportError,
    FetchError,
    ServiceError,
    DecodeError,
)

from sap_odata.core.session import (
    ODataAuth,
    ODataConfig,
    SAPODataSession,
)

from sap_odata.core.connection import ConnectionContext, config_from_env, load_env

from sap_odata.odata import ODataService, QueryOptions, decode, escape_odata_literal

__all__ = [
    # Version
    "__version__",
    # Errors
    "ODataClientError",
    "ConfigurationError",
    "TransportError",
    "FetchError",
    "ServiceError",
    "DecodeError",
    # Core
    "ODataAuth",
    "ODataConfig",
    "SAPODataSession",
    "ConnectionContext",
    "config_from_env",
    "load_env",
    # OData
    "ODataService",
    "QueryOptions",
    "decode",
    "escape_odata_literal",
]
