"""
sap_odata.api.gateway - FastAPI OData Gateway
==============================================

Optional REST gateway exposing CRUD on SAP OData v2 entity sets.

One SAPODataSession is shared by all requests so the CSRF token and its
session cookies survive between calls.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from sap_odata.core.connection import load_env
from sap_odata.core.errors import (
    DecodeError,
    FetchError,
    ODataClientError,
    ServiceError,
    TransportError,
)
from sap_odata.core.session import ODataAuth, ODataConfig, SAPODataSession
from sap_odata.odata.envelope import strip_metadata
from sap_odata.odata.query import QueryOptions
from sap_odata.odata.service import ODataService
from sap_odata.api.models import (
    EntityListResponse,
    EntityResponse,
    UpstreamErrorDetail,
    WriteResult,
)

logger = logging.getLogger("sap_odata.api")


class ODataGateway:
    """
    Configuration and shared session for the API gateway.

    Reads configuration from environment variables by default.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        sap_client: Optional[str] = None,
        verify_tls: Optional[bool] = None,
        api_key: Optional[str] = None,
        service_root: Optional[str] = None,
        max_top: Optional[int] = None,
        max_pages: Optional[int] = None,
        session: Optional[SAPODataSession] = None,
    ):
        env_base = os.environ.get("S4_BASE_URL") or os.environ.get("SAP_HOST", "")
        self.base_url = (base_url or env_base).rstrip("/") + "/"
        self.user = user or os.environ.get("S4_USER", "")
        self.password = password or os.environ.get("S4_PASS", "")
        self.bearer_token = bearer_token or os.environ.get("S4_BEARER_TOKEN", "")
        self.sap_client = sap_client or os.environ.get("S4_SAP_CLIENT")

        if verify_tls is not None:
            self.verify_tls = verify_tls
        else:
            self.verify_tls = os.environ.get("S4_VERIFY_TLS", "true").lower() != "false"

        self.api_key = api_key if api_key is not None else os.environ.get("ODATA_API_KEY", "")
        self.service_root = service_root or os.environ.get("ODATA_SERVICE_ROOT", "/sap/opu/odata/sap/")
        self.max_top = max_top if max_top is not None else int(os.environ.get("ODATA_MAX_TOP", "500"))
        self.max_pages = max_pages if max_pages is not None else int(os.environ.get("ODATA_MAX_PAGES", "10"))

        self._session = session
        self._session_lock = threading.Lock()

    def validate(self) -> None:
        """Validate configuration. Raises RuntimeError if invalid."""
        if self._session is not None:
            return
        if not self.base_url or self.base_url == "/":
            raise RuntimeError("Missing S4_BASE_URL environment variable")
        if not self.bearer_token and not (self.user and self.password):
            raise RuntimeError("Missing S4_USER/S4_PASS or S4_BEARER_TOKEN")

    def build_session(self) -> SAPODataSession:
        """Create a new OData session."""
        if self.bearer_token:
            auth = ODataAuth("bearer", self.bearer_token)
        else:
            auth = ODataAuth("basic", (self.user, self.password))

        cfg = ODataConfig(
            base_url=self.base_url,
            auth=auth,
            default_sap_client=self.sap_client,
            verify=self.verify_tls,
            timeout=float(os.environ.get("ODATA_TIMEOUT", "60")),
            retries=int(os.environ.get("ODATA_RETRIES", "3")),
            backoff=float(os.environ.get("ODATA_BACKOFF", "0.5")),
        )
        return SAPODataSession(cfg)

    @property
    def session(self) -> SAPODataSession:
        """The shared session, created on first use."""
        if self._session is None:
            with self._session_lock:
                if self._session is None:
                    self.validate()
                    self._session = self.build_session()
        return self._session

    def service(self, name: str, sap_client: Optional[str] = None) -> ODataService:
        path = self.service_root.rstrip("/") + "/" + name.strip("/")
        return ODataService(self.session, path, default_sap_client=sap_client or self.sap_client)

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None


def _error_detail(exc: ODataClientError) -> Dict[str, Any]:
    if isinstance(exc, ServiceError):
        detail = UpstreamErrorDetail(
            upstream_status=exc.status, code=exc.code, message=exc.message, url=exc.url
        )
    elif isinstance(exc, TransportError):
        detail = UpstreamErrorDetail(message=str(exc), url=exc.url)
    else:
        detail = UpstreamErrorDetail(message=str(exc))
    return detail.model_dump()


def _raise_http(exc: ODataClientError) -> None:
    if isinstance(exc, TransportError):
        status = 504
    elif isinstance(exc, ServiceError) and exc.status == 404:
        status = 404
    elif isinstance(exc, (ServiceError, FetchError, DecodeError)):
        status = 502
    else:
        status = 500
    logger.warning("OData call failed (%s): %s", type(exc).__name__, exc)
    raise HTTPException(status_code=status, detail=_error_detail(exc)) from exc


# Global gateway instance (lazy init)
_gateway: Optional[ODataGateway] = None


def get_gateway() -> ODataGateway:
    """Get or create the global gateway instance."""
    global _gateway
    if _gateway is None:
        _gateway = ODataGateway()
    return _gateway


def create_app(
    gateway: Optional[ODataGateway] = None,
    validate_on_startup: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Parameters
    ----------
    gateway : ODataGateway, optional
        Custom gateway configuration. If None, reads from environment.
    validate_on_startup : bool
        If True, validate configuration on startup.

    Returns
    -------
    FastAPI
        Configured FastAPI application
    """
    global _gateway

    if gateway:
        _gateway = gateway
    else:
        load_env()
        _gateway = ODataGateway()

    if validate_on_startup:
        try:
            _gateway.validate()
        except RuntimeError as e:
            # Allow app creation without a configured backend (tests, docs)
            logger.warning("Gateway configuration incomplete: %s", e)

    app = FastAPI(
        title="SAP OData Gateway",
        description="""
## SAP OData v2 CRUD Gateway

Read and write entity sets of any SAP Gateway OData v2 service.
CSRF tokens and session cookies are handled by the gateway.

### Authentication
Include your API key in the `x-api-key` header when `ODATA_API_KEY` is set.
        """,
        version="1.0.0",
        openapi_tags=[
            {"name": "Entities", "description": "CRUD on entity sets"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
        gw = get_gateway()
        if gw.api_key and x_api_key != gw.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Health check endpoint."""
        return {"ok": True, "version": "1.0.0"}

    @app.get("/odata/{service}/{entity_set}", response_model=EntityListResponse, tags=["Entities"])
    def read_entity_set(
        service: str,
        entity_set: str,
        filter: Optional[str] = Query(default=None, description="OData $filter expression"),
        select: Optional[str] = Query(default=None, description="Comma-separated fields for $select"),
        orderby: Optional[str] = Query(default=None, description="OData $orderby expression"),
        expand: Optional[str] = Query(default=None, description="Comma-separated $expand"),
        top: int = Query(default=100, ge=1, description="Top rows per request"),
        skip: Optional[int] = Query(default=None, ge=0),
        max_pages: int = Query(default=1, ge=1, description="Max pages to follow"),
        sap_client: Optional[str] = Query(default=None, examples=["100"]),
        _: None = Depends(require_api_key),
    ) -> EntityListResponse:
        """Read an entity set, following paging links up to max_pages."""
        gw = get_gateway()
        opts = QueryOptions().top(min(top, gw.max_top))
        if filter:
            opts.filter(filter)
        if select:
            opts.select(select.split(","))
        if orderby:
            opts.custom("$orderby", orderby)
        if expand:
            opts.expand(expand.split(","))
        if skip is not None:
            opts.skip(skip)

        try:
            items = gw.service(service, sap_client).read_all(
                entity_set, opts, max_pages=min(max_pages, gw.max_pages)
            )
        except ODataClientError as e:
            _raise_http(e)
        items = [strip_metadata(i) for i in items]
        return EntityListResponse(service=service, entity_set=entity_set, count=len(items), items=items)

    @app.get("/odata/{service}/{entity_set}/{key}", response_model=EntityResponse, tags=["Entities"])
    def read_entity(
        service: str,
        entity_set: str,
        key: str,
        sap_client: Optional[str] = Query(default=None),
        _: None = Depends(require_api_key),
    ) -> EntityResponse:
        """Read one entity by key predicate, e.g. `'M-01'`."""
        try:
            item = get_gateway().service(service, sap_client).get_entity(entity_set, key)
        except ODataClientError as e:
            _raise_http(e)
        return EntityResponse(service=service, entity_set=entity_set, item=strip_metadata(item))

    @app.post("/odata/{service}/{entity_set}", response_model=EntityResponse, status_code=201, tags=["Entities"])
    def create_entity(
        service: str,
        entity_set: str,
        payload: Dict[str, Any] = Body(..., examples=[{"Material": "M-01"}]),
        sap_client: Optional[str] = Query(default=None),
        _: None = Depends(require_api_key),
    ) -> EntityResponse:
        """Create an entity."""
        try:
            item = get_gateway().service(service, sap_client).create_entity(entity_set, payload)
        except ODataClientError as e:
            _raise_http(e)
        return EntityResponse(
            service=service,
            entity_set=entity_set,
            item=strip_metadata(item) if item is not None else None,
        )

    @app.put("/odata/{service}/{entity_set}/{key}", response_model=WriteResult, tags=["Entities"])
    def update_entity(
        service: str,
        entity_set: str,
        key: str,
        payload: Dict[str, Any] = Body(...),
        sap_client: Optional[str] = Query(default=None),
        _: None = Depends(require_api_key),
    ) -> WriteResult:
        """Replace an entity."""
        try:
            get_gateway().service(service, sap_client).update_entity(entity_set, key, payload)
        except ODataClientError as e:
            _raise_http(e)
        return WriteResult(service=service, entity_set=entity_set, key=key)

    @app.patch("/odata/{service}/{entity_set}/{key}", response_model=WriteResult, tags=["Entities"])
    def patch_entity(
        service: str,
        entity_set: str,
        key: str,
        payload: Dict[str, Any] = Body(...),
        sap_client: Optional[str] = Query(default=None),
        _: None = Depends(require_api_key),
    ) -> WriteResult:
        """Partially update an entity."""
        try:
            get_gateway().service(service, sap_client).patch_entity(entity_set, key, payload)
        except ODataClientError as e:
            _raise_http(e)
        return WriteResult(service=service, entity_set=entity_set, key=key)

    @app.delete("/odata/{service}/{entity_set}/{key}", response_model=WriteResult, tags=["Entities"])
    def delete_entity(
        service: str,
        entity_set: str,
        key: str,
        sap_client: Optional[str] = Query(default=None),
        _: None = Depends(require_api_key),
    ) -> WriteResult:
        """Delete an entity."""
        try:
            get_gateway().service(service, sap_client).delete_entity(entity_set, key)
        except ODataClientError as e:
            _raise_http(e)
        return WriteResult(service=service, entity_set=entity_set, key=key)

    return app


__all__ = [
    "ODataGateway",
    "create_app",
    "get_gateway",
]
