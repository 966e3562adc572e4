"""
sap_odata.odata.service - OData Service Client
===============================================

Service-scoped CRUD client for SAP OData v2 services.
"""

from __future__ import annotations

from typing import Any, Dict, Generator, List, Mapping, Optional, Type, Union

from pydantic import BaseModel

from sap_odata.core.session import SAPODataSession
from sap_odata.odata.envelope import decode, decode_envelope
from sap_odata.odata.query import QueryOptions

Query = Union[QueryOptions, Mapping[str, str], None]


def _query_params(query: Query) -> Dict[str, str]:
    if query is None:
        return {}
    if isinstance(query, QueryOptions):
        return query.build()
    return dict(query)


def key_predicate(key: Union[str, int]) -> str:
    """
    Normalize an entity key into a predicate.

    ``"('123')"`` and ``"(Id='1',Type='A')"`` are kept as given; anything
    else is wrapped in parentheses.
    """
    key = str(key)
    if not key.startswith("("):
        key = f"({key})"
    return key


class ODataService:
    """
    Service-scoped OData client.

    Parameters
    ----------
    sess : SAPODataSession
        Active OData session
    service_path : str
        Service path relative to the session base URL,
        e.g. "/sap/opu/odata/IWBEP/GWSAMPLE_BASIC/"
    default_sap_client : str, optional
        Default SAP client override

    Examples
    --------
    >>> with SAPODataSession(cfg) as sess:
    ...     api = ODataService(sess, "/sap/opu/odata/sap/YGW_MM_001_SRV")
    ...     mats = api.get_entity_set("MaterialMainSet", QueryOptions().top(5))
    ...     created = api.create_entity("MaterialMainSet", {"Material": "M-01"})
    """

    def __init__(
        self,
        sess: SAPODataSession,
        service_path: str,
        *,
        default_sap_client: Optional[str] = None,
    ) -> None:
        self.sess = sess
        self.service_path = "/" + service_path.strip("/") + "/"
        self.default_sap_client = default_sap_client

    def _url(self, entity_set: str, key: Optional[Union[str, int]] = None) -> str:
        url = self.service_path + entity_set.strip("/")
        if key is not None:
            url += key_predicate(key)
        return url

    def _client(self, sap_client: Optional[str]) -> Optional[str]:
        return sap_client or self.default_sap_client

    # ---------------- reads ----------------

    def get_entity_set(
        self,
        entity_set: str,
        query: Query = None,
        *,
        model: Optional[Type[BaseModel]] = None,
        sap_client: Optional[str] = None,
    ) -> List[Any]:
        """
        Read a single page of an entity set.

        Returns
        -------
        list
            Entities as dicts, or as ``model`` instances when given
        """
        resp = self.sess.request(
            "GET",
            self._url(entity_set),
            params=_query_params(query),
            sap_client=self._client(sap_client),
            service_root=self.service_path,
        )
        return decode(resp.body, many=True, model=model)

    def get_entity(
        self,
        entity_set: str,
        key: Union[str, int],
        query: Query = None,
        *,
        model: Optional[Type[BaseModel]] = None,
        sap_client: Optional[str] = None,
    ) -> Any:
        """Read one entity by key, e.g. ``get_entity("Orders", "'4711'")``."""
        resp = self.sess.request(
            "GET",
            self._url(entity_set, key),
            params=_query_params(query),
            sap_client=self._client(sap_client),
            service_root=self.service_path,
        )
        return decode(resp.body, many=False, model=model)

    def iterate(
        self,
        entity_set: str,
        query: Query = None,
        *,
        model: Optional[Type[BaseModel]] = None,
        sap_client: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> Generator[List[Any], None, None]:
        """
        Iterate through pages of results, following ``__next`` links.

        Stops when there is no next link, when a link repeats, or after
        ``max_pages`` pages.
        """
        resp = self.sess.request(
            "GET",
            self._url(entity_set),
            params=_query_params(query),
            sap_client=self._client(sap_client),
            service_root=self.service_path,
        )
        page = decode_envelope(resp.body, many=True, model=model)

        yielded = 0
        seen = set()
        while True:
            if page.result:
                yield page.result
                yielded += 1
                if max_pages is not None and yielded >= int(max_pages):
                    return

            next_link = page.next_link
            if not next_link or next_link in seen:
                return
            seen.add(next_link)

            # __next already carries $skiptoken and the original options
            resp = self.sess.executor.execute("GET", next_link)
            page = decode_envelope(resp.body, many=True, model=model)

    def read_all(
        self,
        entity_set: str,
        query: Query = None,
        *,
        model: Optional[Type[BaseModel]] = None,
        sap_client: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> List[Any]:
        """Read all pages of results into a single list."""
        out: List[Any] = []
        for page in self.iterate(
            entity_set, query, model=model, sap_client=sap_client, max_pages=max_pages
        ):
            out.extend(page)
        return out

    # ---------------- writes ----------------

    def create_entity(
        self,
        entity_set: str,
        payload: Union[Mapping[str, Any], BaseModel],
        *,
        model: Optional[Type[BaseModel]] = None,
        sap_client: Optional[str] = None,
    ) -> Any:
        """
        Create an entity (POST) and return the created entity.

        Returns None when the service answers 204 without a body.
        """
        resp = self.sess.request(
            "POST",
            self._url(entity_set),
            body=_payload(payload),
            sap_client=self._client(sap_client),
            service_root=self.service_path,
        )
        if not resp.body:
            return None
        return decode(resp.body, many=False, model=model)

    def update_entity(
        self,
        entity_set: str,
        key: Union[str, int],
        payload: Union[Mapping[str, Any], BaseModel],
        *,
        sap_client: Optional[str] = None,
    ) -> None:
        """Replace an entity (PUT)."""
        self.sess.request(
            "PUT",
            self._url(entity_set, key),
            body=_payload(payload),
            sap_client=self._client(sap_client),
            service_root=self.service_path,
        )

    def patch_entity(
        self,
        entity_set: str,
        key: Union[str, int],
        payload: Union[Mapping[str, Any], BaseModel],
        *,
        sap_client: Optional[str] = None,
    ) -> None:
        """Partially update an entity (PATCH)."""
        self.sess.request(
            "PATCH",
            self._url(entity_set, key),
            body=_payload(payload),
            sap_client=self._client(sap_client),
            service_root=self.service_path,
        )

    def delete_entity(
        self,
        entity_set: str,
        key: Union[str, int],
        *,
        sap_client: Optional[str] = None,
    ) -> None:
        """Delete an entity."""
        self.sess.request(
            "DELETE",
            self._url(entity_set, key),
            sap_client=self._client(sap_client),
            service_root=self.service_path,
        )


def _payload(payload: Union[Mapping[str, Any], BaseModel]) -> Dict[str, Any]:
    if isinstance(payload, BaseModel):
        return payload.model_dump(by_alias=True, exclude_none=True)
    return dict(payload)
