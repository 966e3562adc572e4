"""
Pytest configuration and shared fixtures.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from requests.structures import CaseInsensitiveDict

from sap_odata.core.session import ODataAuth, ODataConfig, SAPODataSession
from sap_odata.core.state import Cookie
from sap_odata.core.transport import TransportResponse


def make_response(
    status: int = 200,
    headers: Optional[Dict[str, str]] = None,
    body: Any = b"",
    cookies: Tuple[Cookie, ...] = (),
) -> TransportResponse:
    """Build a TransportResponse; dict/list bodies are JSON encoded."""
    if isinstance(body, (dict, list)):
        body = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        body = body.encode("utf-8")
    return TransportResponse(
        status=status,
        headers=CaseInsensitiveDict(headers or {}),
        cookies=tuple(cookies),
        body=body,
    )


@dataclass
class SentRequest:
    method: str
    url: str
    headers: Dict[str, str]
    cookies: Tuple[Cookie, ...]
    params: Dict[str, str]
    body: Optional[bytes]
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_probe(self) -> bool:
        return self.headers.get("X-CSRF-Token") == "Fetch"


class ScriptedTransport:
    """
    Transport double that records every send.

    ``handler(request)`` returns a TransportResponse or an exception instance
    to raise.
    """

    def __init__(self, handler: Callable[[SentRequest], Any]):
        self.handler = handler
        self.calls: List[SentRequest] = []
        self.closed = False

    def send(self, method, url, *, headers=None, cookies=(), params=None, body=None, **options):
        req = SentRequest(
            method=method,
            url=url,
            headers=dict(headers or {}),
            cookies=tuple(cookies),
            params=dict(params or {}),
            body=body,
            options=dict(options),
        )
        self.calls.append(req)
        result = self.handler(req)
        if isinstance(result, BaseException):
            raise result
        return result

    def close(self):
        self.closed = True

    @property
    def probes(self) -> List[SentRequest]:
        return [c for c in self.calls if c.is_probe]

    @property
    def dispatches(self) -> List[SentRequest]:
        return [c for c in self.calls if not c.is_probe]


def csrf_server(
    token: str = "abc123",
    cookies: Tuple[Cookie, ...] = (Cookie("SESSION", "xyz"),),
    created: Optional[Dict[str, Any]] = None,
    get_body: Any = None,
):
    """
    Handler emulating a SAP Gateway: writes need the current token, HEAD /
    with ``X-CSRF-Token: Fetch`` issues it.
    """
    def handler(req: SentRequest):
        if req.is_probe:
            return make_response(200, {"X-CSRF-Token": token}, cookies=cookies)
        if req.method in ("POST", "PUT", "PATCH", "DELETE"):
            if req.headers.get("X-CSRF-Token") != token:
                return make_response(403, {"X-CSRF-Token": "Required"}, b"CSRF token validation failed")
            if req.method == "POST":
                return make_response(201, body={"d": created or {"Id": "1"}})
            return make_response(204)
        return make_response(200, body=get_body if get_body is not None else {"d": {"results": []}})
    return handler


@pytest.fixture
def odata_config():
    return ODataConfig(
        base_url="https://test.example.com/",
        auth=ODataAuth("basic", ("user", "pass")),
        default_sap_client="100",
    )


@pytest.fixture
def fake_transport():
    return ScriptedTransport(csrf_server())


@pytest.fixture
def session(odata_config, fake_transport):
    sess = SAPODataSession(odata_config, transport=fake_transport)
    yield sess
    sess.close()


@pytest.fixture
def sample_odata_response():
    """Sample OData v2 collection response."""
    return {
        "d": {
            "results": [
                {"__metadata": {"type": "ZSRV.Material"}, "Material": "M-01", "MatType": "FERT"},
                {"__metadata": {"type": "ZSRV.Material"}, "Material": "M-02", "MatType": "ROH"},
            ],
        }
    }


@pytest.fixture
def sample_error_body():
    """Structured SAP Gateway error body."""
    return {
        "error": {
            "code": "SY/530",
            "message": {"lang": "en", "value": "Material M-99 does not exist"},
            "innererror": {"transactionid": "ABCDEF0123", "timestamp": "20260101120000.0000000"},
        }
    }
