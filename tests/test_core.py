"""
Tests for sap_odata.core session, transport and connection handling.
"""

import os
from types import SimpleNamespace

import pytest
import requests
from unittest.mock import MagicMock, Mock, patch

from sap_odata.core.connection import ConnectionContext, config_from_env, load_env
from sap_odata.core.errors import ConfigurationError, TransportError
from sap_odata.core.session import ODataAuth, ODataConfig, SAPODataSession
from sap_odata.core.state import Cookie
from sap_odata.core.transport import RequestsTransport
from sap_odata.odata.service import ODataService

from tests.conftest import ScriptedTransport, make_response


class TestODataConfig:
    """Tests for ODataConfig dataclass."""

    def test_default_values(self):
        cfg = ODataConfig(
            base_url="https://test.com/",
            auth=ODataAuth("basic", ("user", "pass")),
        )
        assert cfg.lang == "EN"
        assert cfg.timeout == 60.0
        assert cfg.retries == 3
        assert cfg.verify is True
        assert cfg.csrf_probe_path == "/"

    def test_bearer_auth(self):
        auth = ODataAuth("bearer", "token123")
        assert auth.kind == "bearer"
        assert auth.value == "token123"


class TestSAPODataSession:
    """Tests for SAPODataSession with a scripted transport."""

    def test_get_injects_format_and_client(self, session, fake_transport):
        session.request("GET", "/sap/opu/odata/sap/ZSRV/Orders", params={"$top": "1"})

        sent = fake_transport.calls[0]
        assert sent.params == {"$format": "json", "sap-client": "100", "$top": "1"}

    def test_sap_client_override(self, session, fake_transport):
        session.request("GET", "/ZSRV/Orders", sap_client="200")
        assert fake_transport.calls[0].params["sap-client"] == "200"

    def test_metadata_and_head_skip_format(self, session, fake_transport):
        session.request("GET", "/ZSRV/$metadata")
        session.request("HEAD", "/ZSRV/")

        assert "$format" not in fake_transport.calls[0].params
        assert "$format" not in fake_transport.calls[1].params

    @pytest.mark.parametrize("method,has_format", [
        ("POST", True),
        ("PUT", False),
        ("PATCH", False),
        ("MERGE", False),
        ("DELETE", False),
    ])
    def test_format_only_on_get_and_post(self, session, fake_transport, method, has_format):
        session.request(method, "/ZSRV/Orders('1')", body={"Id": "1"} if method != "DELETE" else None)

        assert all(("$format" in c.params) is has_format for c in fake_transport.dispatches)

    def test_token_fetch_targets_service_root(self, session, fake_transport):
        session.request("POST", "/sap/opu/odata/sap/ZSRV/Orders", body={}, service_root="sap/opu/odata/sap/ZSRV")

        assert fake_transport.probes[0].url == "/sap/opu/odata/sap/ZSRV/"

    def test_token_fetch_carries_request_sap_client(self, session, fake_transport):
        session.request("POST", "/ZSRV/Orders", body={}, sap_client="200")

        assert fake_transport.probes[0].params == {"sap-client": "200"}

    def test_write_fetches_token_with_sap_client(self, session, fake_transport):
        session.request("POST", "/ZSRV/Orders", body={"Id": "1"})

        probe = fake_transport.probes[0]
        assert probe.params == {"sap-client": "100"}
        assert session.csrf_token == "abc123"
        assert len(fake_transport.dispatches) == 2

    def test_token_reused_across_requests(self, session, fake_transport):
        session.request("POST", "/ZSRV/Orders", body={"Id": "1"})
        session.request("DELETE", "/ZSRV/Orders('1')")

        assert len(fake_transport.probes) == 1
        assert fake_transport.calls[-1].headers["X-CSRF-Token"] == "abc123"

    def test_refresh_csrf_token(self, session):
        assert session.csrf_token is None
        assert session.refresh_csrf_token() == "abc123"

    def test_close_clears_state(self, odata_config, fake_transport):
        sess = SAPODataSession(odata_config, transport=fake_transport)
        sess.refresh_csrf_token()

        sess.close()

        assert sess.csrf_token is None
        assert fake_transport.closed

    def test_context_manager(self, odata_config, fake_transport):
        with SAPODataSession(odata_config, transport=fake_transport) as sess:
            assert sess is not None
        assert fake_transport.closed

    def test_invalid_auth_kind(self):
        cfg = ODataConfig(base_url="https://test.com/", auth=ODataAuth("digest", "x"))
        with pytest.raises(ValueError, match="auth.kind"):
            SAPODataSession(cfg, transport=ScriptedTransport(lambda r: make_response()))

    @patch("sap_odata.core.transport.requests.Session")
    def test_builds_requests_transport_basic_auth(self, mock_session_class):
        mock_session = MagicMock()
        mock_session_class.return_value = mock_session

        cfg = ODataConfig(
            base_url="https://test.com/odata",
            auth=ODataAuth("basic", ("user", "pass")),
        )
        sess = SAPODataSession(cfg)

        assert isinstance(sess.transport, RequestsTransport)
        assert sess.base == "https://test.com/odata/"
        assert mock_session.auth == ("user", "pass")

    @patch("sap_odata.core.transport.requests.Session")
    def test_builds_requests_transport_bearer_auth(self, mock_session_class):
        mock_session = MagicMock()
        mock_session_class.return_value = mock_session

        cfg = ODataConfig(base_url="https://test.com/", auth=ODataAuth("bearer", "mytoken"))
        SAPODataSession(cfg)

        mock_session.headers.update.assert_any_call({"Authorization": "Bearer mytoken"})


class TestRequestsTransport:
    """Tests for RequestsTransport on a mocked requests.Session."""

    @patch("sap_odata.core.transport.requests.Session")
    def test_send_converts_request_and_response(self, mock_session_class):
        mock_session = MagicMock()
        mock_session_class.return_value = mock_session
        raw = Mock()
        raw.status_code = 200
        raw.headers = {"X-CSRF-Token": "tok"}
        raw.cookies = [SimpleNamespace(name="SESSION", value="xyz", domain="h", path="/", secure=True, expires=None)]
        raw.content = b""
        mock_session.request.return_value = raw

        transport = RequestsTransport("https://h/base", auth=("u", "p"), timeout=30)
        resp = transport.send(
            "head",
            "/",
            headers={"X-CSRF-Token": "Fetch"},
            cookies=(Cookie("A", "1"),),
            params={"sap-client": "100"},
        )

        kwargs = mock_session.request.call_args.kwargs
        assert kwargs["method"] == "HEAD"
        assert kwargs["url"] == "https://h/base/"
        assert kwargs["cookies"] == {"A": "1"}
        assert kwargs["params"] == {"sap-client": "100"}
        assert kwargs["timeout"] == 30.0
        assert resp.status == 200
        assert resp.headers["x-csrf-token"] == "tok"
        assert resp.cookies == (Cookie("SESSION", "xyz"),)
        assert resp.cookies[0].attributes == {"domain": "h", "path": "/", "secure": True}

    @patch("sap_odata.core.transport.requests.Session")
    def test_timeout_option_wins(self, mock_session_class):
        mock_session = MagicMock()
        mock_session_class.return_value = mock_session
        mock_session.request.return_value = Mock(status_code=204, headers={}, cookies=[], content=b"")

        RequestsTransport("https://h/").send("GET", "x", timeout=2)

        assert mock_session.request.call_args.kwargs["timeout"] == 2

    @patch("sap_odata.core.transport.requests.Session")
    def test_request_exception_becomes_transport_error(self, mock_session_class):
        mock_session = MagicMock()
        mock_session_class.return_value = mock_session
        mock_session.request.side_effect = requests.ConnectionError("refused")

        transport = RequestsTransport("https://h/")
        with pytest.raises(TransportError) as exc_info:
            transport.send("POST", "ZSRV/Orders")

        assert exc_info.value.url == "https://h/ZSRV/Orders"
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_resolve(self):
        transport = RequestsTransport("https://h/root")
        assert transport.resolve("/ZSRV/") == "https://h/root/ZSRV/"
        assert transport.resolve("https://other/x") == "https://other/x"
        transport.close()


SERVICE_ROOT = "https://host/sap/opu/odata/sap/ZSRV/"


def _gateway_reply(method, url, params=None, headers=None, cookies=None, data=None, **kwargs):
    """
    Mimics SAP Gateway behind requests.Session.request: tokens are only
    issued on the service root and are bound to the sap-client they were
    fetched under.
    """
    headers = headers or {}
    client = (params or {}).get("sap-client", "")
    if headers.get("X-CSRF-Token") == "Fetch":
        if url != SERVICE_ROOT:
            return Mock(status_code=404, headers={}, cookies=[], content=b"")
        return Mock(status_code=200, headers={"X-CSRF-Token": f"tok-{client}"}, cookies=[], content=b"")
    if method == "POST" and headers.get("X-CSRF-Token") != f"tok-{client}":
        return Mock(status_code=403, headers={"X-CSRF-Token": "Required"}, cookies=[], content=b"")
    return Mock(status_code=201, headers={}, cookies=[], content=b'{"d": {"Id": "1"}}')


class TestServiceRootRefresh:
    """CSRF refresh against a host-level base URL through RequestsTransport."""

    def _session(self, mock_session_class):
        mock_session = MagicMock()
        mock_session.request.side_effect = _gateway_reply
        mock_session_class.return_value = mock_session
        cfg = ODataConfig(
            base_url="https://host/",
            auth=ODataAuth("basic", ("user", "pass")),
            default_sap_client="100",
        )
        return SAPODataSession(cfg), mock_session

    def _fetches(self, mock_session):
        return [
            c.kwargs for c in mock_session.request.call_args_list
            if (c.kwargs.get("headers") or {}).get("X-CSRF-Token") == "Fetch"
        ]

    @patch("sap_odata.core.transport.requests.Session")
    def test_token_fetched_from_service_root(self, mock_session_class):
        sess, mock_session = self._session(mock_session_class)
        svc = ODataService(sess, "/sap/opu/odata/sap/ZSRV/")

        created = svc.create_entity("Orders", {"Id": "1"})

        assert created == {"Id": "1"}
        fetches = self._fetches(mock_session)
        assert [(f["method"], f["url"]) for f in fetches] == [("HEAD", SERVICE_ROOT)]
        assert fetches[0]["params"] == {"sap-client": "100"}
        post = mock_session.request.call_args_list[-1].kwargs
        assert post["url"] == SERVICE_ROOT + "Orders"
        assert post["headers"]["X-CSRF-Token"] == "tok-100"

    @patch("sap_odata.core.transport.requests.Session")
    def test_token_fetched_under_service_sap_client(self, mock_session_class):
        sess, mock_session = self._session(mock_session_class)
        svc = ODataService(sess, "/sap/opu/odata/sap/ZSRV/", default_sap_client="200")

        svc.create_entity("Orders", {"Id": "1"})

        fetches = self._fetches(mock_session)
        assert len(fetches) == 1
        assert fetches[0]["params"] == {"sap-client": "200"}
        assert sess.csrf_token == "tok-200"

    @patch("sap_odata.core.transport.requests.Session")
    def test_forced_refresh_on_service_root(self, mock_session_class):
        sess, mock_session = self._session(mock_session_class)

        token = sess.refresh_csrf_token("sap/opu/odata/sap/ZSRV", sap_client="300")

        assert token == "tok-300"
        assert self._fetches(mock_session)[0]["url"] == SERVICE_ROOT


class TestConnectionContext:
    """Tests for ConnectionContext."""

    @patch.dict("os.environ", {}, clear=True)
    def test_missing_base_url_raises(self):
        with pytest.raises(ConfigurationError, match="Missing base_url"):
            ConnectionContext(base_url="")

    @patch.dict("os.environ", {}, clear=True)
    def test_missing_credentials_raises(self):
        with pytest.raises(ValueError, match="Missing credentials"):
            ConnectionContext(base_url="https://test.com/")

    @patch.dict("os.environ", {
        "S4_BASE_URL": "https://env.test.com/",
        "S4_USER": "envuser",
        "S4_PASS": "envpass",
        "S4_SAP_CLIENT": "300",
        "ODATA_TIMEOUT": "15",
    }, clear=True)
    def test_reads_from_environment(self):
        conn = ConnectionContext()
        assert conn.base_url == "https://env.test.com/"
        assert conn.sap_client == "300"
        cfg = conn.config()
        assert cfg.auth.value == ("envuser", "envpass")
        assert cfg.timeout == 15.0

    @patch.dict("os.environ", {"SAP_HOST": "https://sapes5.example.com", "S4_BEARER_TOKEN": "t"}, clear=True)
    def test_sap_host_fallback_and_bearer(self):
        conn = ConnectionContext()
        assert conn.base_url == "https://sapes5.example.com/"
        assert conn.config().auth.kind == "bearer"

    def test_get_service(self):
        conn = ConnectionContext(base_url="https://h/", user="u", password="p", sap_client="400")
        with patch.object(ConnectionContext, "session", new=Mock()):
            svc = conn.get_service("sap/opu/odata/sap/ZSRV")
        assert svc.service_path == "/sap/opu/odata/sap/ZSRV/"
        assert svc.default_sap_client == "400"


class TestConfigFromEnv:
    """Tests for config_from_env."""

    @patch.dict("os.environ", {
        "S4_BASE_URL": "https://env.test.com",
        "S4_USER": "envuser",
        "S4_PASS": "envpass",
        "S4_BEARER_TOKEN": "envtoken",
        "S4_VERIFY_TLS": "false",
    }, clear=True)
    def test_bearer_wins_and_tls_flag(self):
        cfg = config_from_env()
        assert cfg.base_url == "https://env.test.com/"
        assert cfg.auth == ODataAuth("bearer", "envtoken")
        assert cfg.verify is False
        assert cfg.timeout == 60.0

    @patch.dict("os.environ", {"S4_BASE_URL": "https://env.test.com/", "S4_SAP_CLIENT": "300"}, clear=True)
    def test_arguments_override_environment(self):
        cfg = config_from_env(user="u", password="p", sap_client="100", timeout=5)
        assert cfg.auth == ODataAuth("basic", ("u", "p"))
        assert cfg.default_sap_client == "100"
        assert cfg.timeout == 5.0


class TestLoadEnv:
    """Tests for .env loading."""

    def test_loads_without_override(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("S4_USER=fromfile\nS4_SAP_CLIENT=999\n")
        monkeypatch.setenv("S4_USER", "placeholder")
        monkeypatch.delenv("S4_USER")
        monkeypatch.setenv("S4_SAP_CLIENT", "100")

        assert load_env(env_file) is True

        assert os.environ["S4_USER"] == "fromfile"
        assert os.environ["S4_SAP_CLIENT"] == "100"

    def test_missing_file(self, tmp_path):
        assert load_env(tmp_path / "nope.env") is False
