"""
sap_odata.core.executor - CSRF-aware request execution
=======================================================

Runs one request through the attach -> send -> classify -> refresh -> retry
protocol:

    IDLE -> ATTACHED -> SENT -> CLASSIFIED -> DONE
                                    |
                                    +-> REFRESHING -> RETRIED -> SENT -> CLASSIFIED -> DONE

A call dispatches the request at most twice and refreshes the CSRF token
at most once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import enum
import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from sap_odata.core.classifier import (
    CSRF_FETCH,
    CSRF_HEADER,
    CSRF_REQUIRED,
    Classification,
    classify,
    csrf_header_value,
    is_error_status,
    is_mutating_method,
    service_error,
)
from sap_odata.core.errors import FetchError, TransportError
from sap_odata.core.state import Cookie, Credential, SessionState
from sap_odata.core.transport import Transport, TransportResponse

MAX_ATTEMPTS = 2


class ExecState(enum.Enum):
    IDLE = "idle"
    ATTACHED = "attached"
    SENT = "sent"
    CLASSIFIED = "classified"
    REFRESHING = "refreshing"
    RETRIED = "retried"
    DONE = "done"


_TRANSITIONS = {
    ExecState.IDLE: {ExecState.ATTACHED},
    ExecState.ATTACHED: {ExecState.SENT},
    ExecState.SENT: {ExecState.CLASSIFIED},
    ExecState.CLASSIFIED: {ExecState.DONE, ExecState.REFRESHING},
    ExecState.REFRESHING: {ExecState.RETRIED},
    ExecState.RETRIED: {ExecState.SENT},
    ExecState.DONE: set(),
}


@dataclass
class PendingRequest:
    """One in-flight call; lives only for the duration of ``execute``."""
    method: str
    url: str
    body: Optional[bytes] = None
    params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    attempt: int = 1

    @property
    def mutating(self) -> bool:
        return is_mutating_method(self.method)


def _encode_body(body: Any) -> Tuple[Optional[bytes], Optional[str]]:
    if body is None:
        return None, None
    if isinstance(body, bytes):
        return body, None
    if isinstance(body, str):
        return body.encode("utf-8"), None
    return json.dumps(body, separators=(",", ":")).encode("utf-8"), "application/json"


def _token_preview(token: Optional[str]) -> str:
    return f"{token[:6]}..." if token else "<none>"


class RequestExecutor:
    """
    Executes requests against an OData service with transparent CSRF handling.

    Parameters
    ----------
    transport : Transport
        Anything with a ``send(method, url, ...)`` returning TransportResponse
    state : SessionState, optional
        Shared credential cache; a fresh one is created if omitted
    probe_url : str
        Where the CSRF refresh probe is sent (service root by default)
    probe_params : dict, optional
        Query parameters for the probe, e.g. ``{"sap-client": "100"}``

    Examples
    --------
    >>> executor = RequestExecutor(RequestsTransport("https://host/sap/opu/odata/sap/"))
    >>> resp = executor.execute("POST", "ZSRV/Orders", body={"Id": "1"})
    >>> resp.status
    201
    """

    def __init__(
        self,
        transport: Transport,
        state: Optional[SessionState] = None,
        *,
        probe_url: str = "/",
        probe_params: Optional[Dict[str, str]] = None,
    ) -> None:
        self.transport = transport
        self.state = state if state is not None else SessionState()
        self.probe_url = probe_url
        self.probe_params = dict(probe_params or {})
        self.logger = logging.getLogger("sap_odata.executor")

    # ---------------- protocol ----------------

    def execute(
        self,
        method: str,
        url: str,
        body: Any = None,
        params: Optional[Mapping[str, str]] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        probe_url: Optional[str] = None,
        probe_params: Optional[Mapping[str, str]] = None,
        **options: Any,
    ) -> TransportResponse:
        """
        Send a request, refreshing the CSRF token and retrying once if needed.

        ``probe_url`` and ``probe_params`` name the service root the token is
        fetched from when this call needs a refresh; the executor defaults
        apply when omitted. ``options`` (e.g. ``timeout``) are passed to the
        transport untouched, for the request and for the refresh probe.

        Returns
        -------
        TransportResponse
            The successful response, unmodified

        Raises
        ------
        TransportError
            The transport failed; never retried here
        FetchError
            The CSRF refresh failed; the request is not retried
        ServiceError
            Any error response, including a second CSRF rejection
        """
        payload, content_type = _encode_body(body)
        call = PendingRequest(
            method=method.upper(),
            url=url,
            body=payload,
            params=dict(params or {}),
            headers=dict(headers or {}),
        )
        if content_type and not any(k.lower() == "content-type" for k in call.headers):
            call.headers["Content-Type"] = content_type

        out_headers, cookies = self._attach(call)
        step = self._advance(call, ExecState.IDLE, ExecState.ATTACHED)
        response = self._dispatch(call, out_headers, cookies, options)
        step = self._advance(call, step, ExecState.SENT)

        while True:
            verdict = classify(response.status, response.headers, call.mutating)
            step = self._advance(call, step, ExecState.CLASSIFIED)
            if verdict is not Classification.CREDENTIAL_INVALID or call.attempt >= MAX_ATTEMPTS:
                break

            step = self._advance(call, step, ExecState.REFRESHING)
            self.logger.info("CSRF token rejected for %s %s, refreshing", call.method, call.url)
            self.refresh(probe_url=probe_url, probe_params=probe_params, **options)
            call.attempt += 1
            out_headers, cookies = self._attach(call)
            step = self._advance(call, step, ExecState.RETRIED)
            response = self._dispatch(call, out_headers, cookies, options)
            step = self._advance(call, step, ExecState.SENT)

        self._advance(call, step, ExecState.DONE)
        if verdict is Classification.SUCCESS:
            return response
        raise service_error(response.status, response.body, response.url or call.url, response.headers)

    def _advance(self, call: PendingRequest, current: ExecState, nxt: ExecState) -> ExecState:
        if nxt not in _TRANSITIONS[current]:
            raise RuntimeError(f"illegal executor transition {current.name} -> {nxt.name}")
        self.logger.debug(
            "%s %s attempt=%d %s -> %s", call.method, call.url, call.attempt, current.name, nxt.name
        )
        return nxt

    def _attach(self, call: PendingRequest) -> Tuple[Dict[str, str], Tuple[Cookie, ...]]:
        credential = self.state.current()
        headers = dict(call.headers)
        if credential.token:
            headers[CSRF_HEADER] = credential.token
        return headers, credential.cookies

    def _dispatch(
        self,
        call: PendingRequest,
        headers: Dict[str, str],
        cookies: Tuple[Cookie, ...],
        options: Dict[str, Any],
    ) -> TransportResponse:
        return self.transport.send(
            call.method,
            call.url,
            headers=headers,
            cookies=cookies,
            params=call.params,
            body=call.body,
            **options,
        )

    # ---------------- refresh ----------------

    def refresh(
        self,
        *,
        probe_url: Optional[str] = None,
        probe_params: Optional[Mapping[str, str]] = None,
        **options: Any,
    ) -> Credential:
        """
        Fetch a fresh CSRF token and store it in the session state.

        Parameters
        ----------
        probe_url : str, optional
            Service root to fetch the token from; defaults to ``self.probe_url``
        probe_params : dict, optional
            Probe query parameters; defaults to ``self.probe_params``

        Raises
        ------
        FetchError
            Both probes failed, or the service returned no token
        """
        url = probe_url if probe_url is not None else self.probe_url
        params = dict(probe_params) if probe_params is not None else dict(self.probe_params)
        return self.state.refresh(lambda: self._fetch_credential(url, params, options))

    def _probe(
        self, method: str, url: str, params: Dict[str, str], options: Dict[str, Any]
    ) -> Union[TransportResponse, TransportError]:
        try:
            return self.transport.send(
                method,
                url,
                headers={CSRF_HEADER: CSRF_FETCH},
                cookies=(),
                params=params,
                body=None,
                **options,
            )
        except TransportError as exc:
            return exc

    def _fetch_credential(self, url: str, params: Dict[str, str], options: Dict[str, Any]) -> Credential:
        resp = self._probe("HEAD", url, params, options)
        if isinstance(resp, TransportError) or is_error_status(resp.status):
            self.logger.debug("HEAD CSRF probe on %s failed (%s), falling back to GET", url, _describe(resp))
            resp = self._probe("GET", url, params, options)
            if isinstance(resp, TransportError):
                raise FetchError(resp) from resp
            if is_error_status(resp.status):
                raise FetchError(f"csrf fetch failed with status: {resp.status}")

        token = csrf_header_value(resp.headers)
        if not token or token.strip().lower() in (CSRF_FETCH.lower(), CSRF_REQUIRED.lower()):
            raise FetchError("csrf token header not found in response")

        self.logger.debug("CSRF token refreshed: %s", _token_preview(token))
        return Credential(token=token, cookies=tuple(resp.cookies))


def _describe(resp: Union[TransportResponse, TransportError]) -> str:
    if isinstance(resp, TransportError):
        return str(resp.reason)
    return f"status {resp.status}"
