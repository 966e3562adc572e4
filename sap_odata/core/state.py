"""
sap_odata.core.state - CSRF session state
==========================================

Thread-safe cache of the current CSRF token and the session cookies that
were issued with it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Callable, Dict, Optional, Tuple


@dataclass(frozen=True)
class Cookie:
    """
    A cookie captured from a service response.

    Attributes
    ----------
    name : str
        Cookie name, e.g. "SAP_SESSIONID_ABC_100"
    value : str
        Cookie value
    attributes : dict
        Optional attributes (domain, path, secure, expires) where known
    """
    name: str
    value: str
    attributes: Dict[str, object] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class Credential:
    """
    Immutable snapshot of ``{token, cookies}``.

    The pair is only ever replaced as a whole, so holding a reference to one
    instance always gives a consistent view.
    """
    token: Optional[str] = None
    cookies: Tuple[Cookie, ...] = ()

    @property
    def has_token(self) -> bool:
        return bool(self.token)


EMPTY_CREDENTIAL = Credential()


class SessionState:
    """
    Shared CSRF credential cache.

    ``current()`` returns the latest snapshot without taking the lock, so
    readers are never blocked by a refresh in flight. ``refresh()`` holds the
    write lock for the full fetch-and-store sequence; concurrent refreshes run
    one after another and each performs its own fetch.

    Examples
    --------
    >>> state = SessionState()
    >>> state.current().token is None
    True
    >>> state.refresh(lambda: Credential("abc123"))
    Credential(token='abc123', cookies=())
    """

    def __init__(self) -> None:
        self._credential: Credential = EMPTY_CREDENTIAL
        self._write_lock = threading.Lock()

    def current(self) -> Credential:
        """Snapshot of the cached token and cookies."""
        return self._credential

    def refresh(self, fetcher: Callable[[], Credential]) -> Credential:
        """
        Replace the cached credential with the one returned by ``fetcher``.

        If ``fetcher`` raises, the previous credential is kept and the
        exception propagates unchanged.
        """
        with self._write_lock:
            credential = fetcher()
            if not isinstance(credential, Credential):
                raise TypeError(f"fetcher must return a Credential, got {type(credential).__name__}")
            self._credential = credential
            return credential

    def clear(self) -> None:
        with self._write_lock:
            self._credential = EMPTY_CREDENTIAL
