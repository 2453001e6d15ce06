"""HTTP client implementing the silent renewal protocol on top of ``requests``."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

import requests

log = logging.getLogger(__name__)

T = TypeVar("T")

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
# Refresh answers that say nothing about the session itself.
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


class RenewalState(str, Enum):
    """Client-side view of the session."""

    AUTHENTICATED = "authenticated"
    ACCESS_EXPIRED = "access_expired"
    RENEWING = "renewing"
    LOGGED_OUT = "logged_out"


class LoggedOutError(RuntimeError):
    """The session is gone; the caller must log in again."""

    def __init__(self, message: str = "Logged out", *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class RenewalUnavailableError(RuntimeError):
    """The server could not decide the refresh (5xx or 429); the session is kept.

    The caller may retry later; the refresh cookie was not consumed.
    """

    def __init__(self, status: int, code: str | None) -> None:
        super().__init__(f"Refresh unavailable ({status})")
        self.status = status
        self.code = code


class AuthRequestError(RuntimeError):
    """Login or anti-forgery bootstrap was rejected by the server.

    :ivar status: HTTP status of the rejection.
    :ivar code: ``code`` field of the problem body, when present.
    """

    def __init__(self, status: int, code: str | None, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


@dataclass(slots=True)
class _Flight(Generic[T]):
    done: threading.Event = field(default_factory=threading.Event)
    result: T | None = None
    error: BaseException | None = None


class SingleFlight(Generic[T]):
    """
    Allow at most one call in flight.

    The first caller (the leader) runs the function; callers arriving while it
    runs wait for it and share its outcome, including its exception.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: _Flight[T] | None = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._current is not None

    def run(self, fn: Callable[[], T]) -> T:
        with self._lock:
            flight = self._current
            leader = flight is None
            if flight is None:
                flight = self._current = _Flight()

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result  # type: ignore[return-value]

        try:
            flight.result = fn()
            return flight.result
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            with self._lock:
                self._current = None
            flight.done.set()


class RenewalClient:
    """
    Session-holding API client that renews expired access tokens silently.

    Cookies (access and refresh) live in the :class:`requests.Session` jar; the
    anti-forgery token is kept in memory and echoed on state-changing calls.

    Parameters
    ----------
    base_url:
        Server origin, e.g. ``"https://auth.example.com"``.
    session:
        Optional pre-configured :class:`requests.Session`.
    timeout:
        Seconds applied to every call, the refresh call included. A timed-out
        refresh counts as a failed one.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 10.0,
        api_prefix: str = "/api/v1",
        anti_forgery_header: str = "X-CSRF-Token",
        renewal_header: str = "X-Token-Renewal",
        renewal_value: str = "refresh",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self.http = session or requests.Session()
        self.timeout = timeout
        self.anti_forgery_header = anti_forgery_header
        self.renewal_header = renewal_header
        self.renewal_value = renewal_value

        self._lock = threading.Lock()
        self._state = RenewalState.LOGGED_OUT
        self._generation = 0
        self._anti_forgery: str | None = None
        self._renewal: SingleFlight[None] = SingleFlight()

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> RenewalState:
        return self._state

    @property
    def generation(self) -> int:
        """Counter bumped every time a new token bundle is accepted."""
        return self._generation

    @property
    def anti_forgery_token(self) -> str | None:
        return self._anti_forgery

    def _set_state(self, state: RenewalState) -> None:
        with self._lock:
            if self._state is not state:
                log.debug("renewal.state %s -> %s", self._state.value, state.value)
            self._state = state

    def _accept_bundle(self, data: Mapping[str, Any]) -> None:
        with self._lock:
            self._anti_forgery = data["anti_forgery_token"]
            self._generation += 1
            self._state = RenewalState.AUTHENTICATED

    def _drop_local_state(self) -> None:
        with self._lock:
            self._anti_forgery = None
            self._state = RenewalState.LOGGED_OUT
        self.http.cookies.clear()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}/{path.lstrip('/')}"

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if method.upper() not in SAFE_METHODS and self._anti_forgery:
            headers.setdefault(self.anti_forgery_header, self._anti_forgery)
        kwargs.setdefault("timeout", self.timeout)
        return self.http.request(method.upper(), self.url(path), headers=headers, **kwargs)

    def _needs_renewal(self, response: requests.Response) -> bool:
        return response.status_code == 401 and response.headers.get(self.renewal_header) == self.renewal_value

    @staticmethod
    def _problem_code(response: requests.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("code") if isinstance(body, dict) else None

    def _raise_for_auth(self, response: requests.Response) -> None:
        if response.status_code >= 400:
            code = self._problem_code(response)
            raise AuthRequestError(response.status_code, code, f"{response.request.path_url} -> {response.status_code}")

    # ------------------------------------------------------------------ #
    # Login / logout
    # ------------------------------------------------------------------ #

    def fetch_anti_forgery(self) -> str:
        """Fetch an anonymous anti-forgery token for the next login."""
        response = self._send("GET", "/auth/csrf")
        self._raise_for_auth(response)
        token = response.json()["data"]["anti_forgery_token"]
        with self._lock:
            self._anti_forgery = token
        return token

    def login(self, email: str, password: str) -> dict[str, Any]:
        """
        Log in with email and password.

        :returns: The public part of the token bundle.
        :raises AuthRequestError: When the server rejects the credentials.
        """
        return self._login("/auth/login", {"email": email, "password": password})

    def login_federated(self, provider: str, assertion: str) -> dict[str, Any]:
        """Log in with a provider-signed assertion."""
        return self._login(f"/auth/federated/{provider}", {"assertion": assertion})

    def _login(self, path: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.fetch_anti_forgery()
        response = self._send("POST", path, json=dict(payload))
        self._raise_for_auth(response)
        data = response.json()["data"]
        self._accept_bundle(data)
        return data

    def logout(self) -> None:
        """Revoke the session server-side (best effort) and drop local state."""
        try:
            if self._anti_forgery:
                response = self._send("POST", "/auth/token/logout")
                if response.status_code >= 400:
                    log.warning(
                        "renewal.logout_rejected status=%s code=%s",
                        response.status_code,
                        self._problem_code(response),
                    )
        except requests.RequestException:
            log.warning("renewal.logout_failed", exc_info=True)
        finally:
            self._drop_local_state()

    # ------------------------------------------------------------------ #
    # Renewal
    # ------------------------------------------------------------------ #

    def refresh(self) -> None:
        """Force a refresh now, joining one already in flight."""
        self._renew(self._generation)

    def _renew(self, seen_generation: int) -> None:
        def attempt() -> None:
            if self._state is RenewalState.LOGGED_OUT:
                raise LoggedOutError()
            if self._generation != seen_generation:
                # a newer bundle already replaced the rejected token
                return
            self._set_state(RenewalState.RENEWING)
            try:
                response = self._send("POST", "/auth/token/refresh")
            except requests.RequestException as exc:
                log.warning("renewal.refresh_failed reason=%s", type(exc).__name__)
                self._drop_local_state()
                raise LoggedOutError("Refresh failed", code="transport_error") from exc
            if response.status_code in TRANSIENT_STATUSES:
                code = self._problem_code(response)
                log.warning("renewal.refresh_unavailable status=%s code=%s", response.status_code, code)
                self._set_state(RenewalState.ACCESS_EXPIRED)
                raise RenewalUnavailableError(response.status_code, code)
            if response.status_code != 200:
                code = self._problem_code(response)
                log.warning("renewal.refresh_rejected status=%s code=%s", response.status_code, code)
                self._drop_local_state()
                raise LoggedOutError("Refresh rejected", code=code)
            self._accept_bundle(response.json()["data"])

        self._renewal.run(attempt)

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """
        Call a protected endpoint, renewing and replaying once on expiry.

        :raises LoggedOutError: When not logged in, or when renewal fails.
        :raises RenewalUnavailableError: When the server cannot renew right now.
        """
        if self._state is RenewalState.LOGGED_OUT:
            raise LoggedOutError()

        generation = self._generation
        response = self._send(method, path, **kwargs)
        if not self._needs_renewal(response):
            return response

        if self._generation == generation:
            self._set_state(RenewalState.ACCESS_EXPIRED)
        self._renew(generation)
        return self._send(method, path, **kwargs)

    def get(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", path, **kwargs)
