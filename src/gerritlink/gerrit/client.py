# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit REST client: verbs, URI building, status classification and JSON
decoding on top of the single-shot transport and the credential negotiator.

This module provides:
- GET/POST/PUT/DELETE/HEAD calls returning decoded JSON
- The /a prefix for authenticated calls
- Accept and chained User-Agent headers on every request
- Strict status classification (200/201/202/204 are the only successes)
- XSSI guard stripping for Gerrit JSON responses
- A clear distinction between "no body" (None) and a JSON null (error)

Each call opens a fresh HttpTransport and CredentialNegotiator, so auth
state never leaks between unrelated operations.

Usage:
    from gerritlink.gerrit.client import build_client

    client = build_client("gerrit.example.org")
    changes = client.get("/changes/?q=status:open&n=10")
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from enum import Enum
from typing import Any, Final

import requests.utils

from gerritlink import __version__
from gerritlink.gerrit.auth import (
    AuthContext,
    AuthContextProvider,
    CredentialNegotiator,
    _mask_secret,
)
from gerritlink.gerrit.errors import GerritParseError, status_error_for
from gerritlink.gerrit.transport import EndpointRequest, HttpConfig, HttpTransport

log = logging.getLogger("gerritlink.gerrit.client")


_SUCCESS_CODES: Final[frozenset[int]] = frozenset({200, 201, 202, 204})

_JSON_MIME: Final[str] = "application/json"

USER_AGENT: Final[str] = f"gerritlink/{__version__}"

TransportFactory = Callable[[HttpConfig], HttpTransport]


class HttpVerb(str, Enum):
    """HTTP verbs supported by the REST client."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"


def _strip_xssi_guard(text: str) -> str:
    """
    Strip Gerrit's XSSI guard from JSON responses.

    Gerrit prepends ")]}'" to JSON responses to prevent JSON hijacking.
    This function removes that prefix if present.
    """
    if text.startswith(")]}'"):
        # Common patterns: ")]}'\n" or ")]}'\r\n"
        if text[4:6] == "\r\n":
            return text[6:]
        if text[4:5] == "\n":
            return text[5:]
        return text[4:]
    return text


def _json_loads(text: str) -> Any:
    """Parse JSON, keeping the raw text in the error."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Couldn't parse response: {exc}\n{text}"
        raise GerritParseError(msg, response_body=text) from exc


def _serialize_body(data: Any | None) -> str | None:
    """Serialize a request body; strings are assumed to be JSON already."""
    if data is None:
        return None
    if isinstance(data, str):
        return data
    return json.dumps(data)


def chain_user_agent(existing: str | None) -> str:
    """Build the User-Agent value, chaining any pre-existing one."""
    if existing:
        return f"{USER_AGENT} using {existing}"
    return USER_AGENT


class GerritRestClient:
    """
    REST client for Gerrit.

    The auth argument is either a fixed AuthContext or a provider callable
    that is asked for a fresh context on every request (the provider may be
    slow or raise; its errors propagate to the caller).
    """

    def __init__(
        self,
        *,
        auth: AuthContext | AuthContextProvider,
        http_config: HttpConfig | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """
        Initialize the Gerrit REST client.

        Args:
            auth: AuthContext or zero-argument provider returning one.
            http_config: Timeouts, proxy and TLS policy for every transport.
            transport_factory: Builds one HttpTransport per call. Defaults to
                HttpTransport itself.
        """
        self._auth = auth
        self._http_config = http_config or HttpConfig()
        self._transport_factory: TransportFactory = transport_factory or HttpTransport

        log.debug(
            "GerritRestClient initialized: auth=%s, timeout=%s",
            "provider" if callable(auth) else repr(auth),
            self._http_config.timeout,
        )

    @property
    def auth(self) -> AuthContext:
        """The auth context a request issued now would use."""
        return self._current_auth()

    @property
    def is_authenticated(self) -> bool:
        """Check if requests carry credentials (and use the /a prefix)."""
        return self._current_auth().has_credentials

    @property
    def http_config(self) -> HttpConfig:
        """Connection parameters handed to every transport."""
        return self._http_config

    def _current_auth(self) -> AuthContext:
        if isinstance(self._auth, AuthContext):
            return self._auth
        return self._auth()

    def get(self, path: str, headers: dict[str, str] | None = None) -> Any:
        """
        Perform an HTTP GET request.

        Args:
            path: The API path (e.g., "/changes/12345").
            headers: Optional extra request headers.

        Returns:
            The parsed JSON response, or None when the response has no body.

        Raises:
            GerritTransportError: When no response was obtained.
            GerritStatusError: On any non-success status code.
            GerritParseError: When the body is not usable JSON.
        """
        return self.request(HttpVerb.GET, path, headers=headers)

    def post(
        self,
        path: str,
        data: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Perform an HTTP POST request with an optional JSON body."""
        return self.request(HttpVerb.POST, path, data=data, headers=headers)

    def put(
        self,
        path: str,
        data: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Perform an HTTP PUT request with an optional JSON body."""
        return self.request(HttpVerb.PUT, path, data=data, headers=headers)

    def delete(self, path: str, headers: dict[str, str] | None = None) -> Any:
        """Perform an HTTP DELETE request."""
        return self.request(HttpVerb.DELETE, path, headers=headers)

    def head(self, path: str, headers: dict[str, str] | None = None) -> Any:
        """Perform an HTTP HEAD request; always returns None on success."""
        return self.request(HttpVerb.HEAD, path, headers=headers)

    # Request-style aliases of the verbs above
    def get_request(self, path: str, headers: dict[str, str] | None = None) -> Any:
        return self.get(path, headers=headers)

    def post_request(
        self, path: str, body: Any | None = None, headers: dict[str, str] | None = None
    ) -> Any:
        return self.post(path, data=body, headers=headers)

    def put_request(self, path: str, headers: dict[str, str] | None = None) -> Any:
        return self.put(path, headers=headers)

    def delete_request(self, path: str, headers: dict[str, str] | None = None) -> Any:
        return self.delete(path, headers=headers)

    def build_url(self, path: str, auth: AuthContext | None = None) -> str:
        """Build the absolute URI for an API path."""
        auth = auth or self._current_auth()
        rel_path = path if path.startswith("/") else f"/{path}"
        prefix = "/a" if auth.has_credentials else ""
        return f"{auth.base_url}{prefix}{rel_path}"

    def request(
        self,
        verb: HttpVerb | str,
        path: str,
        data: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Perform a single logical REST call on a fresh transport."""
        if not path:
            raise ValueError("path is required")

        method = HttpVerb(verb).value
        auth = self._current_auth()
        url = self.build_url(path, auth)
        body = _serialize_body(data)

        transport = self._transport_factory(self._http_config)
        try:
            negotiator = CredentialNegotiator(auth, transport)
            response = self._execute(
                transport, negotiator, method, url, body, headers or {}
            )
        finally:
            transport.close()

        self._check_status(response, method, path)
        return self._parse_body(response, method)

    def _execute(
        self,
        transport: HttpTransport,
        negotiator: CredentialNegotiator,
        method: str,
        url: str,
        body: str | None,
        headers: dict[str, str],
    ) -> Any:
        prepared = negotiator.prepare(url)
        for warning in prepared.warnings:
            log.debug("Credential negotiation: %s", warning)

        request = EndpointRequest(
            method,
            url,
            body=body,
            headers=tuple(self._build_headers(headers, prepared.headers, body).items()),
        )

        log.debug(
            "Gerrit REST %s %s (auth=%s)",
            method,
            url,
            _describe_auth(prepared.headers),
        )
        # Real requests already carry the token or Basic credentials, so a
        # 401 here is final; challenges are only answered by the login probe
        return transport.execute(request)

    @staticmethod
    def _build_headers(
        caller_headers: dict[str, str],
        auth_headers: dict[str, str],
        body: str | None,
    ) -> dict[str, str]:
        headers: dict[str, str] = {}
        existing_agent: str | None = None
        for key, value in caller_headers.items():
            if key.lower() == "user-agent":
                existing_agent = value
                continue
            headers[key] = value
        headers.update(auth_headers)
        headers["Accept"] = _JSON_MIME
        if body is not None:
            headers["Content-Type"] = f"{_JSON_MIME}; charset=UTF-8"
        headers["User-Agent"] = chain_user_agent(
            existing_agent or requests.utils.default_user_agent()
        )
        return headers

    @staticmethod
    def _check_status(response: Any, method: str, path: str) -> None:
        status = response.status_code
        if status in _SUCCESS_CODES:
            return
        body = ""
        try:
            body = response.text or ""
        except (UnicodeDecodeError, LookupError) as exc:
            log.debug("Failed to decode HTTP error response body: %s", exc)
        reason = response.reason or ""
        log.debug("Gerrit REST %s %s failed with HTTP %d %s", method, path, status, reason)
        raise status_error_for(status, reason, body, method, path)

    @staticmethod
    def _parse_body(response: Any, method: str) -> Any:
        content = response.content
        if method == HttpVerb.HEAD.value or not content:
            return None
        text = content.decode("utf-8", errors="replace")
        text = _strip_xssi_guard(text)
        if not text.strip():
            return None
        value = _json_loads(text)
        if value is None:
            raise GerritParseError(
                f"Unexpectedly empty response: {text.strip()}.",
                response_body=text,
            )
        return value

    def __repr__(self) -> str:
        """String representation for debugging."""
        if not isinstance(self._auth, AuthContext):
            return "GerritRestClient(auth=<provider>)"
        auth = self._auth
        masked = ""
        if auth.has_credentials:
            masked = f"{auth.login}:{_mask_secret(auth.password or '')}@"
        return f"GerritRestClient(base_url='{masked}{auth.base_url}')"


def _describe_auth(headers: dict[str, str]) -> str:
    if "X-Gerrit-Auth" in headers:
        return "session"
    if "Authorization" in headers:
        return "basic"
    return "none"


def normalize_host_url(host: str, base_path: str | None = None) -> str:
    """
    Turn a hostname or URL into the server root URL.

    A bare hostname gets an https scheme. A base path (e.g. "infra") is
    appended once.
    """
    host = host.strip().rstrip("/")
    url = host if "://" in host else f"https://{host}"
    if base_path:
        url = f"{url}/{base_path.strip('/')}"
    return url


def build_client(
    host: str,
    *,
    base_path: str | None = None,
    username: str | None = None,
    password: str | None = None,
    http_config: HttpConfig | None = None,
) -> GerritRestClient:
    """
    Build a GerritRestClient for a given host.

    Args:
        host: Gerrit hostname or root URL.
        base_path: Optional base path (e.g., "infra"). If None, no base path.
        username: HTTP username. Falls back to GERRIT_USERNAME or
                  GERRIT_HTTP_USER environment variables.
        password: HTTP password. Falls back to GERRIT_PASSWORD or
                  GERRIT_HTTP_PASSWORD environment variables.
        http_config: Connection parameters.

    Returns:
        A configured GerritRestClient instance.
    """
    user = (
        (username or "").strip()
        or os.getenv("GERRIT_USERNAME", "").strip()
        or os.getenv("GERRIT_HTTP_USER", "").strip()
    )
    passwd = (
        (password or "").strip()
        or os.getenv("GERRIT_PASSWORD", "").strip()
        or os.getenv("GERRIT_HTTP_PASSWORD", "").strip()
    )

    auth = AuthContext(
        host=normalize_host_url(host, base_path),
        login=user or None,
        password=passwd or None,
    )
    return GerritRestClient(auth=auth, http_config=http_config)


__all__ = [
    "GerritRestClient",
    "HttpVerb",
    "USER_AGENT",
    "build_client",
    "chain_user_agent",
    "normalize_host_url",
]
