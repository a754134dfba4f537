# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Credential negotiation for Gerrit REST requests.

Gerrit instances are sometimes deployed behind a reverse proxy that enforces
its own HTTP authentication on the /a (authenticated API) path. Sending the
same Basic credentials to both the proxy and Gerrit produces ambiguous double
challenges. To avoid that, the negotiator first issues a login probe against
<host>/login/ through the transport that will carry the real request. When
the probe leaves a GerritAccount cookie in the jar, the xGerritAuth token in
the probe body becomes the session token and is sent as X-Gerrit-Auth
instead of Basic credentials.

Basic credentials are offered at most once per (host, realm) scope during
the lifetime of one negotiator. A server that keeps rejecting them gets no
further credentials for that scope, so requests fail instead of looping.
"""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Final
from urllib.parse import urlparse

from gerritlink.gerrit.errors import GerritTransportError
from gerritlink.gerrit.transport import EndpointRequest, HttpTransport

log = logging.getLogger("gerritlink.gerrit.auth")


SESSION_COOKIE_NAME: Final[str] = "GerritAccount"
SESSION_HEADER_NAME: Final[str] = "X-Gerrit-Auth"
GERRIT_AUTH_PATTERN: Final[re.Pattern[str]] = re.compile(r'xGerritAuth="(.+?)"')

_REALM_PATTERN: Final[re.Pattern[str]] = re.compile(
    r'realm\s*=\s*"([^"]*)"', re.IGNORECASE
)


def _mask_secret(s: str) -> str:
    """Mask a secret for logging, preserving first/last 2 chars."""
    if not s:
        return s
    if len(s) <= 4:
        return "****"
    return s[:2] + "*" * (len(s) - 4) + s[-2:]


@dataclass(frozen=True)
class AuthContext:
    """
    Server location and optional credentials for one request.

    Owned by the caller. The core reads it per request and never stores or
    mutates credentials itself.
    """

    host: str
    login: str | None = None
    password: str | None = None

    @property
    def has_credentials(self) -> bool:
        """True when both login and password are usable."""
        return bool(self.login) and bool(self.password)

    @property
    def base_url(self) -> str:
        """Host URL without trailing slash."""
        return self.host.rstrip("/")

    def __repr__(self) -> str:
        password = _mask_secret(self.password or "")
        return (
            f"AuthContext(host={self.host!r}, login={self.login!r}, "
            f"password={password!r})"
        )


AuthContextProvider = Callable[[], AuthContext]


@dataclass(frozen=True)
class AuthScope:
    """A (host, realm) pair credentials are offered to."""

    host: str
    realm: str | None = None


@dataclass(frozen=True)
class PreparedAuth:
    """Headers to attach to a request, plus non-fatal negotiation warnings."""

    headers: dict[str, str] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()


def basic_authorization(login: str, password: str) -> str:
    """Build an HTTP Basic Authorization header value."""
    token = base64.b64encode(f"{login}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


def parse_basic_realm(header_value: str | None) -> str | None:
    """
    Extract the realm of a Basic challenge.

    Returns:
        The realm ("" when the challenge carries none), or None if the
        header is missing or not a Basic challenge.
    """
    if not header_value:
        return None
    if not header_value.strip().lower().startswith("basic"):
        return None
    match = _REALM_PATTERN.search(header_value)
    return match.group(1) if match else ""


def scope_host(uri: str) -> str:
    """Normalize the authority part of a URI for scope tracking."""
    return urlparse(uri).netloc.lower()


class CredentialNegotiator:
    """
    Decides which auth headers a request carries.

    One negotiator is bound to one HttpTransport. The session token and the
    set of scopes already offered credentials live exactly as long as that
    pairing.
    """

    def __init__(self, auth: AuthContext, transport: HttpTransport) -> None:
        self._auth = auth
        self._transport = transport
        self._attempted: set[AuthScope] = set()
        self._session_token: str | None = None
        self._probed = False

    @property
    def session_token(self) -> str | None:
        """Token discovered by the login probe, if any."""
        return self._session_token

    @property
    def attempted_scopes(self) -> frozenset[AuthScope]:
        """Scopes that were already offered Basic credentials."""
        return frozenset(self._attempted)

    @property
    def probed(self) -> bool:
        """Whether the login probe already ran."""
        return self._probed

    def credentials_for(self, scope: AuthScope) -> tuple[str, str] | None:
        """
        Return credentials for a scope the first time it is asked for.

        Later calls for the same scope return None.
        """
        if not self._auth.has_credentials:
            return None
        if scope in self._attempted:
            log.debug(
                "Credentials already offered to %s (realm=%r), not retrying",
                scope.host,
                scope.realm,
            )
            return None
        self._attempted.add(scope)
        return (self._auth.login or "", self._auth.password or "")

    def _basic_headers(self, scope: AuthScope) -> dict[str, str] | None:
        creds = self.credentials_for(scope)
        if creds is None:
            return None
        return {"Authorization": basic_authorization(*creds)}

    def prepare(self, uri: str) -> PreparedAuth:
        """
        Compute the auth headers for a request to uri.

        Runs the login probe on first use. A discovered session token is
        always preferred over Basic credentials.
        """
        if not self._auth.has_credentials:
            return PreparedAuth()

        warnings: list[str] = []
        if not self._probed:
            warning = self._probe_login()
            if warning:
                warnings.append(warning)

        if self._session_token is not None:
            return PreparedAuth(
                headers={SESSION_HEADER_NAME: self._session_token},
                warnings=tuple(warnings),
            )

        headers = self._basic_headers(AuthScope(scope_host(uri))) or {}
        return PreparedAuth(headers=headers, warnings=tuple(warnings))

    def challenge_headers(self, response: Any, uri: str) -> dict[str, str] | None:
        """
        Answer a 401 challenge for uri.

        Returns Basic headers when the challenged (host, realm) scope was
        never offered credentials and no session token is in use, else None.
        Unchallenged credentials already sent to the host count as offered
        to the realm it answers with.
        """
        if self._session_token is not None or not self._auth.has_credentials:
            return None
        realm = parse_basic_realm(response.headers.get("WWW-Authenticate"))
        if realm is None:
            return None
        host = scope_host(uri)
        scope = AuthScope(host, realm)
        if AuthScope(host) in self._attempted and scope not in self._attempted:
            log.debug(
                "Credentials sent to %s were rejected by realm %r, not retrying",
                host,
                realm,
            )
            self._attempted.add(scope)
            return None
        return self._basic_headers(scope)

    def _probe_login(self) -> str | None:
        """
        Try to obtain a GerritAccount session through <host>/login/.

        Returns:
            A warning message when the probe itself failed, else None.
        """
        self._probed = True
        login_url = f"{self._auth.base_url}/login/"
        log.debug("Probing Gerrit login page: %s", login_url)

        probe = EndpointRequest("GET", login_url)
        try:
            response = self._transport.execute(probe)
            if response.status_code == 401:
                headers = self.challenge_headers(response, login_url)
                if headers:
                    response = self._transport.execute(probe.with_headers(headers))
        except GerritTransportError as exc:
            log.debug("Login probe failed: %s", exc)
            return f"Login probe against {login_url} failed: {exc}"

        if response.status_code == 401:
            log.debug("Login probe rejected with 401")
            return None
        if not self._transport.has_cookie(SESSION_COOKIE_NAME):
            log.debug("Login probe returned no %s cookie", SESSION_COOKIE_NAME)
            return None

        match = GERRIT_AUTH_PATTERN.search(response.text or "")
        if match:
            self._session_token = match.group(1)
            log.debug(
                "Using Gerrit session token %s", _mask_secret(self._session_token)
            )
        return None


__all__ = [
    "AuthContext",
    "AuthContextProvider",
    "AuthScope",
    "CredentialNegotiator",
    "GERRIT_AUTH_PATTERN",
    "PreparedAuth",
    "SESSION_COOKIE_NAME",
    "SESSION_HEADER_NAME",
    "basic_authorization",
    "parse_basic_realm",
    "scope_host",
]
