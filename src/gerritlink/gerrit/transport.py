# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Single-shot HTTP transport for Gerrit REST calls.

HttpTransport issues exactly one HTTP round trip per execute() call. It owns
one requests.Session, so the cookie jar filled by the login probe is the same
one used for the real request that follows it. Retry policy does not live
here: adapters are mounted with retries disabled and every requests failure
is surfaced as a GerritTransportError.

Create one transport per logical operation. The credential negotiator bound
to a transport keeps per-instance auth state, so an instance must not be
shared between concurrent requests.

Usage:
    from gerritlink.gerrit.transport import EndpointRequest, HttpTransport

    with HttpTransport() as transport:
        response = transport.execute(
            EndpointRequest("GET", "https://gerrit.example.org/changes/")
        )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

import requests
from pydantic import BaseModel, ConfigDict, Field
from requests.adapters import HTTPAdapter

from gerritlink.gerrit.errors import GerritTransportError

log = logging.getLogger("gerritlink.gerrit.transport")


DEFAULT_TIMEOUT_SECONDS: float = 30.0


class HttpConfig(BaseModel):
    """
    Connection parameters supplied by the HTTP configuration provider.

    verify follows requests semantics: True checks certificates against the
    default trust store, False accepts any certificate (the "accept
    self-signed certificate" decision), and a string is a CA bundle path.
    """

    model_config = ConfigDict(frozen=True)

    connect_timeout: float = Field(
        DEFAULT_TIMEOUT_SECONDS, gt=0, description="Seconds to establish a connection"
    )
    read_timeout: float = Field(
        DEFAULT_TIMEOUT_SECONDS, gt=0, description="Seconds to wait for response data"
    )
    proxy_host: str | None = Field(None, description="HTTP proxy hostname")
    proxy_port: int | None = Field(None, description="HTTP proxy port")
    proxy_username: str | None = Field(None, description="Proxy login")
    proxy_password: str | None = Field(None, description="Proxy password")
    verify: bool | str = Field(True, description="TLS trust policy")

    @property
    def timeout(self) -> tuple[float, float]:
        """Timeout tuple in the form requests expects."""
        return (self.connect_timeout, self.read_timeout)

    @property
    def proxy_url(self) -> str | None:
        """Proxy URL with embedded credentials, or None without a proxy."""
        if not self.proxy_host:
            return None
        host = self.proxy_host
        if "://" in host:
            scheme, host = host.split("://", 1)
        else:
            scheme = "http"
        if self.proxy_port:
            host = f"{host}:{self.proxy_port}"
        if self.proxy_username:
            creds = self.proxy_username
            if self.proxy_password:
                creds += f":{self.proxy_password}"
            host = f"{creds}@{host}"
        return f"{scheme}://{host}"

    @property
    def proxies(self) -> dict[str, str]:
        """Proxy mapping for requests, empty without a proxy."""
        url = self.proxy_url
        if url is None:
            return {}
        return {"http": url, "https": url}


@dataclass(frozen=True)
class EndpointRequest:
    """
    One HTTP request, immutable once built.

    The url is absolute; the REST client resolves host, the /a prefix and
    the endpoint path before handing the request over.
    """

    verb: str
    url: str
    body: str | None = None
    headers: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    def header(self, name: str) -> str | None:
        """Return the first header value matching name (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def with_headers(self, extra: dict[str, str]) -> EndpointRequest:
        """Return a copy with extra headers replacing same-named ones."""
        names = {key.lower() for key in extra}
        kept = tuple((k, v) for k, v in self.headers if k.lower() not in names)
        return replace(self, headers=kept + tuple(extra.items()))


class HttpTransport:
    """
    Issues single HTTP requests through one requests.Session.

    The session cookie jar lives as long as the transport, which is what
    makes a GerritAccount cookie obtained by the login probe visible to the
    request that follows it.
    """

    def __init__(
        self,
        config: HttpConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config or HttpConfig()
        self._session = session if session is not None else self._build_session()
        self._closed = False

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        # No implicit retries at this layer
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.verify = self._config.verify
        proxies = self._config.proxies
        if proxies:
            session.proxies.update(proxies)
        return session

    @property
    def config(self) -> HttpConfig:
        """Connection parameters used by this transport."""
        return self._config

    @property
    def cookies(self) -> Any:
        """Cookie jar shared by every request of this transport."""
        return self._session.cookies

    def has_cookie(self, name: str) -> bool:
        """Check whether the cookie jar holds a cookie with the given name."""
        return any(cookie.name == name for cookie in self._session.cookies)

    def execute(self, request: EndpointRequest) -> requests.Response:
        """
        Perform exactly one round trip for the given request.

        Args:
            request: The fully-formed request.

        Returns:
            The raw response, whatever its status code.

        Raises:
            GerritTransportError: On any network, TLS or protocol failure.
        """
        if self._closed:
            raise GerritTransportError(
                f"Gerrit REST {request.verb} {request.url} failed: transport is closed"
            )

        data = request.body.encode("utf-8") if request.body is not None else None
        log.debug(
            "HTTP %s %s (body=%s, headers=%s)",
            request.verb,
            request.url,
            "yes" if data is not None else "no",
            sorted(
                k for k, _ in request.headers if k.lower() != "authorization"
            ),
        )

        try:
            response = self._session.request(
                request.verb,
                request.url,
                data=data,
                headers=dict(request.headers),
                timeout=self._config.timeout,
                allow_redirects=request.verb in ("GET", "HEAD"),
            )
        except requests.RequestException as exc:
            raise GerritTransportError(
                f"Gerrit REST {request.verb} {request.url} failed: {exc}"
            ) from exc

        log.debug(
            "HTTP %s %s -> %d %s (%d bytes)",
            request.verb,
            request.url,
            response.status_code,
            response.reason or "",
            len(response.content or b""),
        )
        return response

    def close(self) -> None:
        """Close the underlying session."""
        if not self._closed:
            self._session.close()
            self._closed = True

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"HttpTransport(timeout={self._config.timeout!r}, "
            f"proxy={'yes' if self._config.proxy_host else 'no'})"
        )


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "EndpointRequest",
    "HttpConfig",
    "HttpTransport",
]
