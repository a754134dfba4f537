# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Settings and auth context resolution.

Settings come from explicit arguments first, then environment variables:

    GERRIT_HOST, GERRIT_HTTP_BASE_PATH
    GERRIT_USERNAME / GERRIT_HTTP_USER
    GERRIT_PASSWORD / GERRIT_HTTP_PASSWORD
    GERRIT_TIMEOUT, GERRIT_VERIFY_SSL, GERRIT_CA_BUNDLE, GERRIT_PROXY

Credentials are resolved per request by the provider returned from
auth_provider(): explicit settings win, then a matching ~/.netrc entry,
then the environment.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from pydantic import BaseModel, Field
from pygerrit2 import HTTPBasicAuthFromNetrc

from gerritlink.gerrit.auth import AuthContext, AuthContextProvider
from gerritlink.gerrit.client import normalize_host_url
from gerritlink.gerrit.transport import DEFAULT_TIMEOUT_SECONDS, HttpConfig

log = logging.getLogger("gerritlink.config")


_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _env(*names: str) -> str:
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return ""


def _parse_proxy(value: str) -> tuple[str | None, int | None]:
    if not value:
        return None, None
    host, sep, port = value.rpartition(":")
    if sep and port.isdigit() and host and not host.endswith("/"):
        return host, int(port)
    return value, None


class GerritSettings(BaseModel):
    """Connection settings for one Gerrit server."""

    host: str = Field(..., description="Gerrit hostname or root URL")
    base_path: str | None = Field(None, description="Optional base path, e.g. infra")
    username: str | None = Field(None, description="HTTP username")
    password: str | None = Field(None, description="HTTP password")
    timeout: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)
    verify_ssl: bool = Field(True, description="Verify TLS certificates")
    ca_bundle: str | None = Field(None, description="CA bundle path for TLS")
    proxy_host: str | None = None
    proxy_port: int | None = None
    proxy_username: str | None = None
    proxy_password: str | None = None

    @classmethod
    def from_env(cls, **overrides: Any) -> GerritSettings:
        """
        Build settings from the environment, letting non-None overrides win.

        Credentials are not copied from the environment here; they are
        resolved per request so a .netrc entry can take precedence.

        Raises:
            ValueError: If no host is configured.
        """
        proxy_host, proxy_port = _parse_proxy(_env("GERRIT_PROXY"))
        values: dict[str, Any] = {
            "host": _env("GERRIT_HOST"),
            "base_path": _env("GERRIT_HTTP_BASE_PATH") or None,
            "verify_ssl": _env("GERRIT_VERIFY_SSL").lower() not in _FALSE_VALUES,
            "ca_bundle": _env("GERRIT_CA_BUNDLE") or None,
            "proxy_host": proxy_host,
            "proxy_port": proxy_port,
        }
        timeout = _env("GERRIT_TIMEOUT")
        if timeout:
            values["timeout"] = float(timeout)
        values.update({k: v for k, v in overrides.items() if v is not None})
        if not values["host"]:
            raise ValueError("No Gerrit host configured (set GERRIT_HOST or --host)")
        return cls(**values)

    @property
    def root_url(self) -> str:
        """Server root URL including scheme and base path."""
        return normalize_host_url(self.host, self.base_path)

    def http_config(self) -> HttpConfig:
        verify: bool | str = self.verify_ssl
        if self.verify_ssl and self.ca_bundle:
            verify = self.ca_bundle
        return HttpConfig(
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
            proxy_host=self.proxy_host,
            proxy_port=self.proxy_port,
            proxy_username=self.proxy_username,
            proxy_password=self.proxy_password,
            verify=verify,
        )


def netrc_credentials(url: str) -> tuple[str, str] | None:
    """Look up credentials for url in the user's .netrc, if any."""
    try:
        auth = HTTPBasicAuthFromNetrc(url)
    except ValueError:
        return None
    return auth.username, auth.password


def resolve_auth_context(settings: GerritSettings, use_netrc: bool = True) -> AuthContext:
    """
    Resolve the credentials to use for settings.

    Explicit username/password in settings win. Otherwise a .netrc entry for
    the host is used when use_netrc is set, then the environment.
    """
    root_url = settings.root_url
    if settings.username and settings.password:
        return AuthContext(root_url, settings.username, settings.password)

    if use_netrc:
        creds = netrc_credentials(root_url)
        if creds is not None:
            log.debug("Using .netrc credentials for %s", root_url)
            return AuthContext(root_url, creds[0], creds[1])

    login = settings.username or _env("GERRIT_USERNAME", "GERRIT_HTTP_USER")
    password = settings.password or _env("GERRIT_PASSWORD", "GERRIT_HTTP_PASSWORD")
    return AuthContext(root_url, login or None, password or None)


def auth_provider(settings: GerritSettings, use_netrc: bool = True) -> AuthContextProvider:
    """Return a provider that resolves the auth context on every call."""

    def provide() -> AuthContext:
        return resolve_auth_context(settings, use_netrc=use_netrc)

    return provide


__all__ = [
    "GerritSettings",
    "auth_provider",
    "netrc_credentials",
    "resolve_auth_context",
]
