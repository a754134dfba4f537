# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Exception hierarchy for the Gerrit REST access layer.

Every failure raised by the transport, the REST client, the degrading query
runner or the pagination cursor is a GerritRestError subclass:

- GerritTransportError: no HTTP response was obtained (network, TLS, IO).
- GerritStatusError: the server answered outside the success set.
- GerritAuthError / GerritNotFoundError: status errors for 401/403 and 404.
- GerritParseError: a successful response whose body is not usable JSON.
"""

from __future__ import annotations


class GerritRestError(RuntimeError):
    """Base class for all REST access failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class GerritTransportError(GerritRestError):
    """Raised when a request failed before any HTTP response was received."""


class GerritStatusError(GerritRestError):
    """Raised for HTTP status codes outside 200/201/202/204."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        reason: str = "",
    ) -> None:
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.reason = reason


class GerritAuthError(GerritStatusError):
    """Raised for authentication failures (401/403)."""


class GerritNotFoundError(GerritStatusError):
    """Raised when a resource is not found (404)."""


class GerritParseError(GerritRestError):
    """Raised when a 2xx body is not valid JSON or is a JSON null."""


def status_error_for(
    status_code: int,
    reason: str,
    response_body: str,
    method: str,
    path: str,
) -> GerritStatusError:
    """Build the status error subclass matching an HTTP status code."""
    message = (
        f"Gerrit REST {method} {path} not successful. "
        f"Message: {reason}. Status-Code: {status_code}."
    )
    cls: type[GerritStatusError] = GerritStatusError
    if status_code in (401, 403):
        cls = GerritAuthError
    elif status_code == 404:
        cls = GerritNotFoundError
    return cls(
        message,
        status_code=status_code,
        response_body=response_body,
        reason=reason,
    )


__all__ = [
    "GerritAuthError",
    "GerritNotFoundError",
    "GerritParseError",
    "GerritRestError",
    "GerritStatusError",
    "GerritTransportError",
    "status_error_for",
]
