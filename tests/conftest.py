# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""Shared fixtures for the Gerrit REST layer tests."""

import json
from unittest.mock import MagicMock

import pytest
from requests.structures import CaseInsensitiveDict

GERRIT_ENV_VARS = (
    "GERRIT_HOST",
    "GERRIT_HTTP_BASE_PATH",
    "GERRIT_USERNAME",
    "GERRIT_HTTP_USER",
    "GERRIT_PASSWORD",
    "GERRIT_HTTP_PASSWORD",
    "GERRIT_TIMEOUT",
    "GERRIT_VERIFY_SSL",
    "GERRIT_CA_BUNDLE",
    "GERRIT_PROXY",
)


def build_response(status_code=200, body=None, *, text=None, reason="OK", headers=None):
    """Build a response double with the attributes the client reads."""
    if text is None:
        if body is None:
            text = ""
        elif isinstance(body, str):
            text = body
        else:
            text = ")]}'\n" + json.dumps(body)
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.text = text
    response.content = text.encode("utf-8")
    response.headers = CaseInsensitiveDict(headers or {})
    return response


class FakeTransport:
    """
    Transport double that records requests.

    Responses come from a handler callable (request -> response) or, without
    one, from a queue consumed in order.
    """

    def __init__(self, responses=None, handler=None, cookies=()):
        self.requests = []
        self.closed = False
        self.cookie_names = set(cookies)
        self._responses = list(responses or [])
        self._handler = handler

    def execute(self, request):
        self.requests.append(request)
        if self._handler is not None:
            result = self._handler(request)
        else:
            result = self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def has_cookie(self, name):
        return name in self.cookie_names

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def clean_gerrit_env(monkeypatch):
    """Keep the developer's Gerrit environment out of the tests."""
    for name in GERRIT_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_response():
    """Factory for response doubles."""
    return build_response


@pytest.fixture
def fake_transport_cls():
    """The FakeTransport class, for tests that build several instances."""
    return FakeTransport
