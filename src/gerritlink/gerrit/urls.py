# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit endpoint path and web URL construction.

REST paths produced here are relative to the server root and never carry
the /a prefix; the REST client adds it when credentials are configured.

Usage:
    from gerritlink.gerrit.urls import GerritUrlBuilder, changes_query_path

    path = changes_query_path("status:open", options=["LABELS"], limit=25)
    builder = GerritUrlBuilder("https://gerrit.example.org/infra")
    change_url = builder.change_url("releng/project", 12345)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import quote, quote_plus, urljoin

log = logging.getLogger("gerritlink.gerrit.urls")


def _encode_query(query: str) -> str:
    # Spaces become "+", which Gerrit reads as the AND separator
    return quote_plus(query, safe=":/~\"()")


def encode_id(identifier: str | int) -> str:
    """Encode a change id, revision or file path for use in a URL path."""
    return quote(str(identifier), safe="~")


def changes_query_path(
    query: str | None = None,
    options: Iterable[str] | None = None,
    limit: int | None = None,
    start: int | None = None,
    sortkey: str | None = None,
) -> str:
    """
    Build the path for a /changes/ query.

    Args:
        query: Gerrit query string (e.g., "status:open project:foo").
        options: Query options (e.g., ["CURRENT_REVISION"]), sent sorted.
        limit: Page size ("n"); omitted when not positive.
        start: Offset ("S"); omitted when not positive.
        sortkey: Legacy sort key ("N"); when present the offset is not sent.

    Returns:
        Endpoint path such as "/changes/?q=status:open&n=25".
    """
    params: list[str] = []

    if query:
        params.append(f"q={_encode_query(query)}")
    if limit is not None and limit > 0:
        params.append(f"n={limit}")
    if sortkey:
        params.append(f"N={quote(sortkey, safe='')}")
    elif start is not None and start > 0:
        params.append(f"S={start}")
    for opt in sorted(options or ()):
        params.append(f"o={opt}")

    endpoint = "/changes/"
    if params:
        endpoint += "?" + "&".join(params)
    return endpoint


def change_path(change_id: str | int, options: Iterable[str] | None = None) -> str:
    """Build the path for fetching one change, with optional query options."""
    endpoint = f"/changes/{encode_id(change_id)}"
    opts = sorted(options or ())
    if opts:
        endpoint += "?" + "&".join(f"o={opt}" for opt in opts)
    return endpoint


def revision_path(change_id: str | int, revision: str = "current") -> str:
    """Build the path of a change revision."""
    return f"/changes/{encode_id(change_id)}/revisions/{encode_id(revision)}"


def review_path(change_id: str | int, revision: str = "current") -> str:
    """Build the path for posting a review."""
    return f"{revision_path(change_id, revision)}/review"


def starred_path(change_id: str | int, account: str = "self") -> str:
    """Build the path of a starred-change entry (Gerrit 2.8+)."""
    return f"/accounts/{account}/starred.changes/{encode_id(change_id)}"


def build_query(*parts: str | None) -> str:
    """Join non-empty query terms with spaces."""
    return " ".join(part.strip() for part in parts if part and part.strip())


class GerritUrlBuilder:
    """
    Builder for Gerrit web URLs.

    The root URL may carry a base path (e.g. "https://host/infra"), which is
    kept in every generated URL.
    """

    def __init__(self, root_url: str) -> None:
        self._root_url = root_url.strip().rstrip("/") + "/"
        log.debug("GerritUrlBuilder: root_url=%s", self._root_url)

    @property
    def root_url(self) -> str:
        """Server root URL, always ending with a slash."""
        return self._root_url

    def web_url(self, path: str = "") -> str:
        """
        Build a Gerrit web UI URL.

        Args:
            path: Web path (e.g., "c/project/+/123", "dashboard").

        Returns:
            Complete web URL.
        """
        if path:
            return urljoin(self._root_url, path.lstrip("/"))
        return self._root_url.rstrip("/")

    def change_url(self, project: str, change_number: int) -> str:
        """Build the web URL of a change (/c/<project>/+/<number>)."""
        return self.web_url(f"c/{project}/+/{change_number}")

    def __repr__(self) -> str:
        return f"GerritUrlBuilder(root_url={self._root_url!r})"


__all__ = [
    "GerritUrlBuilder",
    "build_query",
    "change_path",
    "changes_query_path",
    "encode_id",
    "review_path",
    "revision_path",
    "starred_path",
]
