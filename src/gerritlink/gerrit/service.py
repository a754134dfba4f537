# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit service layer for gerritlink.

This module provides the operations that callers (UI actions, the CLI) use:

- Paginated change queries (query_changes returns a PaginationCursor)
- Change details, with automatic narrowing on older servers
- Reviews, submit, abandon, reviewers, stars and file review marks
- Published and draft comments
- Server version, credential checks and project listing

All calls are synchronous and raise GerritRestError subclasses on failure;
get_change_details wraps all but 404 in GerritServiceError. Threading and
user notification belong to the caller.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlparse

from gerritlink.gerrit.auth import AuthContext
from gerritlink.gerrit.client import GerritRestClient
from gerritlink.gerrit.degrade import (
    DEFAULT_RULES,
    ChangeRecord,
    DegradationRules,
    DegradingQueryRunner,
    QueryDescriptor,
)
from gerritlink.gerrit.errors import (
    GerritNotFoundError,
    GerritParseError,
    GerritRestError,
)
from gerritlink.gerrit.models import ReviewRequest
from gerritlink.gerrit.pagination import DEFAULT_PAGE_SIZE, PaginationCursor
from gerritlink.gerrit.transport import HttpConfig
from gerritlink.gerrit.urls import (
    GerritUrlBuilder,
    build_query,
    change_path,
    encode_id,
    review_path,
    revision_path,
    starred_path,
)

log = logging.getLogger("gerritlink.gerrit.service")


# Default query options for listing changes
DEFAULT_LIST_OPTIONS: frozenset[str] = frozenset(
    {
        "ALL_REVISIONS",
        "DETAILED_ACCOUNTS",
        "LABELS",
    }
)

# Default query options for fetching change details
DEFAULT_CHANGE_OPTIONS: frozenset[str] = frozenset(
    {
        "ALL_REVISIONS",
        "MESSAGES",
        "DETAILED_ACCOUNTS",
        "LABELS",
        "DETAILED_LABELS",
    }
)

CHANGES_TO_REVIEW_QUERY = "is:open reviewer:self"


class GerritServiceError(Exception):
    """Raised for service-level errors."""


def parse_version(version: str | None) -> float:
    """
    Reduce a Gerrit version string to major.minor as a float.

    "2.9.1" -> 2.9, "" or garbage -> 0.0.
    """
    if not version:
        return 0.0
    first = version.find(".")
    second = version.find(".", first + 1) if first >= 0 else -1
    if second > 0:
        version = version[:second]
    try:
        return float(version)
    except ValueError:
        return 0.0


def _strip_git_extension(path: str) -> str:
    return path[: -len(".git")] if path.endswith(".git") else path


def _url_path(url: str) -> str:
    # Git also accepts scp-like "user@host:path" remotes
    if "://" not in url and re.match(r"^[^/]+:", url):
        host, _, path = url.partition(":")
        url = f"ssh://{host}/{path.lstrip('/')}"
    return urlparse(url).path


def project_name_from_remote(server_url: str, remote_url: str) -> str:
    """
    Derive the Gerrit project name from a Git remote URL.

    The server's base path (e.g. "/infra/") is stripped from the remote
    path, as is a trailing ".git".
    """
    if not server_url.endswith("/"):
        server_url += "/"
    base_path = _url_path(server_url)
    path = _url_path(remote_url)
    if len(path) >= len(base_path) and path.startswith(base_path):
        path = path[len(base_path):]
    else:
        path = path.lstrip("/")
    path = _strip_git_extension(path)
    return path.rstrip("/")


class GerritService:
    """
    High-level operations on a Gerrit server.

    Each REST call runs on its own transport; every query session gets its
    own runner and cursor.
    """

    def __init__(
        self,
        client: GerritRestClient,
        rules: DegradationRules = DEFAULT_RULES,
    ) -> None:
        self._client = client
        self._rules = rules
        self._server_version: float = 0.0

        log.debug(
            "GerritService initialized: %r, auth=%s",
            client,
            "yes" if client.is_authenticated else "no",
        )

    @property
    def client(self) -> GerritRestClient:
        return self._client

    @property
    def url_builder(self) -> GerritUrlBuilder:
        return GerritUrlBuilder(self._client.auth.base_url)

    @property
    def is_authenticated(self) -> bool:
        return self._client.is_authenticated

    # Queries

    def query_changes(
        self,
        query: str,
        options: Iterable[str] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PaginationCursor:
        """
        Start a paginated query session.

        Args:
            query: Gerrit query string (e.g., "is:open").
            options: Query options; defaults to DEFAULT_LIST_OPTIONS.
            page_size: Number of changes per page.

        Returns:
            A fresh cursor; no request is made until its first fetch.
        """
        if options is None:
            options = DEFAULT_LIST_OPTIONS
        runner = DegradingQueryRunner(self._client, self._rules)
        return PaginationCursor(runner, query, frozenset(options), page_size)

    def get_all_changes(
        self,
        query: str,
        options: Iterable[str] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[ChangeRecord]:
        """Fetch every change matching query."""
        return self.query_changes(query, options, page_size).fetch_all()

    def get_changes_to_review(self) -> list[ChangeRecord]:
        """Open changes the current user is a reviewer of."""
        return self.get_all_changes(
            CHANGES_TO_REVIEW_QUERY, options={"DETAILED_ACCOUNTS"}
        )

    @staticmethod
    def build_project_query(query: str | None, project_names: Iterable[str]) -> str:
        """
        Restrict query to the given projects.

        The project terms are OR-ed and the group is AND-ed with query.
        """
        terms = [f"project:{name}" for name in project_names if name]
        project_part = f"({' OR '.join(terms)})" if terms else ""
        return build_query(query, project_part)

    def get_project_names(self, remote_urls: Iterable[str]) -> list[str]:
        """Project names of the Git remotes that point at this server."""
        server_url = self._client.auth.base_url
        names: list[str] = []
        for remote_url in remote_urls:
            stripped = _strip_git_extension(remote_url.rstrip("/"))
            name = project_name_from_remote(server_url, stripped)
            if name and stripped.endswith(name):
                names.append(name)
        return names

    def get_change_details(
        self,
        change_id: str | int,
        options: Iterable[str] | None = None,
    ) -> ChangeRecord:
        """
        Fetch one change with details.

        Older servers that reject an option (e.g. MESSAGES before 2.7) get
        one narrowed resubmission.

        Raises:
            GerritNotFoundError: If the change does not exist.
            GerritServiceError: If the change cannot be fetched.
            GerritParseError: If the server did not return a JSON object.
        """
        if options is None:
            options = DEFAULT_CHANGE_OPTIONS
        runner = DegradingQueryRunner(self._client, self._rules)
        descriptor = QueryDescriptor(options=frozenset(options))
        try:
            result = runner.fetch(
                descriptor, lambda d: change_path(change_id, d.options)
            )
        except GerritNotFoundError:
            raise
        except GerritRestError as exc:
            msg = f"Failed to fetch change {change_id}: {exc}"
            log.error(msg)
            raise GerritServiceError(msg) from exc
        if not isinstance(result, dict):
            raise GerritParseError(
                f"Unexpected JSON result format: {result!r}",
                response_body=repr(result),
            )
        return result

    # Change operations

    def post_review(
        self,
        change_id: str | int,
        review: ReviewRequest | dict[str, Any],
        revision: str = "current",
    ) -> Any:
        """Post a review (message, votes, inline comments) on a revision."""
        body = review.to_review_input() if isinstance(review, ReviewRequest) else review
        log.info("Posting review on %s/%s", change_id, revision)
        return self._client.post(review_path(change_id, revision), data=body)

    def submit(
        self, change_id: str | int, submit_input: dict[str, Any] | None = None
    ) -> Any:
        """Submit the current revision of a change."""
        log.info("Submitting change %s", change_id)
        return self._client.post(
            f"{revision_path(change_id)}/submit", data=submit_input or {}
        )

    def abandon(self, change_id: str | int, message: str | None = None) -> Any:
        """Abandon a change."""
        body: dict[str, Any] = {}
        if message:
            body["message"] = message
        log.info("Abandoning change %s", change_id)
        return self._client.post(f"/changes/{encode_id(change_id)}/abandon", data=body)

    def add_reviewer(self, change_id: str | int, reviewer: str) -> Any:
        """Add a reviewer (account or group) to a change."""
        return self._client.post(
            f"/changes/{encode_id(change_id)}/reviewers", data={"reviewer": reviewer}
        )

    def star(self, change_id: str | int) -> None:
        """Star a change for the current user (Gerrit 2.8+)."""
        self._client.put(starred_path(change_id))

    def unstar(self, change_id: str | int) -> None:
        """Remove the star from a change (Gerrit 2.8+)."""
        self._client.delete(starred_path(change_id))

    def set_reviewed(self, change_id: str | int, revision: str, file_path: str) -> None:
        """Mark a file of a revision as reviewed; no-op without credentials."""
        if not self._client.is_authenticated:
            return
        self._client.put(
            f"{revision_path(change_id, revision)}/files/{encode_id(file_path)}/reviewed"
        )

    # Comments

    def get_comments(
        self,
        change_id: str | int,
        revision: str,
        include_published: bool = True,
        include_drafts: bool = True,
    ) -> dict[str, list[dict[str, Any]]]:
        """
        Fetch inline comments of a revision, drafts first, keyed by file.

        Servers older than 2.7 answer 404 for the comments endpoints; that
        yields an empty mapping. Drafts need credentials.
        """
        base = revision_path(change_id, revision)
        comments: dict[str, list[dict[str, Any]]] = {}
        try:
            if include_drafts and self._client.is_authenticated:
                for path, entries in (self._client.get(f"{base}/drafts/") or {}).items():
                    comments.setdefault(path, []).extend(entries)
            if include_published:
                for path, entries in (self._client.get(f"{base}/comments/") or {}).items():
                    comments.setdefault(path, []).extend(entries)
        except GerritNotFoundError:
            log.debug("Comments endpoint not available for %s", base)
            return {}
        return comments

    def save_draft(
        self, change_id: str | int, revision: str, draft: dict[str, Any]
    ) -> Any:
        """Create a draft comment, or update it when it carries an id."""
        base = f"{revision_path(change_id, revision)}/drafts"
        draft_id = draft.get("id")
        if draft_id:
            return self._client.put(f"{base}/{encode_id(draft_id)}", data=draft)
        return self._client.put(base, data=draft)

    def delete_draft(self, change_id: str | int, revision: str, draft_id: str) -> None:
        """Delete a draft comment."""
        self._client.delete(
            f"{revision_path(change_id, revision)}/drafts/{encode_id(draft_id)}"
        )

    # Server and account

    def get_server_version(self) -> float:
        """Server version as major.minor float, looked up once."""
        if self._server_version == 0.0:
            self._server_version = parse_version(
                self._client.get("/config/server/version")
            )
        return self._server_version

    def get_self_account(self) -> dict[str, Any]:
        """Account of the authenticated user."""
        result = self._client.get("/accounts/self")
        if not isinstance(result, dict):
            raise GerritParseError(
                f"Unexpected JSON result format: {result!r}",
                response_body=repr(result),
            )
        return result

    def check_credentials(self, auth: AuthContext | None = None) -> bool:
        """
        Check that credentials work by fetching /accounts/self.

        Args:
            auth: Credentials to test instead of the configured ones.

        Returns:
            True on success, False on any REST failure or missing host.
        """
        client = self._client
        if auth is not None:
            client = GerritRestClient(auth=auth, http_config=self._client.http_config)
        if not client.auth.host:
            return False
        try:
            client.get("/accounts/self")
        except GerritRestError as exc:
            log.info("Credential check failed: %s", exc)
            return False
        return True

    def get_projects(self, limit: int | None = None) -> list[str]:
        """Sorted names of the projects visible to the user."""
        endpoint = "/projects/"
        if limit:
            endpoint += f"?n={limit}"
        data = self._client.get(endpoint)
        # Gerrit returns a dict with project names as keys
        if isinstance(data, dict):
            return sorted(data.keys())
        return []


def create_gerrit_service(
    host: str,
    base_path: str | None = None,
    username: str | None = None,
    password: str | None = None,
    http_config: HttpConfig | None = None,
    use_netrc: bool = True,
) -> GerritService:
    """
    Factory function to create a GerritService instance.

    Credentials are resolved per request: explicit arguments, then .netrc
    (unless use_netrc is False), then the environment.
    """
    # config imports the gerrit package, so resolve it lazily
    from gerritlink.config import GerritSettings, auth_provider

    settings = GerritSettings(
        host=host, base_path=base_path, username=username, password=password
    )
    client = GerritRestClient(
        auth=auth_provider(settings, use_netrc=use_netrc),
        http_config=http_config or settings.http_config(),
    )
    return GerritService(client)


__all__ = [
    "CHANGES_TO_REVIEW_QUERY",
    "DEFAULT_CHANGE_OPTIONS",
    "DEFAULT_LIST_OPTIONS",
    "GerritService",
    "GerritServiceError",
    "create_gerrit_service",
    "parse_version",
    "project_name_from_remote",
]
