# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Stateful pagination over a Gerrit changes query.

The cursor fetches fixed-size pages one at a time. Servers that still hand
out legacy sort keys (_sortkey on each record) are resumed from the last
key; newer servers are resumed by offset. The server marks the last record
of a page with _more_changes when further pages exist; a missing flag ends
the query.
"""

from __future__ import annotations

import logging
import threading
from typing import Final

from gerritlink.gerrit.degrade import ChangeRecord, DegradingQueryRunner, QueryDescriptor

log = logging.getLogger("gerritlink.gerrit.pagination")


DEFAULT_PAGE_SIZE: Final[int] = 25


class PaginationCursor:
    """
    Serially fetches pages of one query.

    A lock is held for the whole of each fetch: a concurrent caller blocks
    until the running fetch completes, then proceeds with the updated
    offset and sort key. Pages are therefore appended in request order.
    """

    def __init__(
        self,
        runner: DegradingQueryRunner,
        query: str,
        options: frozenset[str] | set[str] | list[str] | tuple[str, ...] = (),
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._runner = runner
        self._base = QueryDescriptor(
            query=query, options=frozenset(options), limit=page_size
        )
        self._lock = threading.Lock()
        self._changes: list[ChangeRecord] = []
        self._sortkey: str | None = None
        self._use_sortkeys = True
        self._exhausted = False
        self._pages = 0

    @property
    def query(self) -> str:
        return self._base.query

    @property
    def options(self) -> frozenset[str]:
        """Options still requested (degradation may have removed some)."""
        return self._base.options

    @property
    def page_size(self) -> int:
        return self._base.limit or DEFAULT_PAGE_SIZE

    @property
    def changes(self) -> list[ChangeRecord]:
        """Copy of every record fetched so far, in order."""
        with self._lock:
            return list(self._changes)

    @property
    def fetched_count(self) -> int:
        return len(self._changes)

    @property
    def pages_fetched(self) -> int:
        return self._pages

    def has_more(self) -> bool:
        """True until the server signalled the end of the result set."""
        return not self._exhausted

    def next_descriptor(self) -> QueryDescriptor:
        """Descriptor of the page fetch_next_page() would request."""
        start = len(self._changes) or None
        return self._base.with_continuation(start=start, sortkey=self._sortkey)

    def fetch_next_page(self) -> list[ChangeRecord]:
        """
        Fetch the next page of changes.

        Returns:
            The new records, or an empty list once the query is exhausted
            (in which case no request is made).

        Raises:
            GerritRestError: When the page could not be fetched. The cursor
                state is left untouched, so the call may be repeated.
        """
        with self._lock:
            if self._exhausted:
                return []

            descriptor = self.next_descriptor()
            log.debug(
                "Fetching page %d of %r (start=%s, sortkey=%s)",
                self._pages + 1,
                descriptor.query,
                descriptor.start,
                descriptor.sortkey,
            )
            page = self._runner.run(descriptor)
            self._adopt_degraded_shape(descriptor)

            if not page.changes:
                self._exhausted = True
                return []

            self._changes.extend(page.changes)
            self._pages += 1
            if page.sortkey and self._use_sortkeys:
                self._sortkey = page.sortkey
            self._exhausted = not page.more

            log.debug(
                "Fetched %d changes (total=%d, more=%s)",
                len(page.changes),
                len(self._changes),
                page.more,
            )
            return list(page.changes)

    def fetch_all(self) -> list[ChangeRecord]:
        """Fetch the remaining pages and return every record."""
        while self.fetch_next_page():
            pass
        return self.changes

    def reset(self) -> None:
        """Forget all fetched state; the next fetch starts a new query."""
        with self._lock:
            self._changes.clear()
            self._sortkey = None
            self._use_sortkeys = True
            self._exhausted = False
            self._pages = 0

    def _adopt_degraded_shape(self, requested: QueryDescriptor) -> None:
        # Keep options/pagination narrowed by the runner for later pages
        used = self._runner.last_descriptor
        if used is None or used == requested:
            return
        if used.options != self._base.options:
            self._base = QueryDescriptor(
                query=self._base.query,
                options=used.options,
                limit=self._base.limit,
            )
        if requested.sortkey and not used.sortkey:
            # Server does not know sort keys; stay with offsets
            self._sortkey = None
            self._use_sortkeys = False

    def __repr__(self) -> str:
        return (
            f"PaginationCursor(query={self.query!r}, fetched={len(self._changes)}, "
            f"exhausted={self._exhausted})"
        )


__all__ = ["DEFAULT_PAGE_SIZE", "PaginationCursor"]
