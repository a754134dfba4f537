# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Tests for the pagination cursor.

Pages are served by a mocked REST client behind a real DegradingQueryRunner,
so the requested paths show exactly what went on the wire.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest

from gerritlink.gerrit.degrade import DegradingQueryRunner
from gerritlink.gerrit.errors import (
    GerritParseError,
    GerritStatusError,
    status_error_for,
)
from gerritlink.gerrit.pagination import DEFAULT_PAGE_SIZE, PaginationCursor


def _cursor(pages, query="is:open", options=(), page_size=2):
    client = MagicMock()
    client.get.side_effect = list(pages)
    cursor = PaginationCursor(DegradingQueryRunner(client), query, options, page_size)
    return cursor, client


def _paths(client):
    return [c.args[0] for c in client.get.call_args_list]


class TestPaginationCursor:
    """Tests for PaginationCursor.fetch_next_page."""

    def test_two_pages_then_exhausted(self):
        """Test [a, b] then [c] then an empty page without a request."""
        cursor, client = _cursor(
            [
                [{"id": "a"}, {"id": "b", "_more_changes": True}],
                [{"id": "c"}],
            ]
        )

        assert [c["id"] for c in cursor.fetch_next_page()] == ["a", "b"]
        assert cursor.has_more() is True
        assert [c["id"] for c in cursor.fetch_next_page()] == ["c"]
        assert cursor.has_more() is False
        assert cursor.fetch_next_page() == []

        assert client.get.call_count == 2
        assert _paths(client) == [
            "/changes/?q=is:open&n=2",
            "/changes/?q=is:open&n=2&S=2",
        ]

    def test_exhaustion_is_idempotent(self):
        """Test that calls past the end never touch the network."""
        cursor, client = _cursor([[{"id": "a"}]])

        cursor.fetch_next_page()
        for _ in range(5):
            assert cursor.fetch_next_page() == []

        client.get.assert_called_once()

    def test_empty_page_exhausts(self):
        cursor, client = _cursor([[]])

        assert cursor.fetch_next_page() == []
        assert cursor.has_more() is False
        assert cursor.fetch_next_page() == []
        client.get.assert_called_once()

    def test_no_body_treated_as_empty_page(self):
        cursor, _ = _cursor([None])
        assert cursor.fetch_next_page() == []
        assert cursor.has_more() is False

    def test_pages_are_disjoint_and_ordered(self):
        cursor, _ = _cursor(
            [
                [{"id": "1"}, {"id": "2", "_more_changes": True}],
                [{"id": "3"}, {"id": "4", "_more_changes": True}],
                [{"id": "5"}],
            ]
        )

        pages = [cursor.fetch_next_page() for _ in range(4)]

        assert [[c["id"] for c in p] for p in pages] == [["1", "2"], ["3", "4"], ["5"], []]
        assert [c["id"] for c in cursor.changes] == ["1", "2", "3", "4", "5"]
        assert cursor.fetched_count == 5
        assert cursor.pages_fetched == 3

    def test_sortkey_used_as_continuation(self):
        """Test that legacy sort keys resume the query instead of offsets."""
        cursor, client = _cursor(
            [
                [{"id": "a", "_sortkey": "k1"}, {"id": "b", "_sortkey": "k2", "_more_changes": True}],
                [{"id": "c", "_sortkey": "k3"}],
            ]
        )

        cursor.fetch_next_page()
        cursor.fetch_next_page()

        second = _paths(client)[1]
        assert "N=k2" in second
        assert "S=" not in second

    def test_options_sent_on_every_page(self):
        cursor, client = _cursor(
            [[{"id": "a", "_more_changes": True}], [{"id": "b"}]],
            options={"LABELS"},
            page_size=1,
        )

        cursor.fetch_all()

        assert all(p.endswith("&o=LABELS") for p in _paths(client))

    def test_degraded_options_kept_for_later_pages(self):
        """Test that an option rejected once is not requested again."""
        reject = status_error_for(
            400, "Bad Request", '"CURRENT_ACTIONS" is not a valid value for "-o"',
            "GET", "/changes/",
        )
        cursor, client = _cursor(
            [
                reject,
                [{"id": "a"}, {"id": "b", "_more_changes": True}],
                [{"id": "c"}],
            ],
            options={"CURRENT_ACTIONS", "LABELS"},
        )

        cursor.fetch_next_page()
        cursor.fetch_next_page()

        paths = _paths(client)
        assert len(paths) == 3
        assert "o=CURRENT_ACTIONS" in paths[0]
        assert "o=CURRENT_ACTIONS" not in paths[1]
        assert "o=CURRENT_ACTIONS" not in paths[2]
        assert "o=LABELS" in paths[2]
        assert cursor.options == {"LABELS"}

    def test_rejected_sortkey_switches_to_offsets(self):
        reject = status_error_for(
            400, "Bad Request", '"-N" is not a valid option', "GET", "/changes/"
        )
        cursor, client = _cursor(
            [
                [{"id": "a", "_sortkey": "k1"}, {"id": "b", "_sortkey": "k2", "_more_changes": True}],
                reject,
                [{"id": "c", "_sortkey": "k3"}, {"id": "d", "_sortkey": "k4", "_more_changes": True}],
                [{"id": "e"}],
            ]
        )

        cursor.fetch_all()

        paths = _paths(client)
        assert paths[1] == "/changes/?q=is:open&n=2&N=k2"
        assert paths[2] == "/changes/?q=is:open&n=2&S=2"
        assert paths[3] == "/changes/?q=is:open&n=2&S=4"
        assert cursor.fetched_count == 5

    def test_failure_leaves_state_untouched(self):
        error = status_error_for(503, "Service Unavailable", "", "GET", "/changes/")
        cursor, client = _cursor([error, [{"id": "a"}]])

        with pytest.raises(GerritStatusError):
            cursor.fetch_next_page()

        assert cursor.fetched_count == 0
        assert cursor.has_more() is True
        assert cursor.fetch_next_page() == [{"id": "a"}]
        assert _paths(client) == ["/changes/?q=is:open&n=2"] * 2

    def test_rejected_offset_never_replays_first_page(self):
        """Test a server that rejects S= and answers every query with page 1."""

        def server(path):
            if "S=" in path:
                raise status_error_for(
                    400, "Bad Request", '"-S" is not a valid option', "GET", path
                )
            return [{"id": "a"}, {"id": "b", "_more_changes": True}]

        client = MagicMock()
        client.get.side_effect = server
        cursor = PaginationCursor(DegradingQueryRunner(client), "is:open", page_size=2)

        first = cursor.fetch_next_page()
        with pytest.raises(GerritStatusError):
            cursor.fetch_next_page()
        with pytest.raises(GerritStatusError):
            cursor.fetch_all()

        assert [c["id"] for c in first] == ["a", "b"]
        assert [c["id"] for c in cursor.changes] == ["a", "b"]
        assert cursor.pages_fetched == 1
        assert _paths(client) == [
            "/changes/?q=is:open&n=2",
            "/changes/?q=is:open&n=2&S=2",
            "/changes/?q=is:open&n=2&S=2",
        ]

    def test_malformed_page_raises(self):
        cursor, _ = _cursor([[{"id": "a"}, 42]])

        with pytest.raises(GerritParseError):
            cursor.fetch_next_page()
        assert cursor.fetched_count == 0

    def test_fetch_all(self):
        cursor, _ = _cursor(
            [
                [{"id": "a"}, {"id": "b", "_more_changes": True}],
                [{"id": "c"}],
            ]
        )
        assert [c["id"] for c in cursor.fetch_all()] == ["a", "b", "c"]

    def test_reset_starts_over(self):
        cursor, client = _cursor([[{"id": "a"}], [{"id": "a"}]])

        cursor.fetch_next_page()
        cursor.reset()

        assert cursor.has_more() is True
        assert cursor.changes == []
        cursor.fetch_next_page()
        assert _paths(client)[1] == "/changes/?q=is:open&n=2"

    def test_changes_returns_copy(self):
        cursor, _ = _cursor([[{"id": "a"}]])
        cursor.fetch_next_page()

        cursor.changes.clear()

        assert cursor.fetched_count == 1

    def test_next_descriptor(self):
        cursor, _ = _cursor([[{"id": "a"}, {"id": "b", "_more_changes": True}]])
        assert cursor.next_descriptor().start is None
        cursor.fetch_next_page()
        assert cursor.next_descriptor().start == 2

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            PaginationCursor(DegradingQueryRunner(MagicMock()), "is:open", page_size=0)

    def test_default_page_size(self):
        cursor = PaginationCursor(DegradingQueryRunner(MagicMock()), "is:open")
        assert cursor.page_size == DEFAULT_PAGE_SIZE == 25


class TestPaginationConcurrency:
    """Tests for the one-fetch-at-a-time guard."""

    def test_concurrent_fetches_are_serialized(self):
        pages = [
            [{"id": "a"}, {"id": "b", "_more_changes": True}],
            [{"id": "c"}, {"id": "d", "_more_changes": True}],
        ]
        state = {"in_flight": 0, "max_in_flight": 0}
        guard = threading.Lock()

        def slow_get(path):
            with guard:
                state["in_flight"] += 1
                state["max_in_flight"] = max(state["max_in_flight"], state["in_flight"])
            time.sleep(0.05)
            with guard:
                state["in_flight"] -= 1
            return pages.pop(0)

        client = MagicMock()
        client.get.side_effect = slow_get
        cursor = PaginationCursor(DegradingQueryRunner(client), "is:open", page_size=2)

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cursor.fetch_next_page()))
            for _ in range(2)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert state["max_in_flight"] == 1
        assert sorted(c["id"] for page in results for c in page) == ["a", "b", "c", "d"]
        assert [c["id"] for c in cursor.changes] == ["a", "b", "c", "d"]
        assert _paths(client) == [
            "/changes/?q=is:open&n=2",
            "/changes/?q=is:open&n=2&S=2",
        ]
