# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Tests for the capability-degrading query runner.

This module tests:
- classify_degradation as a pure function of error and descriptor
- The one-resubmission limit of DegradingQueryRunner
- Structural validation of change pages
"""

import re
from unittest.mock import MagicMock

import pytest

from gerritlink.gerrit.degrade import (
    DEFAULT_RULES,
    DegradationRules,
    DegradeAction,
    DegradeKind,
    DegradingQueryRunner,
    QueryDescriptor,
    classify_degradation,
    parse_change_records,
    parse_page,
)
from gerritlink.gerrit.errors import (
    GerritParseError,
    GerritStatusError,
    GerritTransportError,
    status_error_for,
)

UNSUPPORTED_ACTIONS = '"CURRENT_ACTIONS" is not a valid value for "-o"'


def _bad_request(body):
    return status_error_for(400, "Bad Request", body, "GET", "/changes/")


class TestQueryDescriptor:
    """Tests for QueryDescriptor."""

    def test_options_normalized_to_frozenset(self):
        descriptor = QueryDescriptor("is:open", options={"LABELS"})
        assert descriptor.options == frozenset({"LABELS"})

    def test_continuation_prefers_sortkey(self):
        assert QueryDescriptor(start=25, sortkey="abc").continuation == "abc"
        assert QueryDescriptor(start=25).continuation == 25
        assert QueryDescriptor().continuation is None

    def test_to_path(self):
        descriptor = QueryDescriptor("is:open", frozenset({"LABELS"}), limit=2, start=2)
        assert descriptor.to_path() == "/changes/?q=is:open&n=2&S=2&o=LABELS"

    def test_narrowing_returns_copies(self):
        descriptor = QueryDescriptor(
            "is:open", frozenset({"LABELS", "CURRENT_ACTIONS"}), start=5, sortkey="k"
        )

        assert descriptor.without_options(frozenset({"CURRENT_ACTIONS"})).options == {"LABELS"}
        assert descriptor.without_start().start is None
        assert descriptor.without_sortkey().sortkey is None
        assert descriptor.start == 5
        assert descriptor.sortkey == "k"


class TestClassifyDegradation:
    """Tests for classify_degradation."""

    def test_unsupported_option(self):
        descriptor = QueryDescriptor(options=frozenset({"CURRENT_ACTIONS", "LABELS"}))

        action = classify_degradation(_bad_request(UNSUPPORTED_ACTIONS), descriptor)

        assert action == DegradeAction(
            DegradeKind.DROP_OPTIONS, frozenset({"CURRENT_ACTIONS"})
        )
        assert action.apply(descriptor).options == {"LABELS"}

    def test_multiple_unsupported_options(self):
        descriptor = QueryDescriptor(
            options=frozenset({"MESSAGES", "DETAILED_LABELS", "LABELS"})
        )
        body = '"MESSAGES" is not a valid value for "-o"\n"DETAILED_LABELS" is not a valid value for "--o"'

        action = classify_degradation(_bad_request(body), descriptor)

        assert action.options == {"MESSAGES", "DETAILED_LABELS"}

    def test_option_prefix_not_confused(self):
        """Test that LABELS is not dropped when only DETAILED_LABELS is rejected."""
        descriptor = QueryDescriptor(options=frozenset({"DETAILED_LABELS", "LABELS"}))
        body = '"DETAILED_LABELS" is not a valid value for "-o"'

        action = classify_degradation(_bad_request(body), descriptor)

        assert action.options == {"DETAILED_LABELS"}

    def test_start_unsupported(self):
        descriptor = QueryDescriptor("is:open", start=25, sortkey="00215a5c")
        action = classify_degradation(
            _bad_request('"-S" is not a valid option'), descriptor
        )
        assert action.kind is DegradeKind.DROP_START
        assert action.apply(descriptor).start is None

    def test_start_unsupported_without_sortkey(self):
        """Test that an unanchored offset is never dropped."""
        descriptor = QueryDescriptor("is:open", limit=2, start=2)
        assert (
            classify_degradation(_bad_request('"-S" is not a valid option'), descriptor)
            is None
        )

    def test_sortkey_unsupported(self):
        descriptor = QueryDescriptor("is:open", sortkey="00215a5c")
        action = classify_degradation(
            _bad_request('"-N" is not a valid option'), descriptor
        )
        assert action.kind is DegradeKind.DROP_SORTKEY

    @pytest.mark.parametrize("status", [401, 403, 404, 409, 500])
    def test_non_400_never_degrades(self, status):
        error = status_error_for(status, "x", UNSUPPORTED_ACTIONS, "GET", "/changes/")
        descriptor = QueryDescriptor(options=frozenset({"CURRENT_ACTIONS"}))
        assert classify_degradation(error, descriptor) is None

    def test_other_errors_never_degrade(self):
        descriptor = QueryDescriptor(options=frozenset({"CURRENT_ACTIONS"}))
        assert classify_degradation(GerritTransportError("reset"), descriptor) is None
        assert classify_degradation(ValueError("x"), descriptor) is None

    def test_unrelated_body(self):
        descriptor = QueryDescriptor(options=frozenset({"CURRENT_ACTIONS"}), start=5)
        assert classify_degradation(_bad_request("query is too complex"), descriptor) is None

    def test_option_not_requested(self):
        """Test that nothing degrades when the rejected option was not requested."""
        descriptor = QueryDescriptor(options=frozenset({"LABELS"}))
        assert classify_degradation(_bad_request(UNSUPPORTED_ACTIONS), descriptor) is None

    def test_option_name_without_flag(self):
        descriptor = QueryDescriptor(options=frozenset({"CURRENT_ACTIONS"}))
        body = "CURRENT_ACTIONS is disabled on this server"
        assert classify_degradation(_bad_request(body), descriptor) is None

    def test_start_signature_without_start(self):
        assert (
            classify_degradation(_bad_request('"-S" is not a valid option'), QueryDescriptor())
            is None
        )

    def test_custom_rules(self):
        """Test that signatures are configuration."""
        rules = DegradationRules(
            start_unsupported=re.compile(r"unknown parameter S"),
        )
        descriptor = QueryDescriptor(start=10, sortkey="k")

        assert classify_degradation(
            _bad_request("unknown parameter S"), descriptor, rules
        ).kind is DegradeKind.DROP_START
        assert classify_degradation(
            _bad_request('"-S" is not a valid option'), descriptor, rules
        ) is None

    def test_describe(self):
        assert "CURRENT_ACTIONS" in DegradeAction(
            DegradeKind.DROP_OPTIONS, frozenset({"CURRENT_ACTIONS"})
        ).describe()
        assert DegradeAction(DegradeKind.DROP_START).describe() == "dropping start offset"


class TestDegradingQueryRunner:
    """Tests for DegradingQueryRunner."""

    def test_success_without_degradation(self):
        client = MagicMock()
        client.get.return_value = [{"id": "a"}]
        runner = DegradingQueryRunner(client)
        descriptor = QueryDescriptor("is:open", limit=25)

        page = runner.run(descriptor)

        assert page.changes == [{"id": "a"}]
        assert runner.last_descriptor == descriptor
        client.get.assert_called_once_with("/changes/?q=is:open&n=25")

    def test_retries_once_without_rejected_option(self):
        """Test one automatic retry with the rejected option removed."""
        client = MagicMock()
        client.get.side_effect = [_bad_request(UNSUPPORTED_ACTIONS), [{"id": "a"}]]
        runner = DegradingQueryRunner(client)
        descriptor = QueryDescriptor(
            "is:open", frozenset({"CURRENT_ACTIONS", "LABELS"}), limit=25
        )

        page = runner.run(descriptor)

        assert page.changes == [{"id": "a"}]
        assert client.get.call_count == 2
        first, second = (c.args[0] for c in client.get.call_args_list)
        assert "o=CURRENT_ACTIONS" in first
        assert "o=CURRENT_ACTIONS" not in second
        assert "o=LABELS" in second
        assert runner.last_descriptor.options == {"LABELS"}

    def test_second_failure_surfaced_unchanged(self):
        """Test that a failing resubmission is raised as-is, not retried."""
        client = MagicMock()
        second_error = _bad_request('"LABELS" is not a valid value for "-o"')
        client.get.side_effect = [_bad_request(UNSUPPORTED_ACTIONS), second_error]
        runner = DegradingQueryRunner(client)
        descriptor = QueryDescriptor(
            "is:open", frozenset({"CURRENT_ACTIONS", "LABELS"}), limit=25
        )

        with pytest.raises(GerritStatusError) as exc_info:
            runner.run(descriptor)

        assert exc_info.value is second_error
        assert client.get.call_count == 2
        assert runner.last_descriptor is None

    def test_non_matching_error_not_retried(self):
        client = MagicMock()
        error = status_error_for(500, "Internal Server Error", "", "GET", "/changes/")
        client.get.side_effect = error
        runner = DegradingQueryRunner(client)

        with pytest.raises(GerritStatusError) as exc_info:
            runner.run(QueryDescriptor("is:open", frozenset({"LABELS"})))

        assert exc_info.value is error
        client.get.assert_called_once()

    def test_transport_error_propagates(self):
        client = MagicMock()
        client.get.side_effect = GerritTransportError("timed out")

        with pytest.raises(GerritTransportError):
            DegradingQueryRunner(client).run(QueryDescriptor("is:open"))
        client.get.assert_called_once()

    def test_drop_start_retry(self):
        client = MagicMock()
        client.get.side_effect = [_bad_request('"-S" is not a valid option'), []]
        runner = DegradingQueryRunner(client)

        runner.fetch(
            QueryDescriptor("is:open", limit=25, start=25, sortkey="k"),
            lambda d: f"/changes/?q={d.query}&N={d.sortkey}&S={d.start}",
        )

        assert client.get.call_args_list[1].args[0] == "/changes/?q=is:open&N=k&S=None"
        assert runner.last_descriptor.sortkey == "k"

    def test_unanchored_start_rejection_raises(self):
        error = _bad_request('"-S" is not a valid option')
        client = MagicMock()
        client.get.side_effect = [error]

        with pytest.raises(GerritStatusError) as exc_info:
            DegradingQueryRunner(client).run(QueryDescriptor("is:open", limit=25, start=25))

        assert exc_info.value is error
        client.get.assert_called_once()

    def test_fetch_with_custom_path(self):
        client = MagicMock()
        client.get.side_effect = [
            _bad_request('"MESSAGES" is not a valid value for "-o"'),
            {"id": "x"},
        ]
        runner = DegradingQueryRunner(client, DEFAULT_RULES)
        descriptor = QueryDescriptor(options=frozenset({"MESSAGES", "LABELS"}))

        result = runner.fetch(
            descriptor, lambda d: "/changes/1?" + "&".join(sorted(d.options))
        )

        assert result == {"id": "x"}
        assert client.get.call_args_list[1].args[0] == "/changes/1?LABELS"


class TestParsePage:
    """Tests for page parsing."""

    def test_none_is_empty(self):
        assert parse_change_records(None) == []
        assert parse_page(None).changes == []
        assert parse_page(None).more is False

    def test_single_object_wrapped(self):
        assert parse_change_records({"id": "a"}) == [{"id": "a"}]

    def test_non_object_element_rejected(self):
        with pytest.raises(GerritParseError, match="should be a JSON object"):
            parse_change_records([{"id": "a"}, "b"])

    def test_scalar_rejected(self):
        with pytest.raises(GerritParseError):
            parse_change_records("changes")

    def test_more_and_sortkey_from_last_record(self):
        page = parse_page(
            [
                {"id": "a", "_sortkey": "k1"},
                {"id": "b", "_sortkey": "k2", "_more_changes": True},
            ]
        )
        assert page.more is True
        assert page.sortkey == "k2"

    def test_missing_more_flag_means_no_more(self):
        page = parse_page([{"id": "a"}])
        assert page.more is False
        assert page.sortkey is None
