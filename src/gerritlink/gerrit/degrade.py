# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Capability-degrading query runner.

Gerrit's REST surface differs across server versions: older servers reject
some list options (e.g. CURRENT_ACTIONS, MESSAGES) or pagination parameters
with an HTTP 400 and an args4j style message such as

    "CURRENT_ACTIONS" is not a valid value for "-o"

Instead of checking the server version, the runner treats such a rejection
as the signal to narrow the request: classify_degradation() maps a status
error to an optional DegradeAction, the action is applied to the
QueryDescriptor, and the request is resubmitted exactly once. A failure of
the degraded request is surfaced unchanged.

The signatures are configuration (DegradationRules), not fixed protocol: a
server with different wording simply does not degrade.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Final

from gerritlink.gerrit.errors import GerritParseError, GerritStatusError
from gerritlink.gerrit.urls import changes_query_path

if TYPE_CHECKING:
    from gerritlink.gerrit.client import GerritRestClient


log = logging.getLogger("gerritlink.gerrit.degrade")


ChangeRecord = dict[str, Any]

MORE_CHANGES_KEY: Final[str] = "_more_changes"
SORTKEY_KEY: Final[str] = "_sortkey"


@dataclass(frozen=True)
class QueryDescriptor:
    """
    One logical changes query.

    Instances are immutable; the runner derives narrowed copies when a
    degradation rule fires. start and sortkey may both be tracked, but only
    one is active on the wire: the sort key when present, else the offset.
    """

    query: str = ""
    options: frozenset[str] = field(default_factory=frozenset)
    limit: int | None = None
    start: int | None = None
    sortkey: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", frozenset(self.options))

    @property
    def continuation(self) -> int | str | None:
        """The continuation token that is sent to the server."""
        if self.sortkey:
            return self.sortkey
        if self.start:
            return self.start
        return None

    def to_path(self) -> str:
        """Render the descriptor as a /changes/ query path."""
        return changes_query_path(
            self.query,
            options=self.options,
            limit=self.limit,
            start=self.start,
            sortkey=self.sortkey,
        )

    def without_options(self, options: frozenset[str]) -> QueryDescriptor:
        return replace(self, options=self.options - options)

    def without_start(self) -> QueryDescriptor:
        return replace(self, start=None)

    def without_sortkey(self) -> QueryDescriptor:
        return replace(self, sortkey=None)

    def with_continuation(
        self, start: int | None, sortkey: str | None
    ) -> QueryDescriptor:
        return replace(self, start=start, sortkey=sortkey)


class DegradeKind(str, Enum):
    """What a degradation narrows."""

    DROP_START = "drop_start"
    DROP_SORTKEY = "drop_sortkey"
    DROP_OPTIONS = "drop_options"


@dataclass(frozen=True)
class DegradeAction:
    """A narrowing step derived from a server rejection."""

    kind: DegradeKind
    options: frozenset[str] = field(default_factory=frozenset)

    def apply(self, descriptor: QueryDescriptor) -> QueryDescriptor:
        if self.kind is DegradeKind.DROP_START:
            return descriptor.without_start()
        if self.kind is DegradeKind.DROP_SORTKEY:
            return descriptor.without_sortkey()
        return descriptor.without_options(self.options)

    def describe(self) -> str:
        if self.kind is DegradeKind.DROP_OPTIONS:
            return "dropping option(s) " + ", ".join(sorted(self.options))
        if self.kind is DegradeKind.DROP_START:
            return "dropping start offset"
        return "dropping sort key"


@dataclass(frozen=True)
class DegradationRules:
    """Error body signatures that identify unsupported request features."""

    start_unsupported: re.Pattern[str] = re.compile(
        r'"?(?:-S|--start)"?\s+is not a valid option', re.IGNORECASE
    )
    sortkey_unsupported: re.Pattern[str] = re.compile(
        r'"?(?:-N|-P|--(?:resume[_-])?sort[_-]?key)"?\s+is not a valid option',
        re.IGNORECASE,
    )
    option_flag: re.Pattern[str] = re.compile(r"(?<![\w-])-{1,2}o(?![\w-])")


DEFAULT_RULES: Final[DegradationRules] = DegradationRules()


def _mentioned_options(body: str, options: frozenset[str]) -> frozenset[str]:
    return frozenset(
        opt
        for opt in options
        if re.search(rf"(?<![A-Za-z0-9_]){re.escape(opt)}(?![A-Za-z0-9_])", body)
    )


def classify_degradation(
    error: Exception,
    descriptor: QueryDescriptor,
    rules: DegradationRules = DEFAULT_RULES,
) -> DegradeAction | None:
    """
    Map a failed request to the narrowing that may make it succeed.

    Only HTTP 400 responses whose body matches a signature, and whose
    narrowing would actually change the descriptor, yield an action. The
    offset is only dropped while a sort key still anchors the query;
    without one the retry would restart at the first page.
    """
    if not isinstance(error, GerritStatusError) or error.status_code != 400:
        return None
    body = error.response_body or ""

    if descriptor.start and descriptor.sortkey and rules.start_unsupported.search(body):
        return DegradeAction(DegradeKind.DROP_START)
    if descriptor.sortkey and rules.sortkey_unsupported.search(body):
        return DegradeAction(DegradeKind.DROP_SORTKEY)
    if descriptor.options and rules.option_flag.search(body):
        mentioned = _mentioned_options(body, descriptor.options)
        if mentioned:
            return DegradeAction(DegradeKind.DROP_OPTIONS, mentioned)
    return None


@dataclass
class PageResult:
    """One page of a changes query."""

    changes: list[ChangeRecord] = field(default_factory=list)
    more: bool = False
    sortkey: str | None = None


def parse_change_records(result: Any) -> list[ChangeRecord]:
    """
    Validate a changes response structurally.

    A list must contain only JSON objects; a single object is wrapped into
    a one-element list; None (no body) is an empty list.
    """
    if result is None:
        return []
    if isinstance(result, dict):
        return [result]
    if not isinstance(result, list):
        raise GerritParseError(
            f"Unexpected JSON result format: {result!r}", response_body=repr(result)
        )
    for element in result:
        if not isinstance(element, dict):
            raise GerritParseError(
                f"This element should be a JSON object: {element!r}\n"
                f"Total JSON response:\n{result!r}",
                response_body=repr(result),
            )
    return list(result)


def parse_page(result: Any) -> PageResult:
    """Build a PageResult from a decoded /changes/ response."""
    changes = parse_change_records(result)
    if not changes:
        return PageResult()
    last = changes[-1]
    sortkey = last.get(SORTKEY_KEY)
    return PageResult(
        changes=changes,
        more=bool(last.get(MORE_CHANGES_KEY, False)),
        sortkey=str(sortkey) if sortkey else None,
    )


class DegradingQueryRunner:
    """
    Runs one logical request, narrowing it at most once on known errors.

    States: Attempting (the descriptor as given) and Degraded (one
    resubmission with the narrowed descriptor). The descriptor that
    finally succeeded is kept in last_descriptor so callers can reuse the
    narrowed shape.
    """

    def __init__(
        self,
        client: GerritRestClient,
        rules: DegradationRules = DEFAULT_RULES,
    ) -> None:
        self._client = client
        self._rules = rules
        self._last_descriptor: QueryDescriptor | None = None

    @property
    def last_descriptor(self) -> QueryDescriptor | None:
        """Descriptor of the last successful request."""
        return self._last_descriptor

    def run(self, descriptor: QueryDescriptor) -> PageResult:
        """Fetch one page of changes for descriptor."""
        result = self.fetch(descriptor, QueryDescriptor.to_path)
        return parse_page(result)

    def fetch(
        self,
        descriptor: QueryDescriptor,
        path_for: Callable[[QueryDescriptor], str],
    ) -> Any:
        """
        GET path_for(descriptor), degrading once on a known rejection.

        Raises:
            GerritRestError: The first error when no rule applies, or the
                error of the degraded resubmission.
        """
        try:
            result = self._client.get(path_for(descriptor))
        except GerritStatusError as exc:
            action = classify_degradation(exc, descriptor, self._rules)
            if action is None:
                raise
            degraded = action.apply(descriptor)
            log.info(
                "Gerrit rejected request (HTTP %d), retrying once %s",
                exc.status_code,
                action.describe(),
            )
            result = self._client.get(path_for(degraded))
            self._last_descriptor = degraded
            return result

        self._last_descriptor = descriptor
        return result


__all__ = [
    "ChangeRecord",
    "DEFAULT_RULES",
    "DegradationRules",
    "DegradeAction",
    "DegradeKind",
    "DegradingQueryRunner",
    "PageResult",
    "QueryDescriptor",
    "classify_degradation",
    "parse_change_records",
    "parse_page",
]
