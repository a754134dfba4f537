# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Typed views over Gerrit change records.

The REST layer hands out change records as plain JSON objects. These
Pydantic models are conveniences for callers (the CLI, tests) that want
typed access; nothing in the REST layer depends on them.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pygerrit2 import GerritReview


class GerritChangeStatus(str, Enum):
    """Gerrit change status values."""

    NEW = "NEW"
    MERGED = "MERGED"
    ABANDONED = "ABANDONED"
    DRAFT = "DRAFT"


class GerritAccountInfo(BaseModel):
    """An account as returned with DETAILED_ACCOUNTS or /accounts/self."""

    account_id: int | None = None
    name: str | None = None
    email: str | None = None
    username: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any] | None) -> GerritAccountInfo:
        data = data or {}
        return cls(
            account_id=data.get("_account_id"),
            name=data.get("name"),
            email=data.get("email"),
            username=data.get("username"),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email or "unknown"


class GerritLabelInfo(BaseModel):
    """
    Represents label (vote) information for a Gerrit change.

    Labels like Code-Review, Verified, etc.
    """

    name: str
    approved: bool = False
    rejected: bool = False
    recommended: bool = False
    disliked: bool = False
    value: int | None = None

    @classmethod
    def from_api_response(
        cls, name: str, label_data: dict[str, Any]
    ) -> GerritLabelInfo:
        """
        Create a GerritLabelInfo from Gerrit API label info.

        Gerrit reports votes as "approved"/"rejected"/"recommended"/
        "disliked" account sub-objects and, with DETAILED_LABELS, as
        per-account values in "all".
        """
        approved = "approved" in label_data
        rejected = "rejected" in label_data

        value = label_data.get("value")
        if value is None:
            votes = [
                vote.get("value", 0)
                for vote in label_data.get("all", [])
                if isinstance(vote, dict)
            ]
            if votes:
                # Most significant vote wins: rejections dominate approvals
                value = min(votes) if min(votes) < 0 else max(votes)
            elif approved:
                value = 2
            elif rejected:
                value = -2

        return cls(
            name=name,
            approved=approved,
            rejected=rejected,
            recommended="recommended" in label_data,
            disliked="disliked" in label_data,
            value=value,
        )

    @property
    def short(self) -> str:
        """Compact vote string such as "+2" or "-1"; empty without a vote."""
        if not self.value:
            return ""
        return f"+{self.value}" if self.value > 0 else str(self.value)


class GerritChangeInfo(BaseModel):
    """Typed view of one change record."""

    id: str = Field("", description="Triplet id project~branch~Change-Id")
    number: int = Field(0, description="Gerrit change number")
    change_id: str = Field("", description="Gerrit Change-Id (I-prefixed)")
    project: str = Field("", description="Gerrit project name")
    branch: str = Field("", description="Target branch")
    topic: str | None = Field(None, description="Change topic (if set)")
    subject: str = Field("", description="First line of commit message")
    status: str = Field(GerritChangeStatus.NEW.value, description="Change status")
    owner: GerritAccountInfo = Field(default_factory=GerritAccountInfo)
    current_revision: str | None = Field(None, description="Current revision SHA")
    revisions: list[str] = Field(
        default_factory=list, description="Revision SHAs known for the change"
    )
    labels: list[GerritLabelInfo] = Field(default_factory=list)
    starred: bool = False
    reviewed: bool = False
    mergeable: bool | None = None
    created: str = Field("", description="Creation timestamp")
    updated: str = Field("", description="Last update timestamp")
    sortkey: str | None = Field(None, description="Legacy pagination sort key")
    more_changes: bool = Field(False, description="Set on the last record of a page")

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> GerritChangeInfo:
        """
        Create a GerritChangeInfo from a Gerrit change record.

        Args:
            data: The change info dict from Gerrit API.

        Returns:
            A GerritChangeInfo instance.
        """
        labels = [
            GerritLabelInfo.from_api_response(name, info or {})
            for name, info in (data.get("labels") or {}).items()
        ]
        return cls(
            id=data.get("id", ""),
            number=data.get("_number", 0),
            change_id=data.get("change_id", ""),
            project=data.get("project", ""),
            branch=data.get("branch", ""),
            topic=data.get("topic"),
            subject=data.get("subject", ""),
            status=data.get("status", GerritChangeStatus.NEW.value),
            owner=GerritAccountInfo.from_api_response(data.get("owner")),
            current_revision=data.get("current_revision"),
            revisions=list((data.get("revisions") or {}).keys()),
            labels=labels,
            starred=bool(data.get("starred", False)),
            reviewed=bool(data.get("reviewed", False)),
            mergeable=data.get("mergeable"),
            created=data.get("created", ""),
            updated=data.get("updated", ""),
            sortkey=data.get("_sortkey"),
            more_changes=bool(data.get("_more_changes", False)),
        )

    @property
    def is_open(self) -> bool:
        return self.status == GerritChangeStatus.NEW.value

    def get_label(self, label_name: str) -> GerritLabelInfo | None:
        for label in self.labels:
            if label.name == label_name:
                return label
        return None


class GerritCommentInfo(BaseModel):
    """A published or draft inline comment."""

    id: str | None = None
    path: str | None = None
    side: str | None = None
    line: int | None = None
    in_reply_to: str | None = None
    message: str = ""
    updated: str | None = None
    author: GerritAccountInfo | None = None

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], path: str | None = None
    ) -> GerritCommentInfo:
        author = data.get("author")
        return cls(
            id=data.get("id"),
            path=data.get("path", path),
            side=data.get("side"),
            line=data.get("line"),
            in_reply_to=data.get("in_reply_to"),
            message=data.get("message", ""),
            updated=data.get("updated"),
            author=GerritAccountInfo.from_api_response(author) if author else None,
        )

    def to_draft_input(self) -> dict[str, Any]:
        """Render as a DraftInput body (unset fields omitted)."""
        return self.model_dump(
            include={"id", "path", "side", "line", "in_reply_to", "message"},
            exclude_none=True,
        )


class ReviewRequest(BaseModel):
    """
    A review to post on a revision.

    comments maps file paths to lists of {"line": int, "message": str}.
    """

    message: str = ""
    labels: dict[str, int] = Field(default_factory=dict)
    comments: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    def to_review_input(self) -> dict[str, Any]:
        """Render as a ReviewInput JSON object."""
        review = GerritReview(message=self.message or None)
        if self.labels:
            review.add_labels(dict(self.labels))
        if self.comments:
            review.add_comments(
                [
                    {"filename": path, **comment}
                    for path, entries in self.comments.items()
                    for comment in entries
                ]
            )
        return json.loads(str(review))


def parse_label_argument(text: str) -> tuple[str, int]:
    """
    Parse a "Label=+1" style argument.

    Raises:
        ValueError: If the text is not NAME=INT.
    """
    name, sep, value = text.partition("=")
    if not sep or not name.strip():
        raise ValueError(f"Invalid label vote {text!r}, expected NAME=VALUE")
    try:
        return name.strip(), int(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid label vote value in {text!r}") from exc


__all__ = [
    "GerritAccountInfo",
    "GerritChangeInfo",
    "GerritChangeStatus",
    "GerritCommentInfo",
    "GerritLabelInfo",
    "ReviewRequest",
    "parse_label_argument",
]
