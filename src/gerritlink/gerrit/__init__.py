# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit REST access layer for gerritlink.

Modules:
    transport: single-shot HTTP transport and connection settings
    auth: auth context and credential negotiation (login probe, Basic auth)
    client: REST verbs, status classification and JSON decoding
    degrade: capability-degrading query runner for older servers
    pagination: pagination cursor over change queries
    errors: exception hierarchy
    urls: endpoint paths and web URLs
    models: Pydantic views of change records
    service: high-level operations

Usage:
    from gerritlink.gerrit import create_gerrit_service

    service = create_gerrit_service("gerrit.example.org")
    cursor = service.query_changes("is:open")
    first_page = cursor.fetch_next_page()
"""

from gerritlink.gerrit.auth import AuthContext, CredentialNegotiator
from gerritlink.gerrit.client import GerritRestClient, HttpVerb, build_client
from gerritlink.gerrit.degrade import (
    DEFAULT_RULES,
    DegradationRules,
    DegradeAction,
    DegradingQueryRunner,
    PageResult,
    QueryDescriptor,
    classify_degradation,
)
from gerritlink.gerrit.errors import (
    GerritAuthError,
    GerritNotFoundError,
    GerritParseError,
    GerritRestError,
    GerritStatusError,
    GerritTransportError,
)
from gerritlink.gerrit.models import (
    GerritAccountInfo,
    GerritChangeInfo,
    GerritChangeStatus,
    GerritCommentInfo,
    GerritLabelInfo,
    ReviewRequest,
)
from gerritlink.gerrit.pagination import PaginationCursor
from gerritlink.gerrit.service import (
    DEFAULT_CHANGE_OPTIONS,
    DEFAULT_LIST_OPTIONS,
    GerritService,
    GerritServiceError,
    create_gerrit_service,
)
from gerritlink.gerrit.transport import EndpointRequest, HttpConfig, HttpTransport
from gerritlink.gerrit.urls import GerritUrlBuilder

__all__ = [
    # Transport and auth
    "AuthContext",
    "CredentialNegotiator",
    "EndpointRequest",
    "HttpConfig",
    "HttpTransport",
    # Client
    "GerritRestClient",
    "HttpVerb",
    "build_client",
    # Errors
    "GerritAuthError",
    "GerritNotFoundError",
    "GerritParseError",
    "GerritRestError",
    "GerritStatusError",
    "GerritTransportError",
    # Degradation and pagination
    "DEFAULT_RULES",
    "DegradationRules",
    "DegradeAction",
    "DegradingQueryRunner",
    "PageResult",
    "PaginationCursor",
    "QueryDescriptor",
    "classify_degradation",
    # Models
    "GerritAccountInfo",
    "GerritChangeInfo",
    "GerritChangeStatus",
    "GerritCommentInfo",
    "GerritLabelInfo",
    "ReviewRequest",
    # Service
    "DEFAULT_CHANGE_OPTIONS",
    "DEFAULT_LIST_OPTIONS",
    "GerritService",
    "GerritServiceError",
    "create_gerrit_service",
    # URLs
    "GerritUrlBuilder",
]
