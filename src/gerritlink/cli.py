# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Command line interface for gerritlink.

This module provides the gerritlink commands:

- changes: page through a change query and print a table per page
- review: post a message and label votes on a revision
- whoami: show the account behind the configured credentials
- version: show the Gerrit server version
"""

from typing import List, Optional

import typer
import urllib3.exceptions
from rich.console import Console
from rich.table import Table

from .config import GerritSettings, auth_provider
from .gerrit.client import GerritRestClient
from .gerrit.errors import GerritAuthError, GerritRestError, GerritTransportError
from .gerrit.models import GerritChangeInfo, ReviewRequest, parse_label_argument
from .gerrit.pagination import DEFAULT_PAGE_SIZE, PaginationCursor
from .gerrit.service import GerritService
from .logging_config import configure_logging

app = typer.Typer(help="Query and review Gerrit changes over the REST API")
console = Console(markup=False)

# Labels shown as table columns when present on a change
DISPLAY_LABELS = ("Code-Review", "Verified")


def _build_service(
    host: Optional[str],
    user: Optional[str],
    password: Optional[str],
    no_netrc: bool,
) -> GerritService:
    settings = GerritSettings.from_env(host=host, username=user, password=password)
    client = GerritRestClient(
        auth=auth_provider(settings, use_netrc=not no_netrc),
        http_config=settings.http_config(),
    )
    return GerritService(client)


def _is_name_resolution_error(error: BaseException) -> bool:
    """Walk the cause chain of a transport failure looking for a DNS error."""
    seen = set()
    pending: List[Optional[BaseException]] = [error]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, urllib3.exceptions.NameResolutionError):
            return True
        if isinstance(current, urllib3.exceptions.MaxRetryError):
            pending.append(current.reason)
        pending.append(current.__cause__)
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
    return False


def _fail(error: Exception) -> None:
    """Report a failed Gerrit call and exit non-zero."""
    if isinstance(error, GerritTransportError):
        if _is_name_resolution_error(error):
            console.print("Network Error: Could not resolve the Gerrit host name.")
        else:
            console.print(f"Network Error: Failed to connect to Gerrit. {error}")
    elif isinstance(error, GerritAuthError):
        console.print(
            f"Authentication Error: {error}\n"
            "Check --user/--password, GERRIT_USERNAME/GERRIT_PASSWORD or ~/.netrc."
        )
    else:
        console.print(f"Error: {error}")
    raise typer.Exit(1) from error


def _changes_table(title: str, records) -> Table:
    table = Table(title=title)
    table.add_column("Change", style="cyan")
    table.add_column("Project", style="white")
    table.add_column("Branch", style="white")
    table.add_column("Subject", style="white", max_width=50)
    table.add_column("Owner", style="yellow")
    table.add_column("Status", style="white")
    for label in DISPLAY_LABELS:
        table.add_column(label, style="green")

    for record in records:
        change = GerritChangeInfo.from_api_response(record)
        votes = []
        for label in DISPLAY_LABELS:
            info = change.get_label(label)
            votes.append(info.short if info else "")
        table.add_row(
            str(change.number),
            change.project,
            change.branch,
            change.subject,
            change.owner.display_name,
            change.status,
            *votes,
        )
    return table


@app.command()
def changes(
    query: str = typer.Argument("status:open", help="Gerrit search query"),
    host: Optional[str] = typer.Option(
        None, "--host", help="Gerrit host or URL (or set GERRIT_HOST env var)"
    ),
    user: Optional[str] = typer.Option(
        None, "--user", help="HTTP username (or set GERRIT_USERNAME env var)"
    ),
    password: Optional[str] = typer.Option(
        None, "--password", help="HTTP password (or set GERRIT_PASSWORD env var)"
    ),
    page_size: int = typer.Option(
        DEFAULT_PAGE_SIZE, "--page-size", min=1, help="Changes per request"
    ),
    pages: int = typer.Option(1, "--pages", min=1, help="Number of pages to fetch"),
    fetch_all: bool = typer.Option(
        False, "--all", help="Fetch pages until the server reports no more changes"
    ),
    no_netrc: bool = typer.Option(
        False, "--no-netrc", help="Do not look up credentials in ~/.netrc"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    List changes matching a query, page by page.

    Each page is one request; older servers that reject paging or query
    options are retried once with the rejected parameter removed.
    """
    configure_logging(verbose)
    try:
        service = _build_service(host, user, password, no_netrc)
        cursor: PaginationCursor = service.query_changes(query, page_size=page_size)

        page_number = 0
        while cursor.has_more() and (fetch_all or page_number < pages):
            page = cursor.fetch_next_page()
            if not page:
                break
            page_number += 1
            console.print(_changes_table(f"Changes (page {page_number})", page))
    except ValueError as e:
        console.print(f"Error: {e}")
        raise typer.Exit(1) from e
    except GerritRestError as e:
        _fail(e)

    if cursor.fetched_count == 0:
        console.print(f"No changes found for query: {query}")
        return

    console.print(f"{cursor.fetched_count} changes in {cursor.pages_fetched} page(s)")
    if cursor.has_more():
        console.print("More changes available; use --pages or --all to fetch them.")


@app.command()
def review(
    change: str = typer.Argument(..., help="Change number or id"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Review message"),
    label: Optional[List[str]] = typer.Option(
        None, "--label", "-l", help="Vote such as Code-Review=+1 (repeatable)"
    ),
    revision: str = typer.Option("current", "--revision", help="Revision to review"),
    host: Optional[str] = typer.Option(None, "--host", help="Gerrit host or URL"),
    user: Optional[str] = typer.Option(None, "--user", help="HTTP username"),
    password: Optional[str] = typer.Option(None, "--password", help="HTTP password"),
    no_netrc: bool = typer.Option(
        False, "--no-netrc", help="Do not look up credentials in ~/.netrc"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Post a review message and votes on a change revision."""
    configure_logging(verbose)
    labels = {}
    for vote in label or []:
        try:
            name, value = parse_label_argument(vote)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--label") from e
        labels[name] = value

    if not message and not labels:
        console.print("Error: Nothing to post; give --message and/or --label.")
        raise typer.Exit(1)

    try:
        service = _build_service(host, user, password, no_netrc)
        if not service.is_authenticated:
            console.print("Error: Posting a review requires credentials.")
            raise typer.Exit(1)
        service.post_review(
            change, ReviewRequest(message=message or "", labels=labels), revision
        )
    except ValueError as e:
        console.print(f"Error: {e}")
        raise typer.Exit(1) from e
    except GerritRestError as e:
        _fail(e)

    console.print(f"Review posted on change {change} ({revision})")


@app.command()
def whoami(
    host: Optional[str] = typer.Option(None, "--host", help="Gerrit host or URL"),
    user: Optional[str] = typer.Option(None, "--user", help="HTTP username"),
    password: Optional[str] = typer.Option(None, "--password", help="HTTP password"),
    no_netrc: bool = typer.Option(
        False, "--no-netrc", help="Do not look up credentials in ~/.netrc"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Check the configured credentials and show the account they map to."""
    configure_logging(verbose)
    try:
        service = _build_service(host, user, password, no_netrc)
        if not service.is_authenticated:
            console.print("No credentials configured; requests are anonymous.")
            raise typer.Exit(1)
        account = service.get_self_account()
    except ValueError as e:
        console.print(f"Error: {e}")
        raise typer.Exit(1) from e
    except GerritRestError as e:
        _fail(e)

    table = Table(title="Gerrit Account")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Account ID", str(account.get("_account_id", "")))
    table.add_row("Name", account.get("name", ""))
    table.add_row("Username", account.get("username", ""))
    table.add_row("Email", account.get("email", ""))
    console.print(table)


@app.command()
def version(
    host: Optional[str] = typer.Option(None, "--host", help="Gerrit host or URL"),
    no_netrc: bool = typer.Option(
        False, "--no-netrc", help="Do not look up credentials in ~/.netrc"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Show the Gerrit server version (major.minor)."""
    configure_logging(verbose)
    try:
        service = _build_service(host, None, None, no_netrc)
        server_version = service.get_server_version()
    except ValueError as e:
        console.print(f"Error: {e}")
        raise typer.Exit(1) from e
    except GerritRestError as e:
        _fail(e)

    if server_version == 0.0:
        console.print("Gerrit server version: unknown")
    else:
        console.print(f"Gerrit server version: {server_version}")


if __name__ == "__main__":
    app()
