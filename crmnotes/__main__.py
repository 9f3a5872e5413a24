"""CLI entry point.

Usage:
    python -m crmnotes serve                 # launch the JSON API
    python -m crmnotes init-db               # create the database schema
    python -m crmnotes contacts              # list contacts
    python -m crmnotes contacts --filter unlinked
    python -m crmnotes domain-groups [--all] # external contacts grouped by domain
    python -m crmnotes suggest-accounts      # re-run account suggestions
"""

from __future__ import annotations

import argparse
import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import config
from .database import init_db

console = Console()


# ---------------------------------------------------------------------------
# Subcommand: serve
# ---------------------------------------------------------------------------

def cmd_serve(args: argparse.Namespace) -> None:
    """Launch the API server."""
    import uvicorn

    from .web.app import create_app

    app = create_app()
    console.print(f"\n[bold]Starting API at http://{args.host}:{args.port}/api[/bold]")
    uvicorn.run(app, host=args.host, port=args.port)


# ---------------------------------------------------------------------------
# Subcommand: init-db
# ---------------------------------------------------------------------------

def cmd_init_db(args: argparse.Namespace) -> None:
    init_db()
    console.print(f"[green]Database ready at {config.DB_PATH}[/green]")
    if not config.INTERNAL_DOMAIN:
        console.print(
            "[yellow]INTERNAL_DOMAIN is not set; every contact will be external.[/yellow]"
        )


# ---------------------------------------------------------------------------
# Subcommand: contacts
# ---------------------------------------------------------------------------

def cmd_contacts(args: argparse.Namespace) -> None:
    """List contacts with their account or pending suggestion."""
    from .contacts import list_contacts

    init_db()
    contacts = list_contacts(args.filter)

    if not contacts:
        console.print("\n[yellow]No contacts found.[/yellow]")
        return

    table = Table(title="Contacts")
    table.add_column("Email", style="bold")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Account")
    table.add_column("Suggested")
    table.add_column("Meetings", justify="right")

    for c in contacts:
        suggested = ""
        if c.suggested_account_name and not c.suggestion_confirmed:
            suggested = c.suggested_account_name
        table.add_row(
            c.email,
            c.name,
            "internal" if c.is_internal else "external",
            c.account_name or "",
            suggested,
            str(c.meeting_count),
        )

    console.print()
    console.print(table)
    console.print()


# ---------------------------------------------------------------------------
# Subcommand: domain-groups
# ---------------------------------------------------------------------------

def cmd_domain_groups(args: argparse.Namespace) -> None:
    from .domain_resolver import get_domain_groups

    init_db()
    groups = get_domain_groups("all" if args.all else "unlinked")

    if not groups:
        console.print("\n[yellow]No external contacts to group.[/yellow]")
        return

    table = Table(title="Domain groups")
    table.add_column("Domain", style="bold")
    table.add_column("Contacts", justify="right")
    table.add_column("Linked account")
    table.add_column("Suggested account", style="cyan")

    for g in groups:
        table.add_row(
            g.domain or "(none)",
            str(g.contact_count),
            g.linked_account_name or "",
            g.suggested_account.name if g.suggested_account else "",
        )

    console.print()
    console.print(table)
    console.print()


# ---------------------------------------------------------------------------
# Subcommand: suggest-accounts
# ---------------------------------------------------------------------------

def cmd_suggest_accounts(args: argparse.Namespace) -> None:
    """Suggest accounts for unlinked external contacts that have none yet."""
    from .contacts import suggest_unlinked

    init_db()
    count = suggest_unlinked()
    console.print(f"[green]Suggested an account for {count} contact(s).[/green]")


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m crmnotes",
        description="Meeting notes and contact CRM",
    )
    sub = parser.add_subparsers(dest="command")

    sv = sub.add_parser("serve", help="Launch the JSON API")
    sv.add_argument("--host", default=config.HOST, help=f"Bind address (default: {config.HOST})")
    sv.add_argument("--port", type=int, default=config.PORT, help=f"Port (default: {config.PORT})")

    sub.add_parser("init-db", help="Create the database schema")

    ct = sub.add_parser("contacts", help="List contacts")
    ct.add_argument(
        "--filter", choices=("internal", "external", "unlinked", "suggestions"),
        help="Only show contacts of this kind",
    )

    dg = sub.add_parser("domain-groups", help="Group external contacts by domain")
    dg.add_argument("--all", action="store_true", help="Include contacts already linked")

    sub.add_parser("suggest-accounts", help="Suggest accounts for unlinked contacts")

    return parser


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )

    parser = build_parser()
    args = parser.parse_args()

    commands = {
        "serve": cmd_serve,
        "init-db": cmd_init_db,
        "contacts": cmd_contacts,
        "domain-groups": cmd_domain_groups,
        "suggest-accounts": cmd_suggest_accounts,
    }

    if not args.command:
        parser.print_help()
        return
    commands[args.command](args)


if __name__ == "__main__":
    main()
