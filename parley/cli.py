"""Parley CLI: inspect and exercise a messaging data directory."""

from __future__ import annotations

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from parley import __version__
from parley.config import Settings, configure_logging
from parley.errors import ContentRejected, MessagingError

console = Console()


def _service(ctx: click.Context):
    from parley.messaging.service import MessagingService

    if "service" not in ctx.obj:
        ctx.obj["service"] = MessagingService.from_settings(ctx.obj["settings"])
    return ctx.obj["service"]


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="YAML config file")
@click.pass_context
def main(ctx: click.Context, config_path: str | None):
    """Parley: direct messaging core.

    Operates directly on the data directory named in the configuration,
    acting as the user ids given on the command line.
    """
    settings = Settings.load(config_path)
    configure_logging(settings.log_level)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


# ── Conversations ────────────────────────────────────────────────────


@main.command()
@click.argument("user_id")
@click.pass_context
def conversations(ctx: click.Context, user_id: str):
    """List USER_ID's conversations, most recent first."""
    service = _service(ctx)
    items = service.list_conversations(user_id)

    if not items:
        console.print("[yellow]No conversations.[/]")
        return

    table = Table(title=f"Conversations for {user_id} ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Members", justify="right")
    table.add_column("Unread", justify="right", style="green")
    table.add_column("Last message")
    table.add_column("Updated", style="dim")

    for details in items:
        c = details.conversation
        others = [
            p.participant.user_id for p in details.participants
            if p.participant.user_id != user_id
        ]
        last = details.last_message.message.content[:40] if details.last_message else ""
        table.add_row(
            c.id,
            c.name or ", ".join(others),
            str(len(details.participants)),
            str(details.unread_count),
            last,
            c.updated_at,
        )

    console.print(table)


@main.command()
@click.argument("user_id")
@click.pass_context
def unread(ctx: click.Context, user_id: str):
    """Show USER_ID's total unread message count."""
    console.print(f"{user_id}: [bold]{_service(ctx).total_unread_count(user_id)}[/] unread")


# ── Messages ─────────────────────────────────────────────────────────


@main.command()
@click.argument("conversation_id")
@click.argument("user_id")
@click.option("--limit", "-n", default=50, help="Page size")
@click.option("--before", default=None, help="Message id or ISO timestamp cursor")
@click.pass_context
def messages(ctx: click.Context, conversation_id: str, user_id: str, limit: int, before: str | None):
    """Print a page of CONVERSATION_ID as seen by USER_ID (oldest at the top)."""
    service = _service(ctx)
    try:
        page = service.list_messages(conversation_id, user_id, limit=limit, before=before)
    except MessagingError as e:
        console.print(f"[red]{e.message}[/]")
        raise SystemExit(1)

    for details in reversed(page):
        m = details.message
        who = details.sender.display_name if details.sender and details.sender.display_name else m.sender_id
        if m.is_deleted:
            body = f"[dim italic]{m.content}[/]"
        elif m.is_edited:
            body = f"{m.content} [dim](edited)[/]"
        else:
            body = m.content
        console.print(f"[dim]{m.created_at}[/] [cyan]{who}[/]: {body}")

    if page:
        console.print(f"\n[dim]next cursor: {page[-1].message.id}[/]")


@main.command()
@click.argument("conversation_id")
@click.argument("user_id")
@click.argument("text")
@click.pass_context
def send(ctx: click.Context, conversation_id: str, user_id: str, text: str):
    """Send TEXT to CONVERSATION_ID as USER_ID."""
    service = _service(ctx)
    try:
        details = service.send_message(conversation_id, user_id, text)
    except ContentRejected as e:
        console.print(Panel(f"{e.reason}\n\ncategories: {', '.join(e.categories)}", title="Rejected"))
        raise SystemExit(1)
    except MessagingError as e:
        console.print(f"[red]{e.message}[/]")
        raise SystemExit(1)
    console.print(f"[green]Sent[/] {details.message.id}")


# ── Moderation ───────────────────────────────────────────────────────


@main.command()
@click.argument("text")
@click.option("--fail-closed", is_flag=True, help="Reject if the classifier is unavailable")
@click.pass_context
def moderate(ctx: click.Context, text: str, fail_closed: bool):
    """Run the configured moderation pipeline on TEXT."""
    result = _service(ctx).moderation.moderate(text, fail_open=not fail_closed)
    if result.approved:
        console.print("  [green]v[/] Approved")
    else:
        console.print(f"  [red]x[/] Rejected: {result.reason}")
    if result.categories:
        console.print(f"    categories: {', '.join(result.categories)}")


# ── Audit ────────────────────────────────────────────────────────────


@main.command()
@click.option("--actor", default=None, help="Filter by user id")
@click.option("--action", default=None, help="Filter by action, e.g. moderation.reject")
@click.option("--limit", "-n", default=50)
@click.pass_context
def audit(ctx: click.Context, actor: str | None, action: str | None, limit: int):
    """Show recent audit events."""
    from parley.audit import AuditLogger

    logger = AuditLogger(ctx.obj["settings"].audit_dir)
    events = logger.get_events(actor=actor, action=action, limit=limit)

    table = Table(title=f"Audit events ({len(events)})")
    table.add_column("Time", style="dim")
    table.add_column("Actor", style="cyan")
    table.add_column("Action")
    table.add_column("Resource")
    table.add_column("OK", justify="center")

    for e in events:
        table.add_row(
            e.timestamp,
            e.actor,
            e.action,
            f"{e.resource_type}:{e.resource_id}",
            "[green]v[/]" if e.success else "[red]x[/]",
        )

    console.print(table)


# ── Profiles ─────────────────────────────────────────────────────────


@main.group()
def profile():
    """Manage local profiles and blocks."""


@profile.command(name="add")
@click.argument("user_id")
@click.option("--name", "display_name", default="", help="Display name")
@click.option(
    "--visibility",
    default="public",
    type=click.Choice(["public", "friends", "private"]),
)
@click.option("--no-friend-requests", is_flag=True)
@click.option("--no-messages", is_flag=True)
@click.pass_context
def add_profile(
    ctx: click.Context,
    user_id: str,
    display_name: str,
    visibility: str,
    no_friend_requests: bool,
    no_messages: bool,
):
    """Create or replace the profile for USER_ID."""
    from parley.directory import Profile

    _service(ctx).directory.upsert_profile(Profile(
        id=user_id,
        display_name=display_name,
        profile_visibility=visibility,
        allow_friend_requests=not no_friend_requests,
        allow_messages=not no_messages,
    ))
    console.print(f"[green]Saved profile[/] {user_id}")


@profile.command(name="block")
@click.argument("blocker_id")
@click.argument("blocked_id")
@click.pass_context
def block(ctx: click.Context, blocker_id: str, blocked_id: str):
    """BLOCKER_ID blocks BLOCKED_ID."""
    _service(ctx).directory.block(blocker_id, blocked_id)
    console.print(f"[green]{blocker_id} blocked {blocked_id}[/]")


if __name__ == "__main__":
    main()
