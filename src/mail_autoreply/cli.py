"""CLI entry point for Mail Auto-Reply."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape

from .classifier import classify_message
from .display import ActivityLog, console, display_cycle_report, log_startup_banner
from .extractor import extract_reply_target
from .mailbox import ImapMailbox, MailboxError, MessageParseError, parse_message
from .models import Ignore, ReplyDirect
from .processor import CycleProcessor
from .scheduler import Scheduler
from .sender import render_reply_body
from .settings import ConfigError, Settings, load_settings


def _load(ctx: click.Context, require_transport: bool = True) -> Settings:
    try:
        settings = load_settings(env_file=ctx.obj.get("env_file"))
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if require_transport:
        missing = settings.missing_required()
        if missing:
            raise click.ClickException(f"Missing required settings: {', '.join(missing)}")
    return settings


@click.group()
@click.version_option(version="0.1.0", prog_name="mail-autoreply")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to a .env file (default: search from the current directory).",
)
@click.pass_context
def cli(ctx: click.Context, env_file: Path | None) -> None:
    """Mail Auto-Reply - acknowledge new messages in a mailbox."""
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Poll the mailbox at a fixed interval until interrupted."""
    settings = _load(ctx)
    log = ActivityLog(settings.log_file, settings.tz)
    log_startup_banner(settings, log)

    processor = CycleProcessor.from_settings(settings, log)
    scheduler = Scheduler(
        processor.run,
        log,
        interval=settings.check_interval,
        hour_start=settings.hour_start,
        hour_end=settings.hour_end,
        tz=settings.tz,
    )
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        log.write("Auto-reply service stopped")


@cli.command()
@click.pass_context
def once(ctx: click.Context) -> None:
    """Run a single cycle now, ignoring the active-hours window."""
    settings = _load(ctx)
    log = ActivityLog(settings.log_file, settings.tz)
    report = CycleProcessor.from_settings(settings, log).run()
    display_cycle_report(report)
    if report.aborted:
        raise click.ClickException(report.aborted)


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Test the IMAP login and count messages waiting for a reply."""
    settings = _load(ctx)
    mailbox = ImapMailbox(
        host=settings.imap_host,
        port=settings.imap_port,
        user=settings.email_user,
        password=settings.email_pass,
        folder=settings.mailbox_folder,
    )
    try:
        with mailbox:
            uids = mailbox.search_candidates()
    except MailboxError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[green]Logged in as {settings.email_user}[/green]")
    console.print(f"[bold]Unseen and unanswered in {settings.mailbox_folder}:[/bold] {len(uids)}")


@cli.command()
@click.argument("eml_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--operator", default=None, help="Operator address (default: EMAIL_USER).")
@click.pass_context
def classify(ctx: click.Context, eml_file: Path, operator: str | None) -> None:
    """Show how a stored .eml message would be handled, without sending anything."""
    settings = _load(ctx, require_transport=False)
    operator_email = operator or settings.email_user
    if not operator_email:
        raise click.ClickException("No operator address: pass --operator or set EMAIL_USER.")

    try:
        message = parse_message(eml_file.name, eml_file.read_bytes())
    except MessageParseError as e:
        raise click.ClickException(str(e)) from e

    console.print(f"[bold]From:[/bold] {escape(message.sender_name)} <{message.sender_email}>")
    console.print(f"[bold]Subject:[/bold] {escape(message.subject)}")

    decision = classify_message(
        message,
        operator_email,
        markers=settings.auto_mailer_markers,
        ignore_domains=settings.ignore_domains,
        greeting_name=settings.greeting_name,
    )
    if isinstance(decision, Ignore):
        console.print(f"[yellow]Ignore:[/yellow] {decision.reason}")
        return

    if isinstance(decision, ReplyDirect):
        target = decision.target
        console.print("[green]Reply directly to the sender[/green]")
    else:
        target = extract_reply_target(message, operator_email, settings.greeting_name)
        if target is None:
            console.print("[yellow]Form notification, but no customer address could be extracted[/yellow]")
            return
        console.print(f"[green]Form notification, target taken from {target.source}[/green]")

    console.print(f"[bold]Reply to:[/bold] {escape(target.display_name)} <{target.email}>")
    console.print()
    console.print(render_reply_body(target.display_name, settings.company_name), markup=False)
