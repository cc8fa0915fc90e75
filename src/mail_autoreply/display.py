"""Rich console output and the timestamped activity log."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import CycleReport
from .settings import Settings

console = Console()

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
BANNER_RULE = "==========================================="


class ActivityLog:
    """Writes `[timestamp] message` lines to the console and an append-only file."""

    def __init__(
        self,
        path: Path | str,
        tz,
        clock: Callable[[], datetime] | None = None,
        out: Console | None = None,
    ) -> None:
        self.path = Path(path)
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._console = out or console

    def format_line(self, message: str) -> str:
        return f"[{self._clock().strftime(TIMESTAMP_FORMAT)}] {message}"

    def write(self, message: str) -> None:
        line = self.format_line(message)
        self._console.print(line, markup=False, highlight=False, soft_wrap=True)

        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as exc:
            self._console.print(
                f"[x] Error writing to log file {self.path}: {exc}", style="red", markup=False, highlight=False
            )


def log_startup_banner(settings: Settings, log: ActivityLog) -> None:
    """Write the service banner shown once at startup."""
    log.write(BANNER_RULE)
    log.write(f"{settings.company_name} Email Auto-Reply Service Started")
    log.write(BANNER_RULE)
    log.write("Mode: DEBUG" if settings.debug_mode else "Mode: PRODUCTION")
    log.write(f"Check interval: {settings.check_interval} seconds")
    log.write(f"Timezone: {settings.timezone_name}")
    log.write(f"Active hours: {settings.hour_start}:00 - {settings.hour_end}:00")
    log.write(BANNER_RULE)


def display_cycle_report(report: CycleReport) -> None:
    """Render the counters of a single cycle."""
    if report.aborted:
        console.print(Panel(f"[red]Cycle aborted: {report.aborted}[/red]", title="Cycle"))
        return

    table = Table(title="Cycle Results")
    table.add_column("Outcome")
    table.add_column("Messages", justify="right")
    rows = [
        ("Found", report.found, "white"),
        ("Replied", report.replied, "green"),
        ("Ignored", report.ignored, "dim"),
        ("Unresolved", report.unresolved, "yellow"),
        ("Unparsable", report.parse_failed, "yellow"),
        ("Send failed", report.send_failed, "red"),
        ("Skipped", report.skipped, "yellow"),
        ("Flag update failed", report.flag_failures, "red"),
    ]
    for label, count, color in rows:
        table.add_row(label, f"[{color}]{count}[/{color}]")

    console.print(table)
