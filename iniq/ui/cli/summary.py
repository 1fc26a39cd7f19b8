"""
End-of-run rendering: operation summary, status overview, system info.
"""

from __future__ import annotations

import click

from iniq.adapters.osdetect import OsInfo
from iniq.core.models.outcome import RunReport
from iniq.core.use_cases.status import StatusReport


def print_system_info(os_info: OsInfo, *, is_root: bool, has_privileges: bool) -> None:
    click.secho(f"\n🖥  {os_info.label or os_info.type}", fg="cyan", bold=True)
    if is_root:
        click.secho("   Running as root", fg="green")
    elif has_privileges:
        click.secho("   Running with sudo privileges", fg="green")
    else:
        click.secho("   No root or sudo privileges", fg="yellow")


def print_summary(report: RunReport, *, dry_run: bool = False) -> None:
    """Succeeded / failed operations after a run."""
    click.echo()
    if not report.outcomes and not report.skipped:
        click.secho("Nothing to do.", fg="green")
        return

    heading = "Summary (dry run)" if dry_run else "Summary"
    click.secho(heading, fg="cyan", bold=True)
    for title, ok in report.outcomes.items():
        if ok:
            click.secho(f"  ✓ {title}", fg="green")
        else:
            click.secho(f"  ✗ {title}", fg="red")
    for name in report.skipped:
        click.secho(f"  ⊘ {name} (skipped)", fg="bright_black")

    total = len(report.outcomes)
    failed = len(report.failed)
    click.echo()
    if report.relogin_required:
        click.secho("⚠ Log out and back in, then run iniq again to finish.", fg="yellow")
    elif failed:
        click.secho(f"❌ {failed} of {total} operation(s) failed", fg="red", bold=True)
    else:
        click.secho(f"✅ {total} operation(s) completed", fg="green", bold=True)


def print_status(status: StatusReport) -> None:
    """The ``--status`` overview."""
    print_system_info(status.os_info, is_root=status.is_root, has_privileges=status.has_privileges)
    for section in status.sections:
        click.echo()
        click.secho(section.description, fg="white", bold=True)
        if section.error:
            click.secho(f"  ✗ {section.error}", fg="red")
            continue
        for label, value, ok in section.lines:
            marker = "✓" if ok else "✗" if ok is False else "•"
            color = "green" if ok else "yellow" if ok is False else None
            click.secho(f"  {marker} {label}: {value}", fg=color)
