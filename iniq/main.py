"""
INIQ — CLI entrypoint.

Usage:
    iniq --help
    iniq -u deploy -k github:alice --sudo-nopasswd --all
    iniq --status
    iniq config show
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click
from click.core import ParameterSource

from iniq import __version__
from iniq.core.observability.logging_config import resolve_level, setup_logging

# click parameter name → Options key
_OPTION_PARAMS = {
    "user": "user",
    "keys": "keys",
    "ssh_root_login": "ssh-root-login",
    "ssh_password_auth": "ssh-password-auth",
    "ssh_no_root": "ssh-no-root",
    "ssh_no_password": "ssh-no-password",
    "sudo_nopasswd": "sudo-nopasswd",
    "skip_sudo": "skip-sudo",
    "all_": "all",
    "password": "password",
    "no_password": "no-password",
    "backup": "backup",
    "yes": "yes",
    "dry_run": "dry-run",
}


def _host_and_os():
    """The real host and its OS (replaced in tests)."""
    from iniq.adapters.host import Host
    from iniq.adapters.osdetect import detect_os

    return Host(), detect_os()


def _explicit_values(ctx: click.Context) -> dict:
    """Flags actually given on the command line, keyed by option name."""
    values = {}
    for param, key in _OPTION_PARAMS.items():
        if ctx.get_parameter_source(param) is not ParameterSource.COMMANDLINE:
            continue
        value = ctx.params[param]
        values[key] = list(value) if isinstance(value, tuple) else value
    return values


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="iniq")
@click.option("--user", "-u", default="", help="Username to create or configure.")
@click.option(
    "--keys", "--key", "-k", multiple=True,
    help="SSH key source: github:USER, gitlab:USER, url:URL or file:PATH (repeatable, ';'-separated).",
)
@click.option("--ssh-root-login", default="", metavar="yes|no", help="Enable or disable SSH root login.")
@click.option(
    "--ssh-password-auth", default="", metavar="yes|no",
    help="Enable or disable SSH password authentication.",
)
@click.option("--ssh-no-root", is_flag=True, help="Disable SSH root login (deprecated, use --ssh-root-login=no).")
@click.option(
    "--ssh-no-password", is_flag=True,
    help="Disable SSH password authentication (deprecated, use --ssh-password-auth=no).",
)
@click.option(
    "--sudo-nopasswd/--sudo-password", default=None,
    help="Passwordless sudo (default) or sudo with password.",
)
@click.option("--skip-sudo", "-S", is_flag=True, help="Skip sudo configuration.")
@click.option("--all", "-a", "all_", is_flag=True, help="Apply all SSH hardening.")
@click.option("--password", "-p", is_flag=True, help="Set a password for the user.")
@click.option("--no-pass", "--no-password", "no_password", is_flag=True, help="Create the user without a password.")
@click.option("--backup", "-b", is_flag=True, help="Keep timestamped backups of modified files.")
@click.option("--yes", "-y", is_flag=True, help="Never prompt; assume defaults.")
@click.option("--dry-run", is_flag=True, help="Show what would change without changing anything.")
@click.option("--status", "-s", "show_status", is_flag=True, help="Show the current host state and exit.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only print errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to the config file (default: ~/.iniq.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    show_status: bool,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    **_flags,
) -> None:
    """INIQ — initialize a host: user, SSH keys, sudo and SSH hardening.

    Run without flags for the interactive wizard.
    """
    ctx.ensure_object(dict)

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(
            debug=debug,
            verbose=verbose,
            quiet=quiet,
            env_level=os.environ.get("INIQ_LOG_LEVEL"),
        ),
        log_file=os.environ.get("INIQ_LOG_FILE"),
        log_file_level=os.environ.get("INIQ_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )

    from iniq.core.config.loader import ConfigError, build_options, load_config_file, load_env

    try:
        options = build_options(
            load_config_file(Path(config_path) if config_path else None),
            load_env(),
            _explicit_values(ctx),
        )
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    ctx.obj["options"] = options

    if ctx.invoked_subcommand is not None:
        return

    if show_status:
        _status(options)
        return

    _run(options, quiet=quiet)


def _status(options) -> None:
    from iniq.core.use_cases.status import collect_status
    from iniq.ui.cli.summary import print_status

    host, os_info = _host_and_os()
    print_status(collect_status(options, host=host, os_info=os_info))


def _run(options, *, quiet: bool) -> None:
    from iniq.core.reliability.errors import IniqError
    from iniq.core.services.privileges import has_privileges
    from iniq.core.use_cases.run import run
    from iniq.ui.cli.prompts import ClickPrompter
    from iniq.ui.cli.summary import print_summary, print_system_info

    host, os_info = _host_and_os()

    if not quiet and not options.has_action_flags() and not options.yes:
        click.secho("INIQ interactive setup", fg="cyan", bold=True)
        print_system_info(os_info, is_root=host.is_root, has_privileges=has_privileges(host))

    def on_start(title: str) -> None:
        if not quiet:
            click.secho(f"\n==> {title}", fg="cyan", bold=True)

    try:
        result = run(
            options,
            host=host,
            os_info=os_info,
            prompter=ClickPrompter(),
            on_start=on_start,
        )
    except IniqError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not quiet or not result.report.ok:
        print_summary(result.report, dry_run=options.dry_run)
    sys.exit(result.exit_code)


# ── Subcommands ─────────────────────────────────────────────────


@cli.command()
def version() -> None:
    """Print the iniq version."""
    click.echo(f"iniq {__version__}")


@cli.group()
def config() -> None:
    """Inspect the effective configuration."""


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the merged options (file, env and flags) as YAML."""
    from iniq.core.config.loader import dump_options

    click.echo(dump_options(ctx.obj["options"]), nl=False)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
