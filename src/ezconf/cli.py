"""Typer-powered command line for inspecting ezconf configuration.

``ezconf config show`` runs one resolution cycle of the service schema and
prints the outcome with secrets redacted; ``ezconf tls verify`` builds a TLS
policy from a certificate/key pair and reports what was loaded.
"""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .app import APP_ENV_PREFIX, APP_SCHEMA, new_loader
from .credentials import CertFile, PrivateKeyFile
from .errors import EzconfError
from .exit_codes import ExitCode, exit_code_for
from .optional import Option
from .tls import TLSConfigLoader

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(help="Layered configuration and TLS credential tooling.")
config_app = typer.Typer(help="Resolve and inspect service configuration.")
tls_app = typer.Typer(help="Validate TLS certificate and key material.")
app.add_typer(config_app, name="config")
app.add_typer(tls_app, name="tls")

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="YAML file consulted below flags and environment variables.",
)
ENV_PREFIX_OPTION = typer.Option(
    APP_ENV_PREFIX,
    "--env-prefix",
    help="Prefix for derived environment variable names.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)
TLS_CERT_OPTION = typer.Option(
    ...,
    "--cert",
    help="Certificate bundle (PEM), leaf first.",
)
TLS_KEY_OPTION = typer.Option(
    ...,
    "--key",
    help="Private key (PEM); no group/other access (0600 or 0400).",
)
TLS_SERVER_NAME_OPTION = typer.Option(
    None,
    "--server-name",
    help="Server name peers are verified against.",
)
TLS_SKIP_VERIFY_OPTION = typer.Option(
    False,
    "--skip-verify",
    help="Allow a policy without a server name (peer identity is not checked).",
)
TLS_WARN_DAYS_OPTION = typer.Option(
    30,
    "--warn-days",
    min=0,
    help="Warn when the certificate expires within this many days.",
)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the ezconf version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log resolution details to stderr.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    _configure_logging(verbose)
    if version:
        console.print(f"ezconf {__version__}")
        raise typer.Exit(code=ExitCode.OK)
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _command_error(message: str, *, rc: int = ExitCode.VALIDATION) -> NoReturn:
    """Print *message* and terminate the command with *rc*."""
    err_console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=rc)


@config_app.command(
    "show",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def config_show(
    ctx: typer.Context,
    config_file: Path | None = CONFIG_FILE_OPTION,
    env_prefix: str = ENV_PREFIX_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Resolve the service configuration and display it.

    Remaining arguments are field overrides, e.g. ``--server-port 9090``.
    """
    try:
        resolver = new_loader(list(ctx.args), config_file=config_file, env_prefix=env_prefix)
    except EzconfError as exc:
        _command_error(str(exc), rc=exit_code_for(exc))

    snapshot = resolver.snapshot()
    if snapshot is None:
        _command_error("No configuration snapshot was produced.")
    if json_output:
        console.print_json(data=snapshot.config.to_dict())
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_column("Source")
    for name, value in snapshot.values.to_dict().items():
        table.add_row(name, str(value), snapshot.values.source(name) or "-")
    console.print(table)
    console.print(f"Remote address: {snapshot.config.service.server.remote_address}")


@config_app.command("fields")
def config_fields(
    env_prefix: str = ENV_PREFIX_OPTION,
) -> None:
    """List every configuration field with its flag and environment variable."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Field", style="bold")
    table.add_column("Type")
    table.add_column("Flag")
    table.add_column("Environment")
    table.add_column("Default")
    table.add_column("Required")
    for spec in APP_SCHEMA:
        default, has_default = spec.default.get()
        table.add_row(
            spec.name,
            spec.kind.value,
            spec.flag_name(),
            spec.env_name(env_prefix),
            repr(default) if has_default else "-",
            "yes" if spec.required else "",
        )
    console.print(table)


@tls_app.command("verify")
def tls_verify(
    cert: Path = TLS_CERT_OPTION,
    key: Path = TLS_KEY_OPTION,
    server_name: str | None = TLS_SERVER_NAME_OPTION,
    skip_verify: bool = TLS_SKIP_VERIFY_OPTION,
    warn_days: int = TLS_WARN_DAYS_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Load a certificate/key pair and build an enabled TLS policy."""
    loader = TLSConfigLoader(
        enabled=Option.some(True),
        server_name=Option.of(server_name),
        skip_verify=Option.some(skip_verify),
        certificate=CertFile(cert),
        private_key=PrivateKeyFile(key),
    )
    try:
        policy = loader.update()
    except EzconfError as exc:
        _command_error(str(exc), rc=exit_code_for(exc))

    pair = policy.certificate_pair
    if pair is None:
        _command_error("No certificate/key pair was loaded.")

    days_left = policy.days_until_expiry(datetime.now(UTC))
    if json_output:
        payload = policy.to_dict()
        payload["days_until_expiry"] = days_left
        console.print_json(data=payload)
    else:
        table = Table("Check", "Details")
        table.add_row(
            "Chain",
            "\n".join(cert.subject.rfc4514_string() for cert in pair.certificates),
        )
        table.add_row("Key type", pair.private_key.kind.value)
        table.add_row("Server name", server_name or "-")
        table.add_row("Minimum version", policy.min_version.name)
        expiry = policy.not_valid_after
        table.add_row("Not valid after", expiry.isoformat() if expiry else "-")
        console.print(table)

    if days_left is not None and days_left < 0:
        _command_error("Certificate has expired.", rc=ExitCode.VALIDATION)
    if days_left is not None and days_left <= warn_days:
        err_console.print(
            f"[yellow]Certificate expires in {days_left} day(s).[/yellow]"
        )


def main() -> None:
    """Console-script entry point."""
    app()


__all__ = ["app", "main"]
