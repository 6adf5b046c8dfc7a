"""Main CLI entry point for cfgctl."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import click
from rich.console import Console

from cfgctl import __version__
from cfgctl.core.config import DEFAULT_CONFIG_FILE
from cfgctl.core.exceptions import CfgctlError

if TYPE_CHECKING:
    from cfgctl.core.config import CfgctlConfig
    from cfgctl.core.engine import Engine
    from cfgctl.core.models import GenerateResult

console = Console()


class CfgctlContext:
    """Shared context for CLI commands with lazy initialization."""

    def __init__(self, config_path: str, explicit: bool = False):
        """Initialize context with config path.

        Args:
            config_path: Path to configuration file
            explicit: Whether the path was given on the command line; the
                default path may be absent, an explicit one may not
        """
        self.config_path = config_path
        self.explicit = explicit
        self._config: CfgctlConfig | None = None
        self._engine: Engine | None = None

    @property
    def config(self) -> CfgctlConfig:
        """Get or load config lazily."""
        if self._config is None:
            from cfgctl.core.config import CfgctlConfig

            self._config = CfgctlConfig.from_file(self.config_path, missing_ok=not self.explicit)
        return self._config

    @property
    def engine(self) -> Engine:
        """Get or create the generation engine lazily."""
        if self._engine is None:
            from cfgctl.core.engine import Engine

            self._engine = Engine.from_config(self.config)
        return self._engine


def _fail(ctx: click.Context, error: CfgctlError) -> NoReturn:
    console.print(f"[red]✗ {error}[/red]", highlight=False)
    ctx.exit(1)


def _print_result(result: GenerateResult) -> None:
    console.print(f"\n[bold cyan]{result.provider}[/bold cyan]")

    metadata = result.metadata
    if "discovered_profiles" in metadata:
        console.print(f"  [bold]Profiles discovered:[/bold] {metadata['discovered_profiles']}")
    if "discovered_clusters" in metadata:
        console.print(f"  [bold]Clusters discovered:[/bold] {metadata['discovered_clusters']}")
    if metadata.get("regions"):
        console.print(f"  [bold]Regions:[/bold] {', '.join(metadata['regions'])}")
    if metadata.get("merge_files"):
        console.print(f"  [bold]Merged:[/bold] {len(metadata['merge_files'])} files")

    if result.files_created:
        console.print("  [bold]Files created:[/bold]")
        for path in result.files_created:
            console.print(f"    [green]✓ {path}[/green]", highlight=False)
    if result.files_skipped:
        console.print("  [bold]Files skipped:[/bold]")
        for path in result.files_skipped:
            console.print(f"    [cyan]- {path}[/cyan]", highlight=False)
    if result.backups:
        console.print("  [bold]Backups:[/bold]")
        for path in result.backups:
            console.print(f"    [cyan]- {path}[/cyan]", highlight=False)
    if result.warnings:
        console.print("  [bold]Warnings:[/bold]")
        for warning in result.warnings:
            console.print(f"    [yellow]! {warning}[/yellow]", highlight=False)


def _print_dry_run(result: GenerateResult) -> None:
    metadata = result.metadata
    outputs = [
        (metadata.get("config_path"), metadata.get("config_content")),
        (metadata.get("credentials_path"), metadata.get("credentials_content")),
        (metadata.get("dry_run_output"), metadata.get("dry_run_kubeconfig")),
    ]
    for path, content in outputs:
        if content is None:
            continue
        console.print(f"\n[bold]# {path}[/bold]", highlight=False)
        print(content.rstrip("\n"))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(dir_okay=False),
    default=None,
    help=f"Path to configuration file (default: {DEFAULT_CONFIG_FILE})",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default=None,
    help="Override the configured log format",
)
@click.pass_context
def cli(
    ctx: click.Context, config: str | None, log_level: str | None, log_format: str | None
) -> None:
    """cfgctl - Generate AWS profiles and kubeconfig from SSO and EKS discovery."""
    from cfgctl.utils.logging import setup_logging

    cfgctl_ctx = CfgctlContext(
        config_path=config or DEFAULT_CONFIG_FILE,
        explicit=config is not None,
    )
    ctx.obj = cfgctl_ctx

    try:
        logging_config = cfgctl_ctx.config.logging
    except CfgctlError as e:
        setup_logging(level=log_level or "WARNING", format=log_format or "console")
        _fail(ctx, e)

    setup_logging(
        level=log_level or logging_config.level,
        format=log_format or logging_config.format,
        output=logging_config.output,
    )


@cli.command()
@click.argument("providers", nargs=-1)
@click.option("--dry-run", is_flag=True, help="Print generated content without writing files")
@click.option("--force", is_flag=True, help="Overwrite existing files")
@click.option("--no-backup", is_flag=True, help="Skip backups of files being overwritten")
@click.pass_context
def generate(
    ctx: click.Context, providers: tuple[str, ...], dry_run: bool, force: bool, no_backup: bool
) -> None:
    """Generate configuration files for PROVIDERS (all when omitted)."""
    names = [name for name in providers if name != "all"]

    console.print("[bold blue]cfgctl Generate[/bold blue]")
    console.print(f"Providers: {', '.join(names) or 'all'}")
    console.print(f"Dry Run: {dry_run}")

    try:
        results = ctx.obj.engine.execute(
            provider_names=names,
            dry_run=dry_run,
            force=force,
            backup=not no_backup,
        )
    except CfgctlError as e:
        _fail(ctx, e)

    for result in results.values():
        _print_result(result)
        if dry_run:
            _print_dry_run(result)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and provider prerequisites."""
    from pathlib import Path

    cfgctl_ctx = ctx.obj
    console.print("[bold magenta]cfgctl Validate[/bold magenta]\n")

    config_path = Path(cfgctl_ctx.config_path).expanduser()
    console.print("[bold]1. Configuration File[/bold]")
    console.print(f"  Path: {config_path}", highlight=False)
    if config_path.exists():
        console.print("  [green]✓ Config file loaded[/green]\n")
    else:
        console.print("  [yellow]! Config file not found, using defaults[/yellow]\n")

    failed = False
    for step, provider in enumerate(cfgctl_ctx.engine.providers.values(), start=2):
        console.print(f"[bold]{step}. Provider: {provider.name}[/bold]")
        if not provider.enabled:
            console.print("  [yellow]! Disabled[/yellow]\n")
            continue
        try:
            provider.validate()
        except CfgctlError as e:
            failed = True
            console.print(f"  [red]✗ {e}[/red]\n", highlight=False)
            continue
        console.print("  [green]✓ Configuration valid[/green]\n")

    if failed:
        console.print("[bold red]✗ Validation failed[/bold red]")
        ctx.exit(1)
    console.print("[bold green]✓ Validation complete![/bold green]")


@cli.command()
@click.option("--aws-command", default="aws", show_default=True, help="AWS CLI executable")
@click.pass_context
def login(ctx: click.Context, aws_command: str) -> None:
    """Start an AWS SSO session for the configured start URL."""
    from cfgctl.credentials.sso_login import run_sso_login

    aws_config = ctx.obj.config.providers.aws
    try:
        aws_config.validate_for_generation()
        console.print(
            f"Logging in to [cyan]{aws_config.sso.start_url}[/cyan] "
            f"(session {aws_config.sso.session_name})"
        )
        run_sso_login(aws_config, command=aws_command)
    except CfgctlError as e:
        _fail(ctx, e)

    console.print("[green]✓ SSO login complete[/green]")


@cli.command(name="list")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
@click.pass_context
def list_providers(ctx: click.Context, format: str) -> None:
    """List registered providers and their output files."""
    import json

    from rich.table import Table

    providers = list(ctx.obj.engine.providers.values())
    if not providers:
        console.print("[yellow]No providers registered[/yellow]")
        return

    rows = [
        {
            "name": provider.name,
            "enabled": provider.enabled,
            "output": provider.config.config_path,
        }
        for provider in providers
    ]

    if format == "json":
        print(json.dumps(rows, indent=2))
        return

    table = Table(title=f"cfgctl Providers ({len(rows)} total)")
    table.add_column("Provider", style="cyan")
    table.add_column("Enabled", style="bold")
    table.add_column("Output", style="blue")

    for row in rows:
        enabled = "[green]yes[/green]" if row["enabled"] else "[yellow]no[/yellow]"
        table.add_row(row["name"], enabled, row["output"])

    console.print(table)


if __name__ == "__main__":
    cli()
