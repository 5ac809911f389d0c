"""CLI interface for autopost."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from autopost.config import AutopostConfig, load_config, merge_cli_overrides, validate_for_run
from autopost.errors import ConfigError, LedgerWriteError
from autopost.models import RunMode, RunReport

app = typer.Typer(
    name="autopost",
    help="Rewrite RSS articles with an LLM and publish them to a blog.",
)

console = Console()

EXIT_LEDGER_FAILURE = 1
EXIT_CONFIG_ERROR = 2

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to a TOML config file."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from autopost import __version__

        console.print(f"autopost {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Autopost - RSS to LLM rewrite to blog."""


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def _load(config_path: Path | None, **overrides: object) -> AutopostConfig:
    try:
        config = load_config(config_path)
        return merge_cli_overrides(config, **overrides)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from exc


def _print_report(report: RunReport) -> None:
    table = Table(title="Run summary")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Stage")
    table.add_column("Detail")
    for outcome in report.outcomes:
        style = "green" if outcome.status == "published" else "yellow"
        table.add_row(
            outcome.title or outcome.identity,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.stage.value,
            outcome.post_url or outcome.reason,
        )
    console.print(table)
    console.print(
        f"fetched={report.fetched} eligible={report.eligible} "
        f"published={report.published} skipped={report.skipped}"
    )


@app.command()
def run(
    config_path: ConfigOption = None,
    once: Annotated[
        Optional[bool],
        typer.Option(
            "--once/--serve",
            help="Run a single pass, or keep running on the configured cron schedule.",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show the work queue without processing anything."),
    ] = False,
    max_items: Annotated[
        Optional[int],
        typer.Option("--max-items", help="Maximum items to attempt per run."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
) -> None:
    """Fetch feeds, rewrite new articles, and publish them."""
    from autopost.pipeline import SchedulerShell, build_runner

    _configure_logging(verbose)

    mode = None if once is None else (RunMode.ONCE if once else RunMode.CRON)
    config = _load(config_path, mode=mode, max_items=max_items)

    try:
        if dry_run:
            if not config.feeds.is_configured:
                raise ConfigError("no feeds configured (feeds.urls / FEED_URLS)")
        else:
            validate_for_run(config)
        runner = build_runner(config, dry_run=dry_run)
        shell = SchedulerShell(runner, config.schedule)

        if config.schedule.mode == RunMode.CRON and not dry_run:
            shell.serve()
            return
        report = shell.run_once()
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(EXIT_CONFIG_ERROR) from exc
    except LedgerWriteError as exc:
        console.print(f"[red]Run aborted, ledger unavailable:[/red] {exc}")
        raise typer.Exit(EXIT_LEDGER_FAILURE) from exc

    _print_report(report)


@app.command()
def status(
    config_path: ConfigOption = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Number of recent posts to show."),
    ] = 10,
) -> None:
    """Show ledger size, recent posts, and credential usage."""
    from autopost.store import CredentialRotator, Database, LedgerStore

    config = _load(config_path)
    try:
        database = Database(config.store)
        ledger = LedgerStore(database)
        total = ledger.count()
        recent = ledger.recent(limit)
        usage = CredentialRotator(database).usage_report()
    except LedgerWriteError as exc:
        console.print(f"[red]Ledger unavailable:[/red] {exc}")
        raise typer.Exit(EXIT_LEDGER_FAILURE) from exc

    console.print(f"[bold]{total}[/bold] posts recorded in {config.store.resolved_url}")

    posts = Table(title="Recent posts")
    posts.add_column("Recorded")
    posts.add_column("Title")
    posts.add_column("Credential")
    posts.add_column("Post URL")
    for entry in recent:
        posts.add_row(
            entry.recorded_at.strftime("%Y-%m-%d %H:%M"),
            entry.title or entry.identity,
            entry.provider_credential_used or "",
            entry.post_url or "",
        )
    console.print(posts)

    creds = Table(title="Credential usage")
    creds.add_column("Fingerprint")
    creds.add_column("Uses", justify="right")
    creds.add_column("Tokens", justify="right")
    creds.add_column("Last used")
    for record in usage:
        creds.add_row(
            record.credential_fingerprint,
            str(record.total_uses),
            str(record.total_cost),
            "never" if record.total_uses == 0 else record.last_used_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(creds)


@app.command()
def check(
    identity: Annotated[str, typer.Argument(help="Feed item id or article URL.")],
    config_path: ConfigOption = None,
) -> None:
    """Report whether an item is already recorded as published."""
    from autopost.store import Database, LedgerStore

    config = _load(config_path)
    try:
        ledger = LedgerStore(Database(config.store))
        posted = ledger.exists(identity)
    except LedgerWriteError as exc:
        console.print(f"[red]Ledger unavailable:[/red] {exc}")
        raise typer.Exit(EXIT_LEDGER_FAILURE) from exc

    if posted:
        console.print(f"[green]posted[/green] {identity}")
    else:
        console.print(f"[yellow]not posted[/yellow] {identity}")


if __name__ == "__main__":
    app()
