#!/usr/bin/env python3
"""
MorphMind - Yield Accrual and Allocation Engine
Operator CLI entry point
"""

import signal
import sys

import click
from rich.console import Console
from rich.table import Table

from morphmind import __version__
from morphmind.config import load_config
from morphmind.utils import setup_logging_from_config, get_logger

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option('--config', 'config_path', default='config/config.yaml', help='Path to config YAML')
@click.pass_context
def cli(ctx, config_path):
    """
    MorphMind - Yield Accrual and Allocation Engine

    \b
    Quick start:
        morphmind init-db      # Create ledger tables
        morphmind sources      # Show yield sources and scores
        morphmind run          # Start the compound/reallocate scheduler
    """
    if ctx.obj is None:
        ctx.obj = {}

    try:
        ctx.obj['config'] = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Failed to load configuration:[/red] {e}")
        sys.exit(1)

    config = ctx.obj['config']
    setup_logging_from_config(config)

    ctx.obj['logger'] = get_logger('morphmind.cli')


def _app(ctx):
    from morphmind.app import create_app
    return create_app(ctx.obj['config'])


# ==============================================================================
# DATABASE
# ==============================================================================

@cli.command('init-db')
@click.pass_context
def init_db_command(ctx):
    """Create ledger tables"""
    from morphmind.database import build_engine, init_db

    engine = build_engine(ctx.obj['config'].get_required('database'))
    init_db(engine)
    console.print("[green]Ledger tables created/verified[/green]")


# ==============================================================================
# ENGINE
# ==============================================================================

@cli.command()
@click.pass_context
def run(ctx):
    """Run the compound/reallocate scheduler until interrupted"""
    logger = ctx.obj['logger']
    app = _app(ctx)

    def _signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        app.scheduler.request_shutdown()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    app.scheduler.start()
    console.print("[bold green]MorphMind engine running[/bold green] (Ctrl+C to stop)")

    try:
        app.scheduler.wait_for_shutdown()
    finally:
        app.close()
        console.print("Engine stopped, ledger flushed")


@cli.command()
@click.pass_context
def cycle(ctx):
    """Run one compound/reallocate cycle now"""
    app = _app(ctx)
    try:
        result = app.scheduler.run_cycle_now()
    finally:
        app.close()

    if result is None:
        console.print("[red]Cycle failed, see logs[/red]")
        sys.exit(1)

    console.print("\n[bold cyan]Cycle Complete[/bold cyan]")
    console.print(f"Users processed: {result.users_processed}")
    console.print(f"Reward accrued: {result.accrued:.8f}")
    console.print(f"Positions moved: {result.moved}")
    console.print(f"Optimal source: {result.optimal_source_id or '-'}")
    console.print(f"Persisted: {'[green]yes[/green]' if result.persisted else '[red]no[/red]'}")


@cli.command()
@click.pass_context
def sources(ctx):
    """Show yield sources with current rate and score"""
    app = _app(ctx)
    try:
        snapshot = app.store.source_snapshot()
        ranked = app.scorer.rank_sources(snapshot)
        scores = app.scorer.score_table(snapshot)
    finally:
        app.close(flush=False)

    table = Table(title="Yield Sources")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Rate %", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Active", style="green")

    # Active sources best first, then the inactive ones in config order
    ordered = [source for source, _ in ranked] + [s for s in snapshot if not s.active]
    for source in ordered:
        table.add_row(
            source.id,
            source.name,
            f"{source.rate:.2f}",
            f"{source.volume:,.2f}",
            f"{scores[source.id]:.3f}",
            "yes" if source.active else "[red]no[/red]",
        )

    console.print(table)


@cli.command()
@click.pass_context
def stats(ctx):
    """Platform statistics"""
    app = _app(ctx)
    try:
        statistics = app.api.get_statistics()
    finally:
        app.close(flush=False)

    console.print("\n[bold cyan]MorphMind Statistics[/bold cyan]")
    console.print(f"Total users: {statistics.total_users}")
    console.print(f"Total staked: {statistics.total_staked:.4f}")
    console.print(f"Total earned: {statistics.total_earned:.6f}")
    console.print(f"Active sources: {statistics.active_sources}")
    if statistics.average_rate is not None:
        console.print(f"Average rate: {statistics.average_rate:.2f}%")
    else:
        console.print("Average rate: [yellow]no active source[/yellow]")


@cli.command('set-source')
@click.argument('source_id')
@click.option('--active/--inactive', default=True, help='Enable or disable the source')
@click.pass_context
def set_source(ctx, source_id, active):
    """Enable or disable a yield source"""
    from morphmind.ledger import LedgerError

    app = _app(ctx)
    try:
        view = app.api.set_source_active(source_id, active)
    except LedgerError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    finally:
        app.close()

    console.print(f"Source {view.id}: active={view.active}")


if __name__ == "__main__":
    cli(obj={})
