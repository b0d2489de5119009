"""`blockprover run` - prove and verify blocks end to end."""
from __future__ import annotations

import dataclasses
import logging
import signal
import threading
from typing import Optional

import click

from ..config import TaskerConfig
from ..errors import BlockProverError, ConfigError, MalformedVerification, PollCancelled
from ..run_loop import RunLoop, RunMode, RunSummary
from .exit_codes import EXIT_CANCELLED, EXIT_CONFIG, EXIT_JOB_FAILED, EXIT_MALFORMED
from .runtime import build_chain, build_orchestrator

logger = logging.getLogger(__name__)


def _apply_overrides(
    config: TaskerConfig,
    *,
    halt_on_malformed: Optional[bool],
    poll_interval: Optional[float],
    max_wait: Optional[float],
) -> TaskerConfig:
    poll = config.poll
    if poll_interval is not None:
        poll = dataclasses.replace(poll, interval_seconds=poll_interval)
    if max_wait is not None:
        poll = dataclasses.replace(poll, max_wait_seconds=max_wait)
    halt = config.halt_on_malformed if halt_on_malformed is None else halt_on_malformed
    return dataclasses.replace(config, poll=poll, halt_on_malformed=halt)


def _install_stop_handler(cancel: threading.Event) -> None:
    if threading.current_thread() is not threading.main_thread():
        return

    def _stop(signum, _frame):
        logger.warning("signal %d received, stopping after current poll", signum)
        cancel.set()

    signal.signal(signal.SIGTERM, _stop)


def _print_summary(summary: RunSummary) -> None:
    from rich.console import Console
    from rich.table import Table

    table = Table(title="blockprover run")
    table.add_column("Block", justify="right")
    table.add_column("Result")
    for number in summary.verified:
        table.add_row(str(number), "[green]verified[/green]")
    for number in summary.malformed:
        table.add_row(str(number), "[red]malformed[/red]")
    Console().print(table)


@click.command("run")
@click.argument("start_block", required=False, type=click.IntRange(min=0))
@click.option(
    "--mode",
    type=click.Choice([m.value for m in RunMode]),
    default=RunMode.FIXED.value,
    show_default=True,
    help="fixed: START_BLOCK once; latest: chain head once; follow: START_BLOCK, +1, +2, ...",
)
@click.option("--count", type=click.IntRange(min=1), default=None, help="Stop after N blocks")
@click.option("--mock-witness", is_flag=True, help="Skip capture/upload and submit the mock witness")
@click.option(
    "--halt-on-malformed/--keep-going",
    default=None,
    help="Stop the run on a malformed verification (default from config)",
)
@click.option("--poll-interval", type=click.FloatRange(min=0, min_open=True), default=None, help="Seconds between polls")
@click.option("--max-wait", type=click.FloatRange(min=0), default=None, help="Give up on a tx after N seconds")
@click.pass_context
def run_command(
    ctx: click.Context,
    start_block: Optional[int],
    mode: str,
    count: Optional[int],
    mock_witness: bool,
    halt_on_malformed: Optional[bool],
    poll_interval: Optional[float],
    max_wait: Optional[float],
) -> None:
    """Capture, publish, prove and verify START_BLOCK (default from config).

    \b
    Examples:
        blockprover run 57437
        blockprover run --mode latest
        blockprover run 57437 --mode follow --keep-going
    """
    config = _apply_overrides(
        ctx.obj["config"],
        halt_on_malformed=halt_on_malformed,
        poll_interval=poll_interval,
        max_wait=max_wait,
    )
    run_mode = RunMode(mode)
    if start_block is None:
        start_block = config.default_start_block

    cancel = threading.Event()
    _install_stop_handler(cancel)

    try:
        chain = build_chain(config) if run_mode is RunMode.LATEST else None
        loop = RunLoop(
            build_orchestrator(config, mock_witness=mock_witness),
            mode=run_mode,
            start_block=start_block,
            chain=chain,
            halt_on_malformed=config.halt_on_malformed,
            max_blocks=count,
        )
        summary = loop.run(cancel=cancel)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_CONFIG)
    except MalformedVerification as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_MALFORMED)
    except PollCancelled as exc:
        click.echo(f"Stopped: {exc}", err=True)
        raise SystemExit(EXIT_CANCELLED)
    except BlockProverError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_JOB_FAILED)

    _print_summary(summary)
    if summary.malformed:
        raise SystemExit(EXIT_MALFORMED)
