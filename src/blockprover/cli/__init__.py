"""blockprover CLI - block witness → remote proof → verification.

Commands:
    run     - Prove and verify blocks (fixed, latest or follow mode)
    plan    - Print the task plan for a witness without submitting
    result  - Poll a submitted transaction once
    doctor  - Check tools, credentials and directories
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from ..checks import render_verify_report, verify_tasker_setup
from ..config import load_config
from ..errors import ConfigError
from .exit_codes import EXIT_CONFIG
from .inspect_cmd import plan_command, result_command
from .run_cmd import run_command

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


@click.group()
@click.version_option(version="0.1.0", prog_name="blockprover")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Global config file (default ~/.blockprover/config.json)",
)
@click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory holding witnesses/, results/ and .blockprover/config.json (defaults to cwd)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log tool invocations and poll details")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], workspace: Optional[Path], verbose: bool) -> None:
    """blockprover - turn block numbers into verified proofs.

    \b
    Quick start:
      blockprover doctor              Check the setup
      blockprover run 57437           Prove one block
      blockprover run --mode latest   Prove the current chain head
    """
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path, workspace.resolve() if workspace else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_CONFIG)


cli.add_command(run_command, name="run")
cli.add_command(plan_command, name="plan")
cli.add_command(result_command, name="result")


@cli.command("doctor")
@click.option("--need-chain", is_flag=True, help="Treat a missing chain RPC endpoint as a failure")
@click.pass_context
def doctor_command(ctx: click.Context, need_chain: bool) -> None:
    """Verify that every external tool and credential is in place."""
    ok, checks = verify_tasker_setup(ctx.obj["config"], need_chain=need_chain)
    click.echo(render_verify_report(checks))
    if not ok:
        raise SystemExit(1)


def main() -> None:
    cli(obj={})


__all__ = ["cli", "main"]
