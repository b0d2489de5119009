"""`blockprover plan` and `blockprover result` - look without running a job."""
from __future__ import annotations

import json
from typing import Optional

import click

from ..errors import BlockProverError, ConfigError, LeafNotFoundError
from ..poller import Verdict, classify_payload
from ..tasks import build_task_descriptor
from ..witness import WitnessArtifact, witness_file_name
from .exit_codes import EXIT_CONFIG, EXIT_JOB_FAILED, EXIT_MALFORMED, EXIT_NOT_READY
from .runtime import build_network, build_publisher


@click.command("plan")
@click.option("--checksum", required=True, help="Witness checksum from calculate-hash")
@click.option("--block", "block_number", type=click.IntRange(min=0), help="Derive the witness name from a block")
@click.option("--witness-name", help="Witness object key (default witness-<block>.json)")
@click.option("--witness-url", help="Public witness URL (default derived from storage config)")
@click.option("--pretty", is_flag=True, help="Indent the JSON")
@click.pass_context
def plan_command(
    ctx: click.Context,
    checksum: str,
    block_number: Optional[int],
    witness_name: Optional[str],
    witness_url: Optional[str],
    pretty: bool,
) -> None:
    """Print the task plan that `run` would submit, without submitting it."""
    config = ctx.obj["config"]
    if not witness_name:
        if block_number is None:
            raise click.UsageError("pass --witness-name or --block")
        witness_name = witness_file_name(block_number)
    if not witness_url:
        witness_url = build_publisher(config).public_url(witness_name)

    missing = [
        name
        for name, value in (
            ("PROVER_HASH", config.prover_hash),
            ("VERIFIER_HASH", config.verifier_hash),
            ("PARAMS_PATH", config.task_params_path),
        )
        if not value
    ]
    if missing:
        click.echo(f"Error: not configured: {', '.join(missing)}", err=True)
        raise SystemExit(EXIT_CONFIG)

    descriptor = build_task_descriptor(
        WitnessArtifact(checksum=checksum, name=witness_name, url=witness_url),
        prover_hash=config.prover_hash,
        verifier_hash=config.verifier_hash,
        params_path=config.task_params_path,
    )
    if pretty:
        click.echo(json.dumps(json.loads(descriptor.to_json()), indent=2))
    else:
        click.echo(descriptor.to_json())


@click.command("result")
@click.argument("tx_hash")
@click.pass_context
def result_command(ctx: click.Context, tx_hash: str) -> None:
    """Poll TX_HASH once and print its verification payload."""
    network = build_network(ctx.obj["config"])
    try:
        leaf = network.require_leaf(tx_hash)
        payload = network.fetch_verification(leaf)
    except LeafNotFoundError as exc:
        click.echo(f"pending: {exc}", err=True)
        raise SystemExit(EXIT_NOT_READY)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_CONFIG)
    except BlockProverError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_JOB_FAILED)

    verdict = classify_payload(payload)
    click.echo(f"leaf: {leaf}")
    click.echo(f"state: {verdict.value}")
    if payload:
        click.echo(payload)
    if verdict is Verdict.MALFORMED:
        raise SystemExit(EXIT_MALFORMED)
    if verdict is Verdict.PENDING:
        raise SystemExit(EXIT_NOT_READY)
