"""Setup verification for the tasker host."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .config import TaskerConfig


@dataclass(frozen=True)
class VerifyCheck:
    name: str
    status: str  # pass | warn | fail
    detail: str
    hint: str | None = None


def _executable(command: str) -> str | None:
    path = Path(command)
    if path.parent != Path(".") or command.startswith("."):
        return str(path) if path.is_file() and os.access(path, os.X_OK) else None
    return shutil.which(command)


def _check_tool(name: str, command: str, hint: str) -> VerifyCheck:
    resolved = _executable(command)
    if resolved:
        return VerifyCheck(name, "pass", f"{command} -> {resolved}")
    return VerifyCheck(name, "fail", f"not executable: {command}", hint=hint)


def _check_dir(name: str, path: Path) -> VerifyCheck:
    if path.is_dir():
        if os.access(path, os.W_OK):
            return VerifyCheck(name, "pass", f"writable: {path}")
        return VerifyCheck(name, "fail", f"not writable: {path}")
    parent = next((p for p in path.parents if p.exists()), None)
    if parent is not None and os.access(parent, os.W_OK):
        return VerifyCheck(name, "pass", f"will be created: {path}")
    return VerifyCheck(name, "fail", f"cannot create: {path}")


def verify_tasker_setup(config: TaskerConfig, *, need_chain: bool = False) -> tuple[bool, list[VerifyCheck]]:
    """Validate that every external collaborator is reachable from config."""
    checks: list[VerifyCheck] = []

    checks.append(
        _check_tool("prover_cmd", config.prover_cmd, "set PROVER_CMD_PATH to the witness capture executable")
    )
    checks.append(
        _check_tool("network_cli", config.network_cli, "set GEVULOT_CLI to the execution network CLI")
    )

    if not config.params_path:
        checks.append(VerifyCheck("params", "fail", "no parameter file configured", hint="set PARAMS_PATH"))
    elif Path(config.params_path).is_file():
        checks.append(VerifyCheck("params", "pass", f"parameter file found: {config.params_path}"))
    else:
        checks.append(VerifyCheck("params", "fail", f"parameter file missing: {config.params_path}"))

    if config.capture_rpc_url:
        checks.append(VerifyCheck("witness_source", "pass", f"capture data source: {config.capture_rpc_url}"))
    else:
        checks.append(
            VerifyCheck("witness_source", "fail", "no data source for witness capture", hint="set KATLA_ENDPOINT")
        )

    if config.rpc_url:
        checks.append(VerifyCheck("chain_rpc", "pass", f"chain RPC: {config.rpc_url}"))
    else:
        checks.append(
            VerifyCheck(
                "chain_rpc",
                "fail" if need_chain else "warn",
                "no chain RPC endpoint",
                hint="needed for --mode latest; set KATLA_ENDPOINT",
            )
        )

    for name, value, env in (
        ("prover_hash", config.prover_hash, "PROVER_HASH"),
        ("verifier_hash", config.verifier_hash, "VERIFIER_HASH"),
    ):
        if value:
            checks.append(VerifyCheck(name, "pass", value))
        else:
            checks.append(VerifyCheck(name, "fail", "program identity not set", hint=f"set {env}"))

    storage = config.storage
    if storage.access_key and storage.secret_key:
        checks.append(VerifyCheck("storage", "pass", f"bucket {storage.bucket} at {storage.endpoint_url}"))
    else:
        checks.append(
            VerifyCheck(
                "storage",
                "fail",
                "object storage credentials missing",
                hint="set AWS_ACCESS_KEY and AWS_SECRET_KEY",
            )
        )

    checks.append(_check_dir("witness_dir", config.witness_root))
    checks.append(_check_dir("results_dir", config.results_root))

    if config.poll.max_wait_seconds is None:
        checks.append(
            VerifyCheck(
                "poll",
                "warn",
                f"every {config.poll.interval_seconds:g}s with no max wait",
                hint="set BLOCKPROVER_POLL_MAX_WAIT to bound a stuck transaction",
            )
        )
    else:
        checks.append(
            VerifyCheck(
                "poll",
                "pass",
                f"every {config.poll.interval_seconds:g}s, give up after {config.poll.max_wait_seconds:g}s",
            )
        )

    ok = all(c.status != "fail" for c in checks)
    return ok, checks


def render_verify_report(checks: list[VerifyCheck]) -> str:
    """Render a compact multi-line verification report."""
    icon = {"pass": "PASS", "warn": "WARN", "fail": "FAIL"}
    lines = []
    for item in checks:
        line = f"[{icon.get(item.status, item.status.upper())}] {item.name}: {item.detail}"
        if item.hint:
            line += f" | hint: {item.hint}"
        lines.append(line)
    return "\n".join(lines)
