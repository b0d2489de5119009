from __future__ import annotations

import json
import stat
from types import SimpleNamespace

import pytest
from click.testing import CliRunner

from blockprover.cli import cli
from blockprover.errors import ExternalToolFailure, MalformedVerification, PollCancelled
from blockprover.network import ExecutionNetwork
from conftest import ScriptedRunner, out, verification_output

LEGACY_ENV = [
    "KATLA_ENDPOINT",
    "PROVER_CMD_PATH",
    "PARAMS_PATH",
    "GEVULOT_CLI",
    "GEVULOT_JSONURL",
    "AWS_ACCESS_KEY",
    "AWS_SECRET_KEY",
    "PROVER_HASH",
    "VERIFIER_HASH",
    "BLOCKPROVER_HOME",
    "BLOCKPROVER_S3_ACCESS_KEY",
    "BLOCKPROVER_S3_SECRET_KEY",
    "BLOCKPROVER_PROVER_HASH",
    "BLOCKPROVER_VERIFIER_HASH",
    "BLOCKPROVER_START_BLOCK",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in LEGACY_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workspace(tmp_path):
    tools = tmp_path / "bin"
    tools.mkdir()
    for name in ("prover_cmd", "gevulot-cli"):
        tool = tools / name
        tool.write_text("#!/bin/sh\nexit 0\n")
        tool.chmod(tool.stat().st_mode | stat.S_IXUSR)
    params = tmp_path / "kzg_bn254_22.srs"
    params.write_bytes(b"\0")

    config_dir = tmp_path / ".blockprover"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(
        json.dumps(
            {
                "chain": {"rpc_url": "http://rpc.katla.example:8547"},
                "witness": {"prover_cmd": str(tools / "prover_cmd"), "params_path": str(params)},
                "network": {"cli": str(tools / "gevulot-cli"), "rpc_url": "http://api.devnet.example:9944"},
                "programs": {"prover_hash": "PROVERHASH", "verifier_hash": "VERIFIERHASH"},
                "poll": {"max_wait_seconds": 3600},
            }
        )
    )
    return tmp_path


@pytest.fixture
def storage_env(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY", "ak")
    monkeypatch.setenv("AWS_SECRET_KEY", "sk")


class FakeOrchestrator:
    def __init__(self, outcomes=None) -> None:
        self.outcomes = outcomes or {}
        self.blocks: list[int] = []

    def run(self, block_number, cancel=None):
        self.blocks.append(block_number)
        outcome = self.outcomes.get(block_number)
        if isinstance(outcome, BaseException):
            raise outcome
        return SimpleNamespace(block_number=block_number)


def _patch_orchestrator(monkeypatch, orchestrator, seen=None):
    def _build(config, *, mock_witness=False):
        if seen is not None:
            seen.update(config=config, mock_witness=mock_witness)
        return orchestrator

    monkeypatch.setattr("blockprover.cli.run_cmd.build_orchestrator", _build)


def test_help_lists_commands() -> None:
    result = CliRunner().invoke(cli, ["--help"], obj={})
    assert result.exit_code == 0
    for name in ("run", "plan", "result", "doctor"):
        assert name in result.output


def test_run_fixed_block(monkeypatch, workspace) -> None:
    orchestrator = FakeOrchestrator()
    _patch_orchestrator(monkeypatch, orchestrator)
    result = CliRunner().invoke(cli, ["-w", str(workspace), "run", "57437"], obj={})
    assert result.exit_code == 0, result.output
    assert orchestrator.blocks == [57437]
    assert "verified" in result.output


def test_run_defaults_to_configured_start_block(monkeypatch, workspace) -> None:
    monkeypatch.setenv("BLOCKPROVER_START_BLOCK", "60000")
    orchestrator = FakeOrchestrator()
    _patch_orchestrator(monkeypatch, orchestrator)
    result = CliRunner().invoke(cli, ["-w", str(workspace), "run"], obj={})
    assert result.exit_code == 0, result.output
    assert orchestrator.blocks == [60000]


def test_run_passes_overrides(monkeypatch, workspace) -> None:
    seen: dict = {}
    _patch_orchestrator(monkeypatch, FakeOrchestrator(), seen)
    result = CliRunner().invoke(
        cli,
        ["-w", str(workspace), "run", "5", "--mock-witness", "--poll-interval", "2", "--max-wait", "60"],
        obj={},
    )
    assert result.exit_code == 0, result.output
    assert seen["mock_witness"] is True
    assert seen["config"].poll.interval_seconds == 2.0
    assert seen["config"].poll.max_wait_seconds == 60.0


def test_run_latest_reads_chain_head(monkeypatch, workspace) -> None:
    orchestrator = FakeOrchestrator()
    _patch_orchestrator(monkeypatch, orchestrator)
    monkeypatch.setattr(
        "blockprover.cli.run_cmd.build_chain",
        lambda config: SimpleNamespace(latest_block_number=lambda: 61234),
    )
    result = CliRunner().invoke(cli, ["-w", str(workspace), "run", "--mode", "latest"], obj={})
    assert result.exit_code == 0, result.output
    assert orchestrator.blocks == [61234]


def test_run_follow_keep_going_reports_malformed(monkeypatch, workspace) -> None:
    malformed = MalformedVerification("ERROR", tx_hash="0xabc", leaf_hash="0xdef", block_number=11)
    orchestrator = FakeOrchestrator({11: malformed})
    _patch_orchestrator(monkeypatch, orchestrator)
    result = CliRunner().invoke(
        cli,
        ["-w", str(workspace), "run", "10", "--mode", "follow", "--count", "3", "--keep-going"],
        obj={},
    )
    assert orchestrator.blocks == [10, 11, 12]
    assert result.exit_code == 3
    assert "malformed" in result.output


def test_run_malformed_halts(monkeypatch, workspace) -> None:
    malformed = MalformedVerification("ERROR", tx_hash="0xabc", leaf_hash="0xdef", block_number=7)
    _patch_orchestrator(monkeypatch, FakeOrchestrator({7: malformed}))
    result = CliRunner().invoke(cli, ["-w", str(workspace), "run", "7"], obj={})
    assert result.exit_code == 3
    assert "malformed verification payload" in result.output


def test_run_stage_failure_exit_code(monkeypatch, workspace) -> None:
    failure = ExternalToolFailure(["prover_cmd"], "capture failed", returncode=1, stderr="block not found")
    failure.block_number, failure.stage = 7, "capture"
    _patch_orchestrator(monkeypatch, FakeOrchestrator({7: failure}))
    result = CliRunner().invoke(cli, ["-w", str(workspace), "run", "7"], obj={})
    assert result.exit_code == 1
    assert "[block 7, stage capture]" in result.output
    assert "block not found" in result.output


def test_run_cancelled_exit_code(monkeypatch, workspace) -> None:
    _patch_orchestrator(monkeypatch, FakeOrchestrator({7: PollCancelled("cancelled", stage="poll")}))
    result = CliRunner().invoke(cli, ["-w", str(workspace), "run", "7"], obj={})
    assert result.exit_code == 130


def test_plan_prints_descriptor(workspace) -> None:
    result = CliRunner().invoke(cli, ["-w", str(workspace), "plan", "--checksum", "abc", "--block", "57437"], obj={})
    assert result.exit_code == 0, result.output
    plan_line = next(line for line in result.output.splitlines() if line.startswith("[{"))
    tasks = json.loads(plan_line)
    assert [t["program"] for t in tasks] == ["PROVERHASH", "VERIFIERHASH"]
    binding = tasks[0]["inputs"][0]["Input"]
    assert binding["local_path"] == "abc"
    assert binding["vm_path"] == "/workspace/witness-57437.json"
    assert binding["file_url"] == "https://gevulot.eu-central-1.linodeobjects.com/witness-57437.json"


def test_plan_requires_name_or_block(workspace) -> None:
    result = CliRunner().invoke(cli, ["-w", str(workspace), "plan", "--checksum", "abc"], obj={})
    assert result.exit_code == 2
    assert "--witness-name or --block" in result.output


def test_plan_without_program_identity_is_config_error(tmp_path) -> None:
    result = CliRunner().invoke(cli, ["-w", str(tmp_path), "plan", "--checksum", "abc", "--block", "1"], obj={})
    assert result.exit_code == 2
    assert "PROVER_HASH" in result.output


def _patch_network(monkeypatch, runner: ScriptedRunner) -> None:
    monkeypatch.setattr(
        "blockprover.cli.inspect_cmd.build_network",
        lambda config: ExecutionNetwork(config, runner),
    )


def test_result_verified(monkeypatch, workspace) -> None:
    runner = ScriptedRunner()
    runner.on("print-tx-tree", out("Leaf: 0xdeadbeef\n"))
    runner.on("get-tx-execution-output", verification_output('{"ok":true}'))
    _patch_network(monkeypatch, runner)

    result = CliRunner().invoke(cli, ["-w", str(workspace), "result", "0xabc123"], obj={})

    assert result.exit_code == 0, result.output
    assert "leaf: 0xdeadbeef" in result.output
    assert "state: verified" in result.output
    assert '{"ok":true}' in result.output


def test_result_pending_when_no_leaf(monkeypatch, workspace) -> None:
    runner = ScriptedRunner()
    runner.on("print-tx-tree", out("Root: 0xabc123\n"))
    _patch_network(monkeypatch, runner)
    result = CliRunner().invoke(cli, ["-w", str(workspace), "result", "0xabc123"], obj={})
    assert result.exit_code == 4


def test_result_malformed(monkeypatch, workspace) -> None:
    runner = ScriptedRunner()
    runner.on("print-tx-tree", out("Leaf: 0xdeadbeef\n"))
    runner.on("get-tx-execution-output", verification_output("ERROR: bad proof"))
    _patch_network(monkeypatch, runner)
    result = CliRunner().invoke(cli, ["-w", str(workspace), "result", "0xabc123"], obj={})
    assert result.exit_code == 3
    assert "state: malformed" in result.output


def test_doctor_passes_with_complete_setup(workspace, storage_env) -> None:
    result = CliRunner().invoke(cli, ["-w", str(workspace), "doctor"], obj={})
    assert result.exit_code == 0, result.output
    assert "[FAIL]" not in result.output
    assert "[PASS] prover_hash: PROVERHASH" in result.output


def test_doctor_fails_without_credentials(workspace) -> None:
    result = CliRunner().invoke(cli, ["-w", str(workspace), "doctor"], obj={})
    assert result.exit_code == 1
    assert "[FAIL] storage" in result.output
    assert "AWS_ACCESS_KEY" in result.output


def test_run_rejects_zero_poll_interval(monkeypatch, workspace) -> None:
    orchestrator = FakeOrchestrator()
    _patch_orchestrator(monkeypatch, orchestrator)
    result = CliRunner().invoke(cli, ["-w", str(workspace), "run", "7", "--poll-interval", "0"], obj={})
    assert result.exit_code == 2
    assert orchestrator.blocks == []


def test_invalid_poll_config_exits_with_config_status(monkeypatch, workspace) -> None:
    monkeypatch.setenv("BLOCKPROVER_POLL_INTERVAL", "0")
    result = CliRunner().invoke(cli, ["-w", str(workspace), "doctor"], obj={})
    assert result.exit_code == 2
    assert "poll interval must be greater than 0" in result.output
