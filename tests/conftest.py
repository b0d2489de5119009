"""Pytest configuration and fixtures for blockprover tests."""
from __future__ import annotations

import base64
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "src"))

from blockprover.config import PollPolicy, StorageConfig, TaskerConfig  # noqa: E402
from blockprover.runner import CommandOutput  # noqa: E402

SUBCOMMANDS = (
    "witness_capture",
    "calculate-hash",
    "exec",
    "print-tx-tree",
    "get-tx-execution-output",
)


@dataclass
class Call:
    command: str
    args: list[str]
    env: Optional[dict[str, str]] = None

    @property
    def subcommand(self) -> Optional[str]:
        return next((a for a in self.args if a in SUBCOMMANDS), None)


@dataclass
class ScriptedRunner:
    """Stand-in for CommandRunner that replays canned tool output.

    Responses are queued per subcommand; the last one repeats once the queue
    is down to it. A response is a CommandOutput, an exception to raise, or a
    callable taking the Call and returning a CommandOutput.
    """

    responses: dict[str, list[Any]] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)

    def on(self, subcommand: str, *responses: Any) -> "ScriptedRunner":
        self.responses.setdefault(subcommand, []).extend(responses)
        return self

    def run(self, command: str, args, *, env=None) -> CommandOutput:
        call = Call(command, list(args), dict(env) if env else None)
        self.calls.append(call)
        queue = self.responses.get(call.subcommand or "")
        if not queue:
            raise AssertionError(f"unexpected tool call: {command} {list(args)}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(call)
        return response

    def calls_for(self, subcommand: str) -> list[Call]:
        return [c for c in self.calls if c.subcommand == subcommand]


class FakeS3Client:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.uploads: list[dict[str, Any]] = []

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.error is not None:
            raise self.error
        self.uploads.append({"filename": filename, "bucket": bucket, "key": key, "extra": ExtraArgs})


def out(stdout: str = "", stderr: str = "") -> CommandOutput:
    return CommandOutput(stdout=stdout, stderr=stderr)


def verification_output(payload: str, kind: str = "Verification") -> CommandOutput:
    data = base64.b64encode(payload.encode()).decode()
    return out(json.dumps([{"kind": "Proof", "data": "cHJvb2Y="}, {"kind": kind, "data": data}]))


def capture_writes_witness(content: str = '{"witness": true}') -> Callable[[Call], CommandOutput]:
    def _respond(call: Call) -> CommandOutput:
        target = Path(call.args[call.args.index("-w") + 1])
        target.write_text(content)
        return out("witness captured\n")

    return _respond


@pytest.fixture
def tasker_config(tmp_path) -> TaskerConfig:
    return TaskerConfig(
        rpc_url="http://rpc.katla.example:8547",
        prover_cmd="/opt/prover/prover_cmd",
        params_path="/opt/prover/kzg_bn254_22.srs",
        network_cli="gevulot-cli",
        network_rpc_url="http://api.devnet.example:9944",
        prover_hash="PROVERHASH",
        verifier_hash="VERIFIERHASH",
        storage=StorageConfig(
            endpoint_url="https://eu-central-1.linodeobjects.com",
            bucket="gevulot",
            region="eu-central-1",
            access_key="ak",
            secret_key="sk",
        ),
        poll=PollPolicy(interval_seconds=10.0),
        workdir=tmp_path,
    )


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def sleeps() -> list[float]:
    return []
