"""Witness capture and checksum resolution for a single block."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .config import TaskerConfig
from .errors import ChecksumParseError, ConfigError, ExternalToolFailure
from .runner import CommandRunner

logger = logging.getLogger(__name__)

# "checksum: 7dac..." wins; the older "The hash of the file is: 7dac..." form is the fallback.
CHECKSUM_LABEL = re.compile(r"(?im)^[ \t]*checksum[ \t]*:[ \t]*(\S+)")
CHECKSUM_SENTENCE = re.compile(r"(?i)\bhash of the file is:[ \t]*(\S+)")


@dataclass(frozen=True)
class WitnessArtifact:
    """A published witness: what the remote sandbox needs to fetch it."""

    checksum: str
    name: str
    url: str


MOCK_WITNESS = WitnessArtifact(
    checksum="7dacd2a082c5794642d0fba5c68e52e23f3fb423d6e74fe87e27652b5a34f260",
    name="witness-mock.json",
    url="https://gevulot.eu-central-1.linodeobjects.com/witness-mock.json",
)


def witness_file_name(block_number: int) -> str:
    if block_number < 0:
        raise ValueError(f"block number must be non-negative, got {block_number}")
    return f"witness-{block_number}.json"


def parse_checksum(text: str) -> str:
    for pattern in (CHECKSUM_LABEL, CHECKSUM_SENTENCE):
        match = pattern.search(text)
        if match:
            return match.group(1)
    raise ChecksumParseError("no checksum line in checksum tool output", output=text)


class WitnessCapturer:
    """Invoke the capture program to write ``witnesses/witness-<n>.json``."""

    def __init__(self, config: TaskerConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    def witness_path(self, block_number: int) -> Path:
        return self.config.witness_root / witness_file_name(block_number)

    def capture(self, block_number: int) -> Path:
        if not self.config.params_path:
            raise ConfigError("witness.params_path is not configured (PARAMS_PATH)")
        if not self.config.capture_rpc_url:
            raise ConfigError("no data source URL configured for witness capture (KATLA_ENDPOINT)")

        path = self.witness_path(block_number)
        path.parent.mkdir(parents=True, exist_ok=True)
        args = [
            "witness_capture",
            "-b", str(block_number),
            "-k", self.config.params_path,
            "-r", self.config.capture_rpc_url,
            "-w", str(path),
        ]
        logger.info("capturing witness for block %d", block_number)
        out = self.runner.run(self.config.prover_cmd, args)
        if not path.is_file():
            raise ExternalToolFailure(
                [self.config.prover_cmd, *args],
                f"capture finished but {path} was not written",
                returncode=0,
                stdout=out.stdout,
                stderr=out.stderr,
            )
        return path


class ChecksumResolver:
    """Run the network CLI's ``calculate-hash`` over a captured witness."""

    def __init__(self, config: TaskerConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    def resolve(self, block_number: int) -> str:
        path = self.config.witness_root / witness_file_name(block_number)
        out = self.runner.run(
            self.config.network_cli,
            ["--jsonurl", self.config.network_rpc_url, "calculate-hash", "--file", str(path)],
        )
        checksum = parse_checksum(out.stdout)
        logger.info("witness checksum for block %d: %s", block_number, checksum)
        return checksum
