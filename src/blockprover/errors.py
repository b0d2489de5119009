"""Exception taxonomy for the block proving pipeline.

Every stage failure is a ``PipelineError``. The orchestrator fills in the
block number and stage as the error escapes, so the message printed to the
operator always says which block broke, where, and what the tool said.
"""
from __future__ import annotations

from typing import Sequence


class BlockProverError(Exception):
    """Base class for all blockprover errors."""


class ConfigError(BlockProverError):
    """Configuration is missing a value required for the requested operation."""


class PipelineError(BlockProverError):
    """A stage of a block job failed."""

    def __init__(
        self,
        message: str,
        *,
        block_number: int | None = None,
        stage: str | None = None,
        output: str | None = None,
    ) -> None:
        self.message = message
        self.block_number = block_number
        self.stage = stage
        self.output = output
        super().__init__(message)

    def __str__(self) -> str:
        context = []
        if self.block_number is not None:
            context.append(f"block {self.block_number}")
        if self.stage:
            context.append(f"stage {self.stage}")
        text = self.message
        if context:
            text = f"[{', '.join(context)}] {text}"
        if self.output:
            text += f"\n--- tool output ---\n{self.output.rstrip()}"
        return text


class ExternalToolFailure(PipelineError):
    """External program could not be launched or exited non-zero."""

    def __init__(
        self,
        command: Sequence[str],
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        output = "\n".join(part for part in (stdout.strip(), stderr.strip()) if part)
        super().__init__(message, output=output or None)


class OutputParseError(PipelineError):
    """Tool succeeded but its output lacked the expected label or shape."""


class ChecksumParseError(OutputParseError):
    pass


class SubmissionError(OutputParseError):
    pass


class LeafNotFoundError(OutputParseError):
    pass


class StorageUploadError(PipelineError):
    """Upload to object storage failed (transport or credentials)."""


class ChainRpcError(PipelineError):
    """Block height could not be read from the chain RPC endpoint."""


class MalformedVerification(PipelineError):
    """Verification leaf produced a payload that is not a structured document."""

    def __init__(
        self,
        payload: str,
        *,
        tx_hash: str | None = None,
        leaf_hash: str | None = None,
        block_number: int | None = None,
    ) -> None:
        self.payload = payload
        self.tx_hash = tx_hash
        self.leaf_hash = leaf_hash
        super().__init__(
            f"malformed verification payload for tx {tx_hash} (leaf {leaf_hash})",
            block_number=block_number,
            stage="poll",
            output=payload,
        )


class PollTimeout(PipelineError):
    """Verification did not reach a terminal state within the configured wait."""


class PollCancelled(PipelineError):
    """Polling was stopped by the caller before a terminal state."""


__all__ = [
    "BlockProverError",
    "ConfigError",
    "PipelineError",
    "ExternalToolFailure",
    "OutputParseError",
    "ChecksumParseError",
    "SubmissionError",
    "LeafNotFoundError",
    "StorageUploadError",
    "ChainRpcError",
    "MalformedVerification",
    "PollTimeout",
    "PollCancelled",
]
