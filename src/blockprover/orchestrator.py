"""Drive one block from witness capture to a persisted verification result."""
from __future__ import annotations

import contextlib
import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from .config import TaskerConfig
from .errors import ConfigError, MalformedVerification, PipelineError
from .network import ExecutionNetwork
from .poller import Verdict, VerificationPoller, VerificationResult
from .runner import CommandRunner
from .storage import ArtifactPublisher
from .tasks import TaskDescriptor, build_task_descriptor
from .witness import MOCK_WITNESS, ChecksumResolver, WitnessArtifact, WitnessCapturer

logger = logging.getLogger(__name__)


class JobStatus(str, enum.Enum):
    CREATED = "created"
    CAPTURED = "captured"
    CHECKSUMMED = "checksummed"
    PUBLISHED = "published"
    PLANNED = "planned"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    MALFORMED = "malformed"
    FAILED = "failed"


@dataclass
class BlockJob:
    """State of the single in-flight block. Mutated as stages complete."""

    block_number: int
    witness_name: Optional[str] = None
    witness_checksum: Optional[str] = None
    witness_url: Optional[str] = None
    descriptor: Optional[TaskDescriptor] = None
    tx_hash: Optional[str] = None
    verification: Optional[VerificationResult] = None
    result_path: Optional[Path] = None
    status: JobStatus = JobStatus.CREATED
    failed_stage: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def witness(self) -> WitnessArtifact:
        if not (self.witness_checksum and self.witness_name and self.witness_url):
            raise ValueError(f"block {self.block_number}: witness is not published yet")
        return WitnessArtifact(checksum=self.witness_checksum, name=self.witness_name, url=self.witness_url)

    @property
    def payload(self) -> Optional[str]:
        return self.verification.payload if self.verification else None

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at


class BlockJobOrchestrator:
    """capture → checksum → publish → plan → submit → poll → persist.

    Any stage failure aborts the job; nothing is retried here except the
    pending polls inside the poller.
    """

    def __init__(
        self,
        config: TaskerConfig,
        *,
        runner: Optional[CommandRunner] = None,
        publisher: Optional[ArtifactPublisher] = None,
        network: Optional[ExecutionNetwork] = None,
        poller: Optional[VerificationPoller] = None,
        mock_witness: bool = False,
    ) -> None:
        self.config = config
        runner = runner or CommandRunner()
        self.capturer = WitnessCapturer(config, runner)
        self.checksums = ChecksumResolver(config, runner)
        self.publisher = publisher or ArtifactPublisher.from_config(config.storage)
        self.network = network or ExecutionNetwork(config, runner)
        self.poller = poller or VerificationPoller(self.network, config.poll)
        self.mock_witness = mock_witness

    def result_path(self, block_number: int) -> Path:
        return self.config.results_root / f"result-{block_number}"

    def run(self, block_number: int, cancel: Optional[threading.Event] = None) -> BlockJob:
        if block_number < 0:
            raise ValueError(f"block number must be non-negative, got {block_number}")
        job = BlockJob(block_number)
        logger.info("block %d: starting", block_number)

        if self.mock_witness:
            logger.warning("block %d: using mock witness %s", block_number, MOCK_WITNESS.name)
            job.witness_name = MOCK_WITNESS.name
            job.witness_checksum = MOCK_WITNESS.checksum
            job.witness_url = MOCK_WITNESS.url
            job.status = JobStatus.PUBLISHED
        else:
            with self._stage(job, "capture"):
                path = self.capturer.capture(block_number)
                job.witness_name = path.name
                job.status = JobStatus.CAPTURED

            with self._stage(job, "checksum"):
                job.witness_checksum = self.checksums.resolve(block_number)
                job.status = JobStatus.CHECKSUMMED

            with self._stage(job, "publish"):
                job.witness_url = self.publisher.publish(path, job.witness_name)
                job.status = JobStatus.PUBLISHED

        with self._stage(job, "plan"):
            job.descriptor = build_task_descriptor(
                job.witness,
                prover_hash=self._required(self.config.prover_hash, "programs.prover_hash (PROVER_HASH)"),
                verifier_hash=self._required(self.config.verifier_hash, "programs.verifier_hash (VERIFIER_HASH)"),
                params_path=self._required(self.config.task_params_path, "witness.params_path (PARAMS_PATH)"),
            )
            job.status = JobStatus.PLANNED

        with self._stage(job, "submit"):
            job.tx_hash = self.network.submit(job.descriptor)
            job.status = JobStatus.SUBMITTED

        with self._stage(job, "poll"):
            job.verification = self.poller.wait(job.tx_hash, cancel=cancel)
            if job.verification.verdict is Verdict.MALFORMED:
                job.status = JobStatus.MALFORMED
                raise MalformedVerification(
                    job.verification.payload,
                    tx_hash=job.tx_hash,
                    leaf_hash=job.verification.leaf_hash,
                    block_number=block_number,
                )

        with self._stage(job, "persist"):
            job.result_path = self._write_result(block_number, job.verification.payload)

        job.status = JobStatus.VERIFIED
        logger.info(
            "block %d: verified in %ds, result at %s",
            block_number, int(job.elapsed_seconds), job.result_path,
        )
        return job

    @staticmethod
    def _required(value: Optional[str], name: str) -> str:
        if not value:
            raise ConfigError(f"{name} is not configured")
        return value

    def _write_result(self, block_number: int, payload: str) -> Path:
        path = self.result_path(block_number)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(path)
        except (OSError, UnicodeError) as exc:
            raise PipelineError(f"could not write result file {path}: {exc}") from exc
        return path

    @contextlib.contextmanager
    def _stage(self, job: BlockJob, stage: str) -> Iterator[None]:
        logger.debug("block %d: stage %s", job.block_number, stage)
        try:
            yield
        except PipelineError as exc:
            if exc.block_number is None:
                exc.block_number = job.block_number
            if exc.stage is None:
                exc.stage = stage
            if job.status is not JobStatus.MALFORMED:
                job.status = JobStatus.FAILED
            job.failed_stage = stage
            logger.error("block %d: %s failed: %s", job.block_number, stage, exc.message)
            raise
        except ConfigError:
            job.status = JobStatus.FAILED
            job.failed_stage = stage
            raise
