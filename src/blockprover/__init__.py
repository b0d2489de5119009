"""blockprover - drive block witnesses through remote proving and verification.

A block number goes in; a verification payload for that block comes out:

    capture witness → checksum → publish → build task plan → submit
        → poll until terminal → write results/result-<block>

Quick Start:
    from blockprover import BlockJobOrchestrator, load_config

    orchestrator = BlockJobOrchestrator(load_config())
    job = orchestrator.run(57437)
    print(job.result_path)
"""
from __future__ import annotations

__version__ = "0.1.0"

from blockprover.config import PollPolicy, StorageConfig, TaskerConfig, load_config
from blockprover.errors import (
    BlockProverError,
    ChecksumParseError,
    ExternalToolFailure,
    LeafNotFoundError,
    MalformedVerification,
    PipelineError,
    StorageUploadError,
    SubmissionError,
)
from blockprover.orchestrator import BlockJob, BlockJobOrchestrator, JobStatus
from blockprover.poller import Verdict, VerificationPoller, VerificationResult
from blockprover.run_loop import RunLoop, RunMode, RunSummary
from blockprover.tasks import PROOF_PATH, TaskDescriptor, build_task_descriptor

__all__ = [
    "__version__",
    # Configuration
    "TaskerConfig",
    "StorageConfig",
    "PollPolicy",
    "load_config",
    # Pipeline
    "BlockJob",
    "BlockJobOrchestrator",
    "JobStatus",
    "RunLoop",
    "RunMode",
    "RunSummary",
    "VerificationPoller",
    "VerificationResult",
    "Verdict",
    "TaskDescriptor",
    "build_task_descriptor",
    "PROOF_PATH",
    # Errors
    "BlockProverError",
    "PipelineError",
    "ExternalToolFailure",
    "ChecksumParseError",
    "SubmissionError",
    "LeafNotFoundError",
    "StorageUploadError",
    "MalformedVerification",
]
