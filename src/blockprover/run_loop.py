"""Feed block numbers to the orchestrator, one job at a time."""
from __future__ import annotations

import enum
import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .chain import ChainClient
from .errors import ConfigError, MalformedVerification
from .orchestrator import BlockJobOrchestrator

logger = logging.getLogger(__name__)


class RunMode(str, enum.Enum):
    FIXED = "fixed"
    LATEST = "latest"
    FOLLOW = "follow"


@dataclass
class RunSummary:
    verified: list[int] = field(default_factory=list)
    malformed: list[int] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.verified) + len(self.malformed)


class RunLoop:
    """The only holder of cross-block state: the next block number.

    ``fixed`` runs ``start_block`` once, ``latest`` runs the chain head once,
    ``follow`` runs ``start_block``, ``start_block + 1``, ... until stopped.
    """

    def __init__(
        self,
        orchestrator: BlockJobOrchestrator,
        *,
        mode: RunMode = RunMode.FIXED,
        start_block: Optional[int] = None,
        chain: Optional[ChainClient] = None,
        halt_on_malformed: bool = True,
        max_blocks: Optional[int] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.mode = RunMode(mode)
        self.start_block = start_block
        self.chain = chain
        self.halt_on_malformed = halt_on_malformed
        self.max_blocks = max_blocks

    def block_numbers(self) -> Iterator[int]:
        if self.mode is RunMode.LATEST:
            if self.chain is None:
                raise ConfigError("latest mode needs a chain RPC endpoint")
            yield self.chain.latest_block_number()
            return
        if self.start_block is None:
            raise ConfigError(f"{self.mode.value} mode needs a starting block number")
        if self.mode is RunMode.FIXED:
            yield self.start_block
            return
        yield from itertools.count(self.start_block)

    def run(self, cancel: Optional[threading.Event] = None) -> RunSummary:
        summary = RunSummary()
        for block_number in self.block_numbers():
            if cancel is not None and cancel.is_set():
                logger.info("stop requested before block %d", block_number)
                break
            if self.max_blocks is not None and summary.processed >= self.max_blocks:
                break
            try:
                self.orchestrator.run(block_number, cancel=cancel)
            except MalformedVerification as exc:
                summary.malformed.append(block_number)
                if self.halt_on_malformed:
                    raise
                logger.warning("block %d: malformed verification, continuing: %s", block_number, exc.payload[:200])
                continue
            summary.verified.append(block_number)
        return summary
