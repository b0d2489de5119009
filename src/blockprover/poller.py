"""Poll the execution network until a submitted plan yields a verification.

    SUBMITTED --(no leaf)--> SUBMITTED            (pending, sleep, retry)
    SUBMITTED --(leaf)--> AWAITING_OUTPUT
    AWAITING_OUTPUT --(empty payload)--> pending
    AWAITING_OUTPUT --(payload starts with "{")--> VERIFIED
    AWAITING_OUTPUT --(anything else)--> MALFORMED

VERIFIED and MALFORMED are terminal. Only pending polls are retried.
"""
from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import PollPolicy
from .errors import PollCancelled, PollTimeout
from .network import ExecutionNetwork

logger = logging.getLogger(__name__)


class Verdict(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class VerificationResult:
    verdict: Verdict
    payload: str = ""
    leaf_hash: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.verdict is not Verdict.PENDING


def classify_payload(payload: str) -> Verdict:
    """Classify a decoded payload by its first character.

    Leading whitespace is skipped before looking at that character, so a
    payload of only whitespace is still pending and an indented JSON
    document is verified.
    """
    body = payload.lstrip()
    if not body:
        return Verdict.PENDING
    if body.startswith("{"):
        return Verdict.VERIFIED
    return Verdict.MALFORMED


class VerificationPoller:
    """Resolve a transaction to its terminal verification result.

    ``sleep`` and ``clock`` are injectable so tests never actually wait.
    """

    def __init__(
        self,
        network: ExecutionNetwork,
        policy: Optional[PollPolicy] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.network = network
        self.policy = policy or PollPolicy()
        self.sleep = sleep
        self.clock = clock

    def poll_once(self, tx_hash: str) -> VerificationResult:
        leaf = self.network.resolve_leaf(tx_hash)
        if leaf is None:
            return VerificationResult(Verdict.PENDING)
        payload = self.network.fetch_verification(leaf)
        return VerificationResult(classify_payload(payload), payload=payload, leaf_hash=leaf)

    def wait(self, tx_hash: str, cancel: Optional[threading.Event] = None) -> VerificationResult:
        """Poll until VERIFIED or MALFORMED.

        Unbounded unless the policy sets ``max_wait_seconds``. Setting
        ``cancel`` stops the wait with ``PollCancelled``.
        """
        start = self.clock()
        delay = self.policy.interval_seconds
        attempt = 0
        while True:
            attempt += 1
            result = self.poll_once(tx_hash)
            elapsed = self.clock() - start
            if result.is_terminal:
                logger.info(
                    "tx %s reached %s after %d polls (%ds)",
                    tx_hash, result.verdict.value, attempt, int(elapsed),
                )
                return result

            max_wait = self.policy.max_wait_seconds
            if max_wait is not None and elapsed + delay > max_wait:
                raise PollTimeout(
                    f"no verification for tx {tx_hash} after {int(elapsed)}s ({attempt} polls)",
                    stage="poll",
                )
            logger.info(
                "tx %s pending (poll %d, %ds elapsed), retrying in %.0fs",
                tx_hash, attempt, int(elapsed), delay,
            )
            if cancel is not None:
                if cancel.wait(delay):
                    raise PollCancelled(f"polling of tx {tx_hash} cancelled", stage="poll")
            else:
                self.sleep(delay)
            delay = self.policy.next_delay(delay)
