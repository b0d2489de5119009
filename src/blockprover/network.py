"""Client for the execution network's command-line tool."""
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Optional

from .config import TaskerConfig
from .errors import LeafNotFoundError, OutputParseError, SubmissionError
from .runner import CommandRunner, extract
from .tasks import TaskDescriptor

logger = logging.getLogger(__name__)

TX_HASH_LABEL = "Tx hash:"
LEAF_LABEL = "Leaf: "
VERIFICATION_KIND = "Verification"


def decode_verification_output(text: str) -> str:
    """Decode the ``Verification`` entries of a ``get-tx-execution-output`` dump.

    The tool prints a JSON array of ``{"kind": ..., "data": <base64>}``
    objects. Returns "" when nothing has been produced yet. The payload is
    decoded strictly; bytes that are not UTF-8 raise ``OutputParseError``.
    """
    stripped = text.strip()
    if not stripped:
        return ""
    try:
        entries = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise OutputParseError(f"execution output is not JSON: {exc}", output=text) from exc
    if entries is None:
        return ""
    if not isinstance(entries, list):
        raise OutputParseError("execution output is not a JSON array", output=text)

    chunks: list[bytes] = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("kind") != VERIFICATION_KIND:
            continue
        data = entry.get("data") or ""
        try:
            chunks.append(base64.b64decode(data, validate=True))
        except (binascii.Error, ValueError) as exc:
            raise OutputParseError(f"verification data is not base64: {exc}", output=text) from exc
    try:
        return b"".join(chunks).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise OutputParseError(f"verification payload is not UTF-8: {exc}", output=text) from exc


class ExecutionNetwork:
    def __init__(self, config: TaskerConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    def _run(self, *args: str, env: Optional[dict[str, str]] = None):
        return self.runner.run(
            self.config.network_cli,
            ["--jsonurl", self.config.network_rpc_url, *args],
            env=env,
        )

    def submit(self, descriptor: TaskDescriptor) -> str:
        """Submit the plan with ``exec --tasks`` and return the transaction hash."""
        payload = descriptor.to_json()
        logger.debug("task plan: %s", payload)
        env = {"RUST_LOG": self.config.network_log_filter} if self.config.network_log_filter else None
        out = self._run("exec", "--tasks", payload, env=env)
        tx_hash = extract(TX_HASH_LABEL, out.stdout)
        if not tx_hash:
            raise SubmissionError("no transaction hash in exec output", output=out.stdout + out.stderr)
        logger.info("submitted task plan, tx %s", tx_hash)
        return tx_hash

    def resolve_leaf(self, tx_hash: str) -> Optional[str]:
        """Return the leaf transaction of ``tx_hash``'s tree, or None if not there yet."""
        out = self._run("print-tx-tree", "--hash", tx_hash)
        return extract(LEAF_LABEL, out.stdout)

    def require_leaf(self, tx_hash: str) -> str:
        leaf = self.resolve_leaf(tx_hash)
        if leaf is None:
            raise LeafNotFoundError(f"transaction tree for {tx_hash} has no leaf yet")
        return leaf

    def fetch_verification(self, leaf_hash: str) -> str:
        out = self._run("get-tx-execution-output", "--hash", leaf_hash)
        return decode_verification_output(out.stdout)
