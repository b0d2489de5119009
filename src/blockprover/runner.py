"""Command runner for the opaque external tools, plus the label parser.

All external tools (the witness-capture program and the execution-network
CLI) print free-form text. The only contract relied on is that a value of
interest appears on its own line after a fixed label, e.g. ``Tx hash:0xabc``
or ``Leaf: 0xdef``.
"""
from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .errors import ExternalToolFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandOutput:
    stdout: str
    stderr: str


class CommandRunner:
    """Run an external program and capture its output.

    Tests substitute any object with the same ``run`` signature.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None, cwd: Optional[str] = None) -> None:
        self.env = dict(env) if env else {}
        self.cwd = cwd

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandOutput:
        argv = [command, *args]
        merged_env = None
        if self.env or env:
            merged_env = {**os.environ, **self.env, **(env or {})}
        logger.debug("exec: %s", argv)
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                env=merged_env,
                cwd=self.cwd,
            )
        except OSError as exc:
            # Missing binary, permission denied, bad interpreter.
            raise ExternalToolFailure(argv, f"could not launch {command}: {exc}") from exc

        logger.debug("exit %s from %s", result.returncode, command)
        if result.returncode != 0:
            raise ExternalToolFailure(
                argv,
                f"{command} exited with status {result.returncode}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return CommandOutput(stdout=result.stdout, stderr=result.stderr)


def _label_pattern(label: str) -> re.Pattern[str]:
    return re.compile(rf"(?<={re.escape(label)}).*$", re.MULTILINE)


def extract(label: str, text: str) -> Optional[str]:
    """Return the stripped text following ``label`` on the first line that has it.

    Returns None when the label never appears with a non-empty value.
    """
    for match in _label_pattern(label).finditer(text):
        value = match.group(0).strip()
        if value:
            return value
    return None


def extract_all(label: str, text: str) -> list[str]:
    values = [m.group(0).strip() for m in _label_pattern(label).finditer(text)]
    return [v for v in values if v]

