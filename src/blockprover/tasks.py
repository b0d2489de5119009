"""Two-stage task plan submitted to the execution network.

The prover task writes its proof to ``PROOF_PATH`` inside the sandbox. The
verifier task reads it back through an ``OutputInput`` that names the prover
program and the same path, which is how the network learns that the verifier
must wait for the prover. Both sides use ``PROOF_PATH``; it is never spelled
out twice.

Wire form (what ``exec --tasks`` accepts)::

    [{"program": "<hash>",
      "cmd_args": [{"name": "-p", "value": "/workspace/proof.json"}],
      "inputs": [{"Input": {"local_path": "<checksum>", "vm_path": "...", "file_url": "..."}},
                 {"Output": {"source_program": "<hash>", "file_name": "..."}}]}, ...]
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from .witness import WitnessArtifact

WORKSPACE_DIR = "/workspace"
PROOF_PATH = f"{WORKSPACE_DIR}/proof.json"

PARAMS_FLAG = "-k"
PROOF_FLAG = "-p"
WITNESS_FLAG = "-w"


@dataclass(frozen=True)
class CmdArg:
    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class LocalInput:
    """File fetched from ``file_url`` into the sandbox, identified by checksum."""

    checksum: str
    vm_path: str
    file_url: str

    def to_dict(self) -> dict[str, Any]:
        return {"Input": {"local_path": self.checksum, "vm_path": self.vm_path, "file_url": self.file_url}}


@dataclass(frozen=True)
class OutputInput:
    """File produced by another task in the same plan."""

    source_program: str
    file_name: str

    def to_dict(self) -> dict[str, Any]:
        return {"Output": {"source_program": self.source_program, "file_name": self.file_name}}


InputBinding = Union[LocalInput, OutputInput]


def _binding_from_dict(data: dict[str, Any]) -> InputBinding:
    if "Input" in data:
        inner = data["Input"]
        return LocalInput(checksum=inner["local_path"], vm_path=inner["vm_path"], file_url=inner["file_url"])
    if "Output" in data:
        inner = data["Output"]
        return OutputInput(source_program=inner["source_program"], file_name=inner["file_name"])
    raise ValueError(f"unknown input binding: {sorted(data)}")


@dataclass(frozen=True)
class Task:
    program: str
    cmd_args: tuple[CmdArg, ...] = ()
    inputs: tuple[InputBinding, ...] = ()

    def arg(self, name: str) -> Optional[str]:
        for item in self.cmd_args:
            if item.name == name:
                return item.value
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "program": self.program,
            "cmd_args": [a.to_dict() for a in self.cmd_args],
            "inputs": [i.to_dict() for i in self.inputs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            program=data["program"],
            cmd_args=tuple(CmdArg(name=a["name"], value=a["value"]) for a in data.get("cmd_args", [])),
            inputs=tuple(_binding_from_dict(i) for i in data.get("inputs", [])),
        )


@dataclass(frozen=True)
class TaskDescriptor:
    prover: Task
    verifier: Task

    @property
    def tasks(self) -> tuple[Task, Task]:
        return (self.prover, self.verifier)

    def validate(self) -> None:
        """Check the verifier reads exactly what the prover was told to write."""
        proof_path = self.prover.arg(PROOF_FLAG)
        if proof_path is None:
            raise ValueError("prover task declares no proof output path")
        edges = [b for b in self.verifier.inputs if isinstance(b, OutputInput)]
        if not edges:
            raise ValueError("verifier task has no output binding from the prover")
        for edge in edges:
            if edge.source_program != self.prover.program:
                raise ValueError(
                    f"verifier reads from program {edge.source_program}, prover is {self.prover.program}"
                )
            if edge.file_name != proof_path:
                raise ValueError(f"verifier reads {edge.file_name}, prover writes {proof_path}")

    def to_json(self) -> str:
        return json.dumps([t.to_dict() for t in self.tasks], separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "TaskDescriptor":
        data = json.loads(text)
        if not isinstance(data, list) or len(data) != 2:
            raise ValueError("task plan must be a JSON array of exactly two tasks")
        descriptor = cls(prover=Task.from_dict(data[0]), verifier=Task.from_dict(data[1]))
        descriptor.validate()
        return descriptor


def build_task_descriptor(
    witness: WitnessArtifact,
    *,
    prover_hash: str,
    verifier_hash: str,
    params_path: str,
) -> TaskDescriptor:
    """Build the prover → verifier plan for one published witness. No I/O."""
    witness_vm_path = f"{WORKSPACE_DIR}/{witness.name}"
    prover = Task(
        program=prover_hash,
        cmd_args=(
            CmdArg(PARAMS_FLAG, params_path),
            CmdArg(PROOF_FLAG, PROOF_PATH),
            CmdArg(WITNESS_FLAG, witness_vm_path),
        ),
        inputs=(LocalInput(checksum=witness.checksum, vm_path=witness_vm_path, file_url=witness.url),),
    )
    verifier = Task(
        program=verifier_hash,
        cmd_args=(CmdArg(PROOF_FLAG, PROOF_PATH),),
        inputs=(OutputInput(source_program=prover_hash, file_name=PROOF_PATH),),
    )
    descriptor = TaskDescriptor(prover=prover, verifier=verifier)
    descriptor.validate()
    return descriptor
