"""Builders shared by CLI commands. Tests patch these."""
from __future__ import annotations

from ..chain import ChainClient
from ..config import TaskerConfig
from ..network import ExecutionNetwork
from ..orchestrator import BlockJobOrchestrator
from ..runner import CommandRunner
from ..storage import ArtifactPublisher


def build_orchestrator(config: TaskerConfig, *, mock_witness: bool = False) -> BlockJobOrchestrator:
    return BlockJobOrchestrator(config, runner=CommandRunner(), mock_witness=mock_witness)


def build_chain(config: TaskerConfig) -> ChainClient:
    return ChainClient(config.rpc_url)


def build_network(config: TaskerConfig) -> ExecutionNetwork:
    return ExecutionNetwork(config, CommandRunner())


def build_publisher(config: TaskerConfig) -> ArtifactPublisher:
    return ArtifactPublisher.from_config(config.storage)
