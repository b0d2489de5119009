"""
blockprover - Configuration

Loads config from:
  1. Defaults
  2. Global config (CLI --config or ~/.blockprover/config.json)
  3. Workspace override (<workspace>/.blockprover/config.json)
  4. Environment variables

The merged dict is frozen into a ``TaskerConfig`` once and handed to every
component explicitly. Nothing else in the package reads the environment.
"""
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "chain": {
        "rpc_url": None,
    },
    "witness": {
        "prover_cmd": "prover_cmd",
        "params_path": None,
        # Data source handed to the capture program; falls back to chain.rpc_url.
        "rpc_url": None,
        # Parameter path as seen from inside the remote sandbox; falls back to params_path.
        "sandbox_params_path": None,
    },
    "network": {
        "cli": "gevulot-cli",
        "rpc_url": "http://localhost:9944",
        "log_filter": "trace,gevulot=trace",
    },
    "storage": {
        "endpoint_url": "https://eu-central-1.linodeobjects.com",
        "bucket": "gevulot",
        "region": "eu-central-1",
        "access_key": None,
        "secret_key": None,
        "acl": "public-read",
        "public_base_url": None,
    },
    "programs": {
        "prover_hash": None,
        "verifier_hash": None,
    },
    "poll": {
        "interval_seconds": 10.0,
        "backoff_factor": 1.0,
        "max_interval_seconds": 300.0,
        "max_wait_seconds": None,
    },
    "paths": {
        "witness_dir": "witnesses",
        "results_dir": "results",
    },
    "halt_on_malformed": True,
    "default_start_block": 57437,
}


@dataclass(frozen=True)
class StorageConfig:
    endpoint_url: Optional[str] = None
    bucket: str = "gevulot"
    region: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    acl: str = "public-read"
    public_base_url: Optional[str] = None


@dataclass(frozen=True)
class PollPolicy:
    """Delay schedule for the verification poll.

    The default is the fixed 10 second delay with no upper bound on total
    wait. ``backoff_factor`` > 1 turns it into an exponential schedule capped
    at ``max_interval_seconds``.
    """

    interval_seconds: float = 10.0
    backoff_factor: float = 1.0
    max_interval_seconds: float = 300.0
    max_wait_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ConfigError(f"poll interval must be greater than 0, got {self.interval_seconds:g}")
        if self.backoff_factor < 1:
            raise ConfigError(f"poll backoff factor must be at least 1, got {self.backoff_factor:g}")

    def next_delay(self, delay: float) -> float:
        return min(delay * self.backoff_factor, max(self.max_interval_seconds, self.interval_seconds))


@dataclass(frozen=True)
class TaskerConfig:
    rpc_url: Optional[str] = None
    prover_cmd: str = "prover_cmd"
    params_path: Optional[str] = None
    witness_rpc_url: Optional[str] = None
    sandbox_params_path: Optional[str] = None
    network_cli: str = "gevulot-cli"
    network_rpc_url: str = "http://localhost:9944"
    network_log_filter: Optional[str] = "trace,gevulot=trace"
    prover_hash: Optional[str] = None
    verifier_hash: Optional[str] = None
    storage: StorageConfig = field(default_factory=StorageConfig)
    poll: PollPolicy = field(default_factory=PollPolicy)
    workdir: Path = field(default_factory=Path.cwd)
    witness_dir: str = "witnesses"
    results_dir: str = "results"
    halt_on_malformed: bool = True
    default_start_block: int = 57437

    @property
    def witness_root(self) -> Path:
        return self.workdir / self.witness_dir

    @property
    def results_root(self) -> Path:
        return self.workdir / self.results_dir

    @property
    def capture_rpc_url(self) -> Optional[str]:
        return self.witness_rpc_url or self.rpc_url

    @property
    def task_params_path(self) -> Optional[str]:
        return self.sandbox_params_path or self.params_path

    @classmethod
    def from_dict(cls, data: dict[str, Any], workdir: Optional[Path] = None) -> "TaskerConfig":
        chain = data.get("chain", {})
        witness = data.get("witness", {})
        network = data.get("network", {})
        storage = data.get("storage", {})
        programs = data.get("programs", {})
        poll = data.get("poll", {})
        paths = data.get("paths", {})
        max_wait = poll.get("max_wait_seconds")
        return cls(
            rpc_url=chain.get("rpc_url"),
            prover_cmd=witness.get("prover_cmd") or "prover_cmd",
            params_path=witness.get("params_path"),
            witness_rpc_url=witness.get("rpc_url"),
            sandbox_params_path=witness.get("sandbox_params_path"),
            network_cli=network.get("cli") or "gevulot-cli",
            network_rpc_url=network.get("rpc_url") or "http://localhost:9944",
            network_log_filter=network.get("log_filter"),
            prover_hash=programs.get("prover_hash"),
            verifier_hash=programs.get("verifier_hash"),
            storage=StorageConfig(
                endpoint_url=storage.get("endpoint_url"),
                bucket=storage.get("bucket") or "gevulot",
                region=storage.get("region"),
                access_key=storage.get("access_key"),
                secret_key=storage.get("secret_key"),
                acl=storage.get("acl") or "public-read",
                public_base_url=storage.get("public_base_url"),
            ),
            poll=PollPolicy(
                interval_seconds=float(poll.get("interval_seconds", 10.0)),
                backoff_factor=float(poll.get("backoff_factor", 1.0)),
                max_interval_seconds=float(poll.get("max_interval_seconds", 300.0)),
                max_wait_seconds=float(max_wait) if max_wait is not None else None,
            ),
            workdir=Path(workdir) if workdir is not None else Path.cwd(),
            witness_dir=paths.get("witness_dir") or "witnesses",
            results_dir=paths.get("results_dir") or "results",
            halt_on_malformed=bool(data.get("halt_on_malformed", True)),
            default_start_block=int(data.get("default_start_block", 57437)),
        )


def load_config(config_path: Optional[Path] = None, workspace: Optional[Path] = None) -> TaskerConfig:
    """Load the tasker config.

    `config_path` (CLI --config) is treated as the global user config layer.
    If absent, ~/.blockprover/config.json is used as the global layer.

    If `workspace` is provided, <workspace>/.blockprover/config.json is loaded
    as an override on top of the global layer, and relative witness/result
    directories are resolved against it.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    loaded_files: list[Path] = []

    # Tests must not depend on a real ~/.blockprover/config.json existing.
    is_pytest = bool(os.environ.get("PYTEST_CURRENT_TEST"))

    home = Path(os.environ["BLOCKPROVER_HOME"]) if os.environ.get("BLOCKPROVER_HOME") else None
    default_global_path = (home or (Path.home() / ".blockprover")) / "config.json"

    global_path = config_path if config_path else default_global_path
    if is_pytest and config_path is None:
        global_path = None
    if global_path is not None and global_path.exists():
        global_cfg = _read_json(global_path)
        if global_cfg:
            config = _merge(config, global_cfg)
            loaded_files.append(global_path)

    if workspace:
        ws_config_path = Path(workspace) / ".blockprover" / "config.json"
        if ws_config_path.exists():
            ws_cfg = _read_json(ws_config_path)
            if ws_cfg:
                config = _merge(config, ws_cfg)
                loaded_files.append(ws_config_path)

    if loaded_files:
        for path in loaded_files:
            logger.info("[config] Loaded from %s", path)
    else:
        logger.info("[config] Using defaults and environment (no config file found)")

    _apply_env_overrides(config)
    for path in loaded_files:
        _warn_on_plaintext_secrets(path)
    return TaskerConfig.from_dict(config, workdir=Path(workspace) if workspace else None)


def _read_json(path: Path) -> dict:
    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("[config] Could not read %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _merge(base: dict, override: dict) -> dict:
    """Deep merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


_STRING_OVERRIDES = [
    (("chain", "rpc_url"), ("BLOCKPROVER_RPC_URL", "KATLA_ENDPOINT")),
    (("witness", "rpc_url"), ("BLOCKPROVER_WITNESS_RPC_URL",)),
    (("witness", "prover_cmd"), ("BLOCKPROVER_PROVER_CMD", "PROVER_CMD_PATH")),
    (("witness", "params_path"), ("BLOCKPROVER_PARAMS_PATH", "PARAMS_PATH")),
    (("witness", "sandbox_params_path"), ("BLOCKPROVER_SANDBOX_PARAMS_PATH",)),
    (("network", "cli"), ("BLOCKPROVER_NETWORK_CLI", "GEVULOT_CLI")),
    (("network", "rpc_url"), ("BLOCKPROVER_NETWORK_URL", "GEVULOT_JSONURL")),
    (("storage", "endpoint_url"), ("BLOCKPROVER_S3_ENDPOINT",)),
    (("storage", "bucket"), ("BLOCKPROVER_S3_BUCKET",)),
    (("storage", "region"), ("BLOCKPROVER_S3_REGION",)),
    (("storage", "access_key"), ("BLOCKPROVER_S3_ACCESS_KEY", "AWS_ACCESS_KEY")),
    (("storage", "secret_key"), ("BLOCKPROVER_S3_SECRET_KEY", "AWS_SECRET_KEY")),
    (("storage", "public_base_url"), ("BLOCKPROVER_S3_PUBLIC_URL",)),
    (("programs", "prover_hash"), ("BLOCKPROVER_PROVER_HASH", "PROVER_HASH")),
    (("programs", "verifier_hash"), ("BLOCKPROVER_VERIFIER_HASH", "VERIFIER_HASH")),
]

_FLOAT_OVERRIDES = [
    (("poll", "interval_seconds"), "BLOCKPROVER_POLL_INTERVAL"),
    (("poll", "backoff_factor"), "BLOCKPROVER_POLL_BACKOFF"),
    (("poll", "max_interval_seconds"), "BLOCKPROVER_POLL_MAX_INTERVAL"),
    (("poll", "max_wait_seconds"), "BLOCKPROVER_POLL_MAX_WAIT"),
]


def _apply_env_overrides(config: dict) -> None:
    """Apply explicit env var overrides after file/default loading."""
    for (section, key), names in _STRING_OVERRIDES:
        value = _first_env(*names)
        if value:
            config.setdefault(section, {})[key] = value.strip()

    for (section, key), name in _FLOAT_OVERRIDES:
        raw = os.environ.get(name)
        if not raw:
            continue
        try:
            config.setdefault(section, {})[key] = float(raw)
        except ValueError:
            logger.warning("[config] invalid %s=%r", name, raw)

    halt = os.environ.get("BLOCKPROVER_HALT_ON_MALFORMED")
    if halt is not None:
        config["halt_on_malformed"] = _to_bool(halt)

    start = os.environ.get("BLOCKPROVER_START_BLOCK")
    if start:
        try:
            config["default_start_block"] = int(start)
        except ValueError:
            logger.warning("[config] invalid BLOCKPROVER_START_BLOCK=%r", start)


def _warn_on_plaintext_secrets(source_path: Path) -> None:
    """Warn when storage credentials came from a config file."""
    raw = _read_json(source_path)
    storage = raw.get("storage", {}) if isinstance(raw.get("storage"), dict) else {}
    if storage.get("secret_key"):
        logger.warning(
            "[config] storage secret key is stored in plaintext in %s. "
            "Prefer BLOCKPROVER_S3_SECRET_KEY.",
            source_path,
        )


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}
