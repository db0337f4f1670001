"""TOML-based configuration.

Loads ~/.blockdigest/defaults.toml (global) and blockdigest.toml (project),
deep-merges them, and resolves the result into a frozen ``Settings`` tree.

Example blockdigest.toml::

    [store]
    block_size = "64MB"

    [worker]
    executor = "process"
    concurrency = 2

    [coordinator]
    collect_timeout = 600

    [logging]
    level = "DEBUG"
    file = ".blockdigest/coordinator.log"
"""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Final, Literal

from blockdigest.core.exceptions import ConfigurationError
from blockdigest.observability.logging import LogConfig

type RawConfig = dict[str, Any]
type ExecutorKind = Literal["thread", "process"]

GLOBAL_CONFIG_PATH = Path.home() / ".blockdigest" / "defaults.toml"
PROJECT_CONFIG_NAME = "blockdigest.toml"

DEFAULT_BLOCK_SIZE: Final = 128 * 1024 * 1024
DEFAULT_BUFFER_SIZE: Final = 64 * 1024
DEFAULT_POOL_NAME: Final = "blockdigest"
DEFAULT_CLUSTER_PORT: Final = 25520

_SIZE_UNITS: Final[dict[str, int]] = {
    "B": 1,
    "K": 1024,
    "KB": 1024,
    "M": 1024 ** 2,
    "MB": 1024 ** 2,
    "G": 1024 ** 3,
    "GB": 1024 ** 3,
    "T": 1024 ** 4,
    "TB": 1024 ** 4,
}

_SIZE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]B?|B)?\s*$",
    re.IGNORECASE,
)


def parse_size(size: str | int) -> int:
    """Parse a byte size such as ``"128MB"`` or ``4096``.

    Raises:
        ConfigurationError: If the format is invalid or the size is not positive.

    Examples:
        >>> parse_size("64KB")
        65536
        >>> parse_size(1024)
        1024
    """
    if isinstance(size, bool):
        raise ConfigurationError(f"Invalid size: {size!r}")

    if isinstance(size, int):
        value = size
    else:
        match = _SIZE_PATTERN.match(size)
        if not match:
            raise ConfigurationError(
                f"Invalid size: {size!r}. "
                "Expected format: NUMBER[UNIT] (e.g., '128MB', '64KB', '1024')"
            )
        unit = (match.group(2) or "B").upper()
        value = int(float(match.group(1)) * _SIZE_UNITS[unit])

    if value <= 0:
        raise ConfigurationError(f"Size must be positive, got {size!r}")
    return value


@dataclass(frozen=True, slots=True)
class StoreSettings:
    """Where input files live and how they are chunked into physical blocks."""

    root: str | None = None
    block_size: int = DEFAULT_BLOCK_SIZE
    replication: int = 1


@dataclass(frozen=True, slots=True)
class WorkerSettings:
    """How digest workers execute tasks.

    Attributes:
        executor: "thread" runs digests on a thread pool, "process" on a loky
            process pool.
        concurrency: Concurrent digests per worker.
        buffer_size: Read buffer used when streaming a block through the hash.
    """

    executor: ExecutorKind = "thread"
    concurrency: int = 1
    buffer_size: int = DEFAULT_BUFFER_SIZE


@dataclass(frozen=True, slots=True)
class CoordinatorSettings:
    """Coordinator behavior.

    Attributes:
        pool_name: Logical pool the fabric joins.
        collect_timeout: Seconds to wait for all results. None waits forever.
        shutdown_timeout: Seconds granted to the rendezvous service to stop.
    """

    pool_name: str = DEFAULT_POOL_NAME
    collect_timeout: float | None = None
    shutdown_timeout: float = 10.0


@dataclass(frozen=True, slots=True)
class ClusterSettings:
    """Cluster fabric settings. Disabled means everything runs in-process."""

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = DEFAULT_CLUSTER_PORT
    discovery_timeout: float = 120.0


@dataclass(frozen=True, slots=True)
class SubmitSettings:
    """Submitter behavior.

    ``strict_exit`` makes an uncaught failure exit with status 1. The default
    keeps the historical status 0 that launch tooling may rely on.
    """

    strict_exit: bool = False


@dataclass(frozen=True, slots=True)
class Settings:
    store: StoreSettings = field(default_factory=StoreSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    coordinator: CoordinatorSettings = field(default_factory=CoordinatorSettings)
    cluster: ClusterSettings = field(default_factory=ClusterSettings)
    logging: LogConfig = field(default_factory=LogConfig)
    submit: SubmitSettings = field(default_factory=SubmitSettings)


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_cfg = _read_toml((project_dir or Path.cwd()) / PROJECT_CONFIG_NAME)
    return _deep_merge(global_cfg, project_cfg)


def _build_section[T](cls: type[T], name: str, raw: RawConfig) -> T:
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in [{name}]: {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(known))}"
        )
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid [{name}] section: {e}") from e


def _build_store(raw: RawConfig) -> StoreSettings:
    raw = dict(raw)
    if "block_size" in raw:
        raw["block_size"] = parse_size(raw["block_size"])
    settings = _build_section(StoreSettings, "store", raw)
    if settings.replication < 1:
        raise ConfigurationError("[store] replication must be at least 1")
    return settings


def _build_worker(raw: RawConfig) -> WorkerSettings:
    raw = dict(raw)
    if "buffer_size" in raw:
        raw["buffer_size"] = parse_size(raw["buffer_size"])
    settings = _build_section(WorkerSettings, "worker", raw)
    if settings.executor not in ("thread", "process"):
        raise ConfigurationError(
            f"[worker] executor must be 'thread' or 'process', got {settings.executor!r}"
        )
    if settings.concurrency < 1:
        raise ConfigurationError("[worker] concurrency must be at least 1")
    return settings


def _build_coordinator(raw: RawConfig) -> CoordinatorSettings:
    raw = dict(raw)
    # 0 disables the timeout, TOML has no null
    if raw.get("collect_timeout") in (0, 0.0):
        raw["collect_timeout"] = None
    return _build_section(CoordinatorSettings, "coordinator", raw)


def resolve_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> Settings:
    config = load_config(project_dir=project_dir, global_path=global_path)

    sections = {
        "store", "worker", "coordinator", "cluster", "logging", "submit",
    }
    unknown = set(config) - sections
    if unknown:
        raise ConfigurationError(
            f"Unknown section(s): {', '.join(sorted(unknown))}. "
            f"Valid: {', '.join(sorted(sections))}"
        )

    return Settings(
        store=_build_store(config.get("store", {})),
        worker=_build_worker(config.get("worker", {})),
        coordinator=_build_coordinator(config.get("coordinator", {})),
        cluster=_build_section(ClusterSettings, "cluster", config.get("cluster", {})),
        logging=_build_section(LogConfig, "logging", config.get("logging", {})),
        submit=_build_section(SubmitSettings, "submit", config.get("submit", {})),
    )
