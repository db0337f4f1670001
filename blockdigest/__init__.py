"""blockdigest - SHA-1 digest of every block of a large file, computed in parallel.

Example:

    import asyncio
    from blockdigest import Coordinator, LocalBlockStore, LocalFabric, parse_size

    store = LocalBlockStore(block_size=parse_size("64MB"))
    coordinator = Coordinator(LocalFabric(store, workers=8), store)
    results = asyncio.run(coordinator.run("data/input.bin"))
"""

from loguru import logger

# Configuration
from blockdigest.config import Settings, parse_size, resolve_settings

# Coordinator
from blockdigest.coordinator import Coordinator, CoordinatorState

# Exceptions
from blockdigest.core.exceptions import (
    BlockDigestError,
    CollectionTimeoutError,
    ConfigurationError,
    FabricError,
    InputNotFoundError,
    InvalidStateError,
    PartitionError,
)

# Digest
from blockdigest.digest import DigestTask, execute

# Execution fabric
from blockdigest.fabric import ClusterFabric, Fabric, FabricConfig, LocalFabric

# Launcher
from blockdigest.launcher import Launcher, LocalLauncher

# Logging
from blockdigest.observability.logging import LogConfig, setup_logging, teardown_logging

# Partitioning
from blockdigest.partition import Block, partition

# Results
from blockdigest.results import DigestFailed, DigestResult, DigestSucceeded, from_hex, render, to_hex

# Block store
from blockdigest.store import BlockLocation, BlockStore, FileStatus, LocalBlockStore

__version__ = "0.1.0"

# Silent as a library until an entry point calls setup_logging
logger.disable("blockdigest")

__all__ = [
    # Config
    "Settings",
    "parse_size",
    "resolve_settings",
    # Coordinator
    "Coordinator",
    "CoordinatorState",
    # Exceptions
    "BlockDigestError",
    "CollectionTimeoutError",
    "ConfigurationError",
    "FabricError",
    "InputNotFoundError",
    "InvalidStateError",
    "PartitionError",
    # Digest
    "DigestTask",
    "execute",
    # Fabric
    "ClusterFabric",
    "Fabric",
    "FabricConfig",
    "LocalFabric",
    # Launcher
    "Launcher",
    "LocalLauncher",
    # Logging
    "LogConfig",
    "setup_logging",
    "teardown_logging",
    # Partitioning
    "Block",
    "partition",
    # Results
    "DigestFailed",
    "DigestResult",
    "DigestSucceeded",
    "from_hex",
    "render",
    "to_hex",
    # Store
    "BlockLocation",
    "BlockStore",
    "FileStatus",
    "LocalBlockStore",
]
