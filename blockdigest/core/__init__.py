from blockdigest.core.exceptions import (
    BlockDigestError,
    CollectionTimeoutError,
    ConfigurationError,
    FabricError,
    InputNotFoundError,
    InvalidStateError,
    PartitionError,
)

__all__ = [
    "BlockDigestError",
    "CollectionTimeoutError",
    "ConfigurationError",
    "FabricError",
    "InputNotFoundError",
    "InvalidStateError",
    "PartitionError",
]
