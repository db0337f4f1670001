"""Exception hierarchy for blockdigest.

All blockdigest-specific exceptions inherit from BlockDigestError, so callers
can catch every library failure with a single except clause. Per-block digest
failures are never raised: they travel as ``DigestFailed`` results.
"""

from __future__ import annotations


class BlockDigestError(Exception):
    """Base exception for all blockdigest errors."""


class PartitionError(BlockDigestError):
    """Raised when a file cannot be split into blocks. Fatal to the batch."""


class InputNotFoundError(PartitionError):
    """Raised when the input file does not exist in the block store."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f"Input file not found: {file_id}")


class FabricError(BlockDigestError):
    """Raised when the execution fabric cannot start, submit or stop."""


class CollectionTimeoutError(BlockDigestError):
    """Raised when an opt-in collection timeout elapses before all reports arrive."""

    def __init__(self, expected: int, timeout: float) -> None:
        self.expected = expected
        self.timeout = timeout
        super().__init__(
            f"Fewer than {expected} results arrived within {timeout}s"
        )


class ConfigurationError(BlockDigestError):
    """Raised for invalid configuration or missing required settings."""


class InvalidStateError(BlockDigestError):
    """Raised when a coordinator operation is called out of order."""

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while coordinator is {state}")
