"""Digest task: the unit of work, one per block.

``execute`` runs on a worker context. It streams ``[offset, offset+length)``
through SHA-1 with a bounded buffer and always returns a result: any error is
captured as ``DigestFailed`` tagged with the attempted offset and size.
"""

from __future__ import annotations

import hashlib
import time
import traceback
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger

from blockdigest.config import DEFAULT_BUFFER_SIZE
from blockdigest.results import DigestFailed, DigestResult, DigestSucceeded

if TYPE_CHECKING:
    from casty import ActorRef

    from blockdigest.partition import Block
    from blockdigest.store import BlockStore

log = logger.bind(component="digest")

DIGEST_ALGORITHM = "sha1"
DIGEST_SIZE = hashlib.new(DIGEST_ALGORITHM).digest_size


@dataclass(frozen=True, slots=True)
class DigestTask:
    """Everything a worker needs to digest one block and report it.

    ``collector`` is the address the result is reported to. Once submitted,
    the task belongs to the fabric.
    """

    file_id: str
    block_index: int
    offset: int
    length: int
    collector: ActorRef[Any]

    @classmethod
    def for_block(cls, file_id: str, block: Block, collector: ActorRef[Any]) -> DigestTask:
        return cls(
            file_id=file_id,
            block_index=block.index,
            offset=block.offset,
            length=block.length,
            collector=collector,
        )


def _ms(ns: int) -> float:
    return ns / 1_000_000


def execute(
    store: BlockStore,
    file_id: str,
    offset: int,
    length: int,
    *,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> DigestResult:
    """Digest one byte range. Never raises for ``Exception`` subclasses."""
    try:
        if offset < 0 or length < 0:
            raise ValueError(f"Invalid block range: offset={offset} length={length}")
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")

        hasher = hashlib.new(DIGEST_ALGORITHM)
        read_ns = 0
        compute_ns = 0

        with store.open(file_id) as f:
            started = time.perf_counter_ns()
            f.seek(offset)
            read_ns += time.perf_counter_ns() - started

            remaining = length
            while remaining > 0:
                started = time.perf_counter_ns()
                chunk = f.read(min(buffer_size, remaining))
                read_done = time.perf_counter_ns()
                read_ns += read_done - started
                if not chunk:
                    raise EOFError(
                        f"{file_id} ended at offset {offset + length - remaining}, "
                        f"block needs {offset + length}"
                    )
                hasher.update(chunk)
                compute_ns += time.perf_counter_ns() - read_done
                remaining -= len(chunk)

        result = DigestSucceeded(
            file_id=file_id,
            size=length,
            offset=offset,
            read_time_ms=_ms(read_ns),
            compute_time_ms=_ms(compute_ns),
            digest=hasher.digest(),
        )
        log.debug(
            "Digested {file}@{offset} ({size} bytes, read={read:.1f}ms, compute={compute:.1f}ms)",
            file=file_id, offset=offset, size=length,
            read=result.read_time_ms, compute=result.compute_time_ms,
        )
        return result
    except Exception as e:
        log.warning(
            "Digest of {file}@{offset} failed: {err}",
            file=file_id, offset=offset, err=e,
        )
        return DigestFailed(
            file_id=file_id,
            size=length,
            offset=offset,
            cause=e,
            traceback=traceback.format_exc(),
        )
