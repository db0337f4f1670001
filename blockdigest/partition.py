"""Block partitioner: translates a file's physical layout into units of work.

Block count and sizing are a pass-through of whatever chunking the block
store reports. The partitioner reads metadata only, never block contents.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from blockdigest.core.exceptions import InputNotFoundError, PartitionError
from blockdigest.store import BlockLocation, BlockStore

log = logger.bind(component="partitioner")


@dataclass(frozen=True, slots=True)
class Block:
    """A contiguous byte range processed as one task.

    ``hosts`` lists nodes holding a local copy; it is a hint, not a binding.
    """

    index: int
    offset: int
    length: int
    hosts: tuple[str, ...] = ()

    @property
    def end(self) -> int:
        return self.offset + self.length


def _check_coverage(file_id: str, length: int, locations: list[BlockLocation]) -> None:
    expected = 0
    for loc in locations:
        if loc.length <= 0:
            raise PartitionError(
                f"{file_id}: empty block reported at offset {loc.offset}"
            )
        if loc.offset != expected:
            kind = "gap" if loc.offset > expected else "overlap"
            raise PartitionError(
                f"{file_id}: block layout has a {kind} at offset {expected} "
                f"(next block starts at {loc.offset})"
            )
        expected = loc.offset + loc.length
    if expected != length:
        raise PartitionError(
            f"{file_id}: blocks cover [0, {expected}) but file length is {length}"
        )


def partition(store: BlockStore, file_id: str) -> tuple[Block, ...]:
    """Split ``file_id`` into blocks covering ``[0, length)`` exactly.

    Raises:
        InputNotFoundError: If the file is absent from the store.
        PartitionError: If metadata cannot be read or the reported layout has
            gaps or overlaps.
    """
    try:
        stat = store.status(file_id)
        locations = sorted(
            store.block_locations(file_id, 0, stat.length),
            key=lambda loc: loc.offset,
        )
    except FileNotFoundError as e:
        raise InputNotFoundError(file_id) from e
    except OSError as e:
        raise PartitionError(f"Cannot read metadata of {file_id}: {e}") from e

    log.info(
        "Found input file {path} with length {length} blocksize {bs} replication {rep}",
        path=stat.path, length=stat.length, bs=stat.block_size, rep=stat.replication,
    )

    _check_coverage(file_id, stat.length, locations)

    blocks: list[Block] = []
    for index, loc in enumerate(locations):
        log.debug(
            "Block {i}: {start} - {end} hosts={hosts} cached={cached} "
            "names={names} topology={topo}",
            i=index, start=loc.offset, end=loc.offset + loc.length,
            hosts=list(loc.hosts), cached=list(loc.cached_hosts),
            names=list(loc.names), topo=list(loc.topology_paths),
        )
        blocks.append(Block(
            index=index,
            offset=loc.offset,
            length=loc.length,
            hosts=tuple(loc.hosts),
        ))
    return tuple(blocks)
