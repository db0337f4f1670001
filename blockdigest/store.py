"""Block store: file metadata, physical block layout and byte access.

The coordinator only consumes offsets, lengths and the block count from the
store. ``LocalBlockStore`` chunks a local file by a fixed physical block size,
the way a distributed filesystem reports its chunks.
"""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from blockdigest.config import DEFAULT_BLOCK_SIZE


@dataclass(frozen=True, slots=True)
class FileStatus:
    path: str
    length: int
    block_size: int
    replication: int


@dataclass(frozen=True, slots=True)
class BlockLocation:
    """Physical location of one chunk of a file.

    Only ``offset`` and ``length`` drive the batch; the host lists are
    informational placement hints.
    """

    offset: int
    length: int
    hosts: tuple[str, ...] = ()
    cached_hosts: tuple[str, ...] = ()
    names: tuple[str, ...] = ()
    topology_paths: tuple[str, ...] = ()


@runtime_checkable
class BlockStore(Protocol):
    def status(self, file_id: str) -> FileStatus: ...

    def block_locations(
        self, file_id: str, start: int, length: int,
    ) -> tuple[BlockLocation, ...]: ...

    def open(self, file_id: str) -> BinaryIO: ...


@dataclass(frozen=True, slots=True)
class LocalBlockStore:
    """Block store over the local filesystem.

    Attributes:
        root: Directory that relative file ids resolve against. None uses the
            current working directory of whichever process reads the file.
        block_size: Physical chunk size reported for every file.
        replication: Replication factor reported in ``FileStatus``.
    """

    root: str | None = None
    block_size: int = DEFAULT_BLOCK_SIZE
    replication: int = 1

    def __post_init__(self) -> None:
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")

    def resolve(self, file_id: str) -> Path:
        path = Path(file_id)
        if self.root is not None and not path.is_absolute():
            path = Path(self.root) / path
        return path

    def status(self, file_id: str) -> FileStatus:
        path = self.resolve(file_id)
        st = os.stat(path)
        if not path.is_file():
            raise IsADirectoryError(f"Not a regular file: {path}")
        return FileStatus(
            path=str(path),
            length=st.st_size,
            block_size=self.block_size,
            replication=self.replication,
        )

    def block_locations(
        self, file_id: str, start: int, length: int,
    ) -> tuple[BlockLocation, ...]:
        path = self.resolve(file_id)
        size = os.stat(path).st_size
        end = min(start + length, size)
        host = socket.gethostname()

        first = (start // self.block_size) * self.block_size
        return tuple(
            BlockLocation(
                offset=offset,
                length=min(self.block_size, size - offset),
                hosts=(host,),
                names=(f"{host}:{path.name}",),
                topology_paths=(f"/default-rack/{host}",),
            )
            for offset in range(first, end, self.block_size)
        )

    def open(self, file_id: str) -> BinaryIO:
        return open(self.resolve(file_id), "rb")  # noqa: SIM115
