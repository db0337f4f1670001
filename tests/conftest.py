from __future__ import annotations

import hashlib
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import pytest
import pytest_asyncio
from casty import ActorSystem

from blockdigest.store import BlockLocation, FileStatus, LocalBlockStore

KB = 1024
MB = 1024 * KB


def pattern_bytes(size: int) -> bytes:
    """Deterministic, non-repeating-per-block content."""
    chunk = bytes(range(256)) * (MB // 256)
    out = bytearray()
    n = 0
    while len(out) < size:
        out += chunk
        out += n.to_bytes(4, "big")
        n += 1
    return bytes(out[:size])


def sha1_hex(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def get_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class _FailingReader:
    def __init__(self, f: BinaryIO, fail_offsets: frozenset[int], error: Exception) -> None:
        self._f = f
        self._fail_offsets = fail_offsets
        self._error = error
        self._pos = 0

    def __enter__(self) -> _FailingReader:
        return self

    def __exit__(self, *exc: object) -> None:
        self._f.close()

    def seek(self, pos: int) -> int:
        self._pos = pos
        return self._f.seek(pos)

    def read(self, n: int) -> bytes:
        if self._pos in self._fail_offsets:
            raise self._error
        data = self._f.read(n)
        self._pos += len(data)
        return data


@dataclass(frozen=True)
class FlakyStore:
    """LocalBlockStore whose reads starting at ``fail_offsets`` raise ``error``."""

    inner: LocalBlockStore
    fail_offsets: frozenset[int]
    error: Exception = OSError(5, "Input/output error")

    def status(self, file_id: str) -> FileStatus:
        return self.inner.status(file_id)

    def block_locations(self, file_id: str, start: int, length: int) -> tuple[BlockLocation, ...]:
        return self.inner.block_locations(file_id, start, length)

    def open(self, file_id: str):
        return _FailingReader(self.inner.open(file_id), self.fail_offsets, self.error)


@pytest_asyncio.fixture
async def system():
    async with ActorSystem("test-blockdigest") as s:
        yield s


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def small_file(data_dir: Path) -> tuple[str, bytes]:
    """2.5 KB file, split into 1 KB blocks by ``small_store``."""
    content = pattern_bytes(2 * KB + 512)
    (data_dir / "small.bin").write_bytes(content)
    return "small.bin", content


@pytest.fixture
def small_store(data_dir: Path) -> LocalBlockStore:
    return LocalBlockStore(root=str(data_dir), block_size=KB)


@pytest.fixture
def scenario_file(data_dir: Path) -> tuple[str, bytes]:
    """24 MB file: blocks of 10 MB, 10 MB and 4 MB under ``scenario_store``."""
    content = pattern_bytes(24 * MB)
    (data_dir / "scenario.bin").write_bytes(content)
    return "scenario.bin", content


@pytest.fixture
def scenario_store(data_dir: Path) -> LocalBlockStore:
    return LocalBlockStore(root=str(data_dir), block_size=10 * MB)
