"""Digest results: one per task, success or failure, never both."""

from __future__ import annotations

from dataclasses import dataclass


def to_hex(digest: bytes) -> str:
    """Render digest bytes as lowercase hex, two digits per byte, no separators."""
    return digest.hex()


def from_hex(text: str) -> bytes:
    """Inverse of ``to_hex``.

    Raises:
        ValueError: If ``text`` is not an even-length lowercase hex string.
    """
    if len(text) % 2 or text != text.lower():
        raise ValueError(f"Not a rendered digest: {text!r}")
    return bytes.fromhex(text)


@dataclass(frozen=True, slots=True)
class DigestSucceeded:
    file_id: str
    size: int
    offset: int
    read_time_ms: float
    compute_time_ms: float
    digest: bytes

    @property
    def hexdigest(self) -> str:
        return to_hex(self.digest)


@dataclass(frozen=True, slots=True)
class DigestFailed:
    """A block whose read or digest step raised.

    ``cause`` keeps the original exception; ``traceback`` is its formatted
    trace, captured where it happened since tracebacks do not survive pickling.
    """

    file_id: str
    size: int
    offset: int
    cause: BaseException
    traceback: str = ""


type DigestResult = DigestSucceeded | DigestFailed


def render(result: DigestResult) -> str:
    """One report line, keyed by the result's own offset."""
    match result:
        case DigestSucceeded(offset=offset) as ok:
            return f"  {offset} {ok.hexdigest}"
        case DigestFailed(offset=offset, cause=cause):
            return f"  {offset} FAILED ({type(cause).__name__}: {cause})"
