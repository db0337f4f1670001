from __future__ import annotations

import pytest
from conftest import MB, FlakyStore, sha1_hex

from blockdigest.digest import DIGEST_SIZE, DigestTask, execute
from blockdigest.partition import Block
from blockdigest.results import DigestFailed, DigestSucceeded, from_hex, render, to_hex
from blockdigest.store import LocalBlockStore

pytestmark = [pytest.mark.unit]


class TestExecute:
    def test_digest_of_each_block(self, small_store: LocalBlockStore, small_file):
        file_id, content = small_file
        for offset, length in [(0, 1024), (1024, 1024), (2048, 512)]:
            result = execute(small_store, file_id, offset, length)
            assert isinstance(result, DigestSucceeded)
            assert result.hexdigest == sha1_hex(content[offset:offset + length])
            assert (result.offset, result.size, result.file_id) == (offset, length, file_id)
            assert len(result.digest) == DIGEST_SIZE == 20

    def test_deterministic(self, small_store: LocalBlockStore, small_file):
        file_id, _ = small_file
        first = execute(small_store, file_id, 1024, 1024)
        second = execute(small_store, file_id, 1024, 1024)
        assert first.digest == second.digest

    def test_buffer_size_does_not_change_digest(self, small_store: LocalBlockStore, small_file):
        file_id, _ = small_file
        a = execute(small_store, file_id, 0, 2560, buffer_size=7)
        b = execute(small_store, file_id, 0, 2560, buffer_size=64 * 1024)
        assert a.digest == b.digest

    def test_zero_length_block(self, small_store: LocalBlockStore, small_file):
        result = execute(small_store, small_file[0], 0, 0)
        assert isinstance(result, DigestSucceeded)
        assert result.hexdigest == sha1_hex(b"")

    def test_timings_recorded(self, small_store: LocalBlockStore, small_file):
        result = execute(small_store, small_file[0], 0, 1024)
        assert result.read_time_ms >= 0
        assert result.compute_time_ms >= 0

    def test_missing_file_is_a_failed_result(self, small_store: LocalBlockStore):
        result = execute(small_store, "gone.bin", 4096, 1024)
        assert isinstance(result, DigestFailed)
        assert isinstance(result.cause, FileNotFoundError)
        assert (result.offset, result.size) == (4096, 1024)
        assert "FileNotFoundError" in result.traceback

    def test_short_read_is_a_failed_result(self, small_store: LocalBlockStore, small_file):
        result = execute(small_store, small_file[0], 2048, 1024)
        assert isinstance(result, DigestFailed)
        assert isinstance(result.cause, EOFError)

    def test_read_error_is_captured(self, small_store: LocalBlockStore, small_file):
        store = FlakyStore(small_store, frozenset({1024}))
        result = execute(store, small_file[0], 1024, 1024)
        assert isinstance(result, DigestFailed)
        assert isinstance(result.cause, OSError)
        assert result.offset == 1024

    def test_invalid_range(self, small_store: LocalBlockStore, small_file):
        result = execute(small_store, small_file[0], -1, 10)
        assert isinstance(result, DigestFailed)
        assert isinstance(result.cause, ValueError)


class TestScenario:
    def test_three_blocks_one_read_error(self, scenario_store: LocalBlockStore, scenario_file):
        file_id, content = scenario_file
        store = FlakyStore(scenario_store, frozenset({10 * MB}))
        blocks = [(0, 10 * MB), (10 * MB, 10 * MB), (20 * MB, 4 * MB)]

        results = [execute(store, file_id, offset, length) for offset, length in blocks]

        assert len(results) == 3
        ok = [r for r in results if isinstance(r, DigestSucceeded)]
        failed = [r for r in results if isinstance(r, DigestFailed)]
        assert [r.offset for r in ok] == [0, 20 * MB]
        assert ok[0].hexdigest == sha1_hex(content[:10 * MB])
        assert ok[1].hexdigest == sha1_hex(content[20 * MB:])
        assert len(failed) == 1
        assert failed[0].offset == 10 * MB
        assert isinstance(failed[0].cause, OSError)


class TestHex:
    def test_lowercase_fixed_width(self):
        digest = bytes([0x00, 0x0A, 0xFF] + [0x10] * 17)
        text = to_hex(digest)
        assert text == text.lower()
        assert len(text) == 2 * len(digest)
        assert text.startswith("000aff")

    def test_round_trip(self, small_store: LocalBlockStore, small_file):
        result = execute(small_store, small_file[0], 0, 1024)
        assert from_hex(result.hexdigest) == result.digest

    @pytest.mark.parametrize("bad", ["abc", "ABCD", "zz"])
    def test_from_hex_rejects(self, bad: str):
        with pytest.raises(ValueError):
            from_hex(bad)


class TestRender:
    def test_success_line(self):
        result = DigestSucceeded(
            file_id="f", size=3, offset=134217728,
            read_time_ms=1.0, compute_time_ms=1.0, digest=bytes(range(20)),
        )
        assert render(result) == "  134217728 000102030405060708090a0b0c0d0e0f10111213"

    def test_failure_line(self):
        result = DigestFailed(file_id="f", size=3, offset=0, cause=OSError("disk gone"))
        assert render(result) == "  0 FAILED (OSError: disk gone)"


class TestDigestTask:
    def test_for_block(self):
        block = Block(index=2, offset=20, length=5, hosts=("h",))
        task = DigestTask.for_block("f.bin", block, collector=None)  # type: ignore[arg-type]
        assert (task.file_id, task.block_index, task.offset, task.length) == ("f.bin", 2, 20, 5)
