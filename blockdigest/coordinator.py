"""Coordinator: splits a file into blocks, dispatches one task per block and
collects exactly one result per task.

State machine::

    CREATED → INITIALIZED → BATCH_SUBMITTED → AWAITING_RESULTS → COMPLETED
        └──────────┴── FAILED (fabric start, partition or submit error)

Example:
    store = LocalBlockStore(block_size=parse_size("64MB"))
    coordinator = Coordinator(LocalFabric(store, workers=8), store)
    results = await coordinator.run("data/input.bin")
"""

from __future__ import annotations

import sys
import time
import traceback
from enum import StrEnum
from typing import TextIO

from loguru import logger

from blockdigest.actors.collector import ResultCollector
from blockdigest.core.exceptions import FabricError, InvalidStateError, PartitionError
from blockdigest.digest import DigestTask
from blockdigest.fabric import Fabric
from blockdigest.partition import Block, partition
from blockdigest.results import DigestFailed, DigestResult, render
from blockdigest.store import BlockStore

log = logger.bind(component="coordinator")


class CoordinatorState(StrEnum):
    CREATED = "created"
    INITIALIZED = "initialized"
    BATCH_SUBMITTED = "batch-submitted"
    AWAITING_RESULTS = "awaiting-results"
    COMPLETED = "completed"
    FAILED = "failed"


def _elapsed_ms(start: float | None, end: float | None) -> float:
    if start is None or end is None:
        return 0.0
    return (end - start) * 1000


class Coordinator:
    """Drives one batch over one fabric.

    Args:
        fabric: Execution fabric the tasks run on.
        store: Block store used to partition the input file.
        collect_timeout: Seconds to wait for all results. None waits forever,
            so a worker that dies before reporting hangs the batch.
        shutdown_timeout: Seconds granted to the fabric's rendezvous service
            to stop during cleanup.
        out: Stream the report is printed to.
    """

    def __init__(
        self,
        fabric: Fabric,
        store: BlockStore,
        *,
        collect_timeout: float | None = None,
        shutdown_timeout: float = 10.0,
        out: TextIO | None = None,
    ) -> None:
        self._fabric = fabric
        self._store = store
        self._collect_timeout = collect_timeout
        self._shutdown_timeout = shutdown_timeout
        self._out = out or sys.stdout
        self._state = CoordinatorState.CREATED
        self._collector: ResultCollector | None = None
        self.address: str | None = None
        self.file_id: str | None = None
        self.blocks: tuple[Block, ...] = ()

        # Optional timing hooks, monotonic seconds
        self.started_at: float | None = None
        self.initialized_at: float | None = None
        self.finished_at: float | None = None

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def _expect(self, operation: str, *states: CoordinatorState) -> None:
        if self._state not in states:
            raise InvalidStateError(operation, self._state)

    def _print(self, line: str) -> None:
        print(line, file=self._out, flush=True)

    async def initialize(self) -> None:
        """Start the fabric's rendezvous service and the local collecting context.

        Raises:
            FabricError: If the fabric cannot start. Not retried.
        """
        self._expect("initialize", CoordinatorState.CREATED)
        self.started_at = time.monotonic()
        log.info("Starting execution fabric")
        try:
            self.address = await self._fabric.start()
            log.info("Started rendezvous service at {addr}", addr=self.address)
            await self._fabric.activate()
        except Exception as e:
            self._state = CoordinatorState.FAILED
            log.error("Execution fabric failed to start: {err}", err=e)
            if isinstance(e, FabricError):
                raise
            raise FabricError(f"Execution fabric failed to start: {e}") from e

        self.initialized_at = time.monotonic()
        self._state = CoordinatorState.INITIALIZED
        log.info(
            "Fabric init took {ms:.0f} ms",
            ms=_elapsed_ms(self.started_at, self.initialized_at),
        )

    async def submit_jobs(self, file_id: str) -> tuple[Block, ...]:
        """Partition ``file_id`` and submit one collector plus one task per block.

        Raises:
            PartitionError: If the file is missing or its layout unreadable.
            FabricError: If the fabric rejects the collector or a task.
        """
        self._expect("submit jobs", CoordinatorState.INITIALIZED)
        try:
            blocks = partition(self._store, file_id)
        except PartitionError as e:
            self._state = CoordinatorState.FAILED
            log.error("Partitioning {file} failed: {err}", file=file_id, err=e)
            raise

        log.info("Submitting collector for {n} results", n=len(blocks))
        try:
            collector = self._fabric.collector(len(blocks))
            for block in blocks:
                task_id = self._fabric.submit(DigestTask.for_block(file_id, block, collector.ref))
                log.debug(
                    "Submitted block {idx} ({start} - {end}) as task {tid}",
                    idx=block.index, start=block.offset, end=block.end, tid=task_id,
                )
        except Exception as e:
            self._state = CoordinatorState.FAILED
            log.error("Submitting {file} failed: {err}", file=file_id, err=e)
            if isinstance(e, FabricError):
                raise
            raise FabricError(f"Submitting {file_id} failed: {e}") from e

        self._collector = collector
        self.file_id = file_id
        self.blocks = blocks
        self._state = CoordinatorState.BATCH_SUBMITTED
        log.info("Submitted {n} digest tasks for {file}", n=len(blocks), file=file_id)
        return blocks

    async def await_and_report(self) -> tuple[DigestResult, ...]:
        """Wait for every result, then print one line per result as it arrived.

        Raises:
            CollectionTimeoutError: If an opt-in collect timeout elapses.
        """
        self._expect("await results", CoordinatorState.BATCH_SUBMITTED)
        assert self._collector is not None
        self._state = CoordinatorState.AWAITING_RESULTS

        results = await self._collector.wait_for_all(timeout=self._collect_timeout)

        self._print("Results: ")
        for result in results:
            self._print(render(result))

        self.finished_at = time.monotonic()
        self._state = CoordinatorState.COMPLETED
        failed = sum(isinstance(r, DigestFailed) for r in results)
        log.info(
            "Run took {ms:.0f} ms ({ok} digested, {failed} failed)",
            ms=_elapsed_ms(self.started_at, self.finished_at),
            ok=len(results) - failed, failed=failed,
        )
        return results

    async def cleanup(self) -> None:
        """Release the local context and stop the rendezvous service.

        Each step is attempted regardless of the other; failures are printed
        and logged, never raised.
        """
        try:
            await self._fabric.done()
        except Exception as e:
            self._print(f"Failed to release local execution context! {e}")
            traceback.print_exc(file=self._out)
            log.error("Failed to release local execution context: {err}", err=e)

        try:
            await self._fabric.end(self._shutdown_timeout)
        except Exception as e:
            self._print(f"Failed to stop rendezvous service! {e}")
            traceback.print_exc(file=self._out)
            log.error("Failed to stop rendezvous service: {err}", err=e)

        self._collector = None

    async def run(self, file_id: str) -> tuple[DigestResult, ...]:
        """Initialize, submit, collect and always clean up."""
        try:
            await self.initialize()
            await self.submit_jobs(file_id)
            return await self.await_and_report()
        finally:
            await self.cleanup()
