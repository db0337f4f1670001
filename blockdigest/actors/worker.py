"""Digest worker actor.

A worker receives RunDigest, runs the digest off the event loop (a thread,
or a loky process when ``executor="process"``), reports the result to the
task's collector and then frees its slot at the dispatcher. Every RunDigest
produces exactly one Report, even when the execution machinery itself
breaks: that case is reported as a DigestFailed carrying the error.

Reports may cross the wire to a collector on another node, so a failure
cause that does not unpickle is replaced by a RuntimeError naming it before
the report leaves the worker. The formatted traceback is kept as is.
"""

from __future__ import annotations

import asyncio
import traceback
from concurrent.futures import Executor
from dataclasses import replace

import cloudpickle
from casty import ActorContext, Behavior, Behaviors
from loguru import logger

from blockdigest.actors.messages import (
    Report,
    RunDigest,
    SlotFreed,
    WorkerId,
    WorkerMsg,
    _DigestDone,
    _DigestErrored,
)
from blockdigest.config import DEFAULT_BUFFER_SIZE, ExecutorKind
from blockdigest.digest import DigestTask, execute
from blockdigest.results import DigestFailed, DigestResult
from blockdigest.store import BlockStore


def digest_worker(
    worker_id: WorkerId,
    store: BlockStore,
    *,
    concurrency: int = 1,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    executor: ExecutorKind = "thread",
    executor_pool: Executor | None = None,
) -> Behavior[WorkerMsg]:
    log = logger.bind(component="worker", worker_id=worker_id)
    sem = asyncio.Semaphore(concurrency)

    async def _execute(task: DigestTask) -> DigestResult:
        async with sem:
            log.debug(
                "Digesting {file} block {idx} ({offset}+{length})",
                file=task.file_id, idx=task.block_index,
                offset=task.offset, length=task.length,
            )
            if executor == "process":
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(
                    executor_pool, _run_in_process,
                    store, task.file_id, task.offset, task.length, buffer_size,
                )
            return await asyncio.to_thread(
                execute, store, task.file_id, task.offset, task.length,
                buffer_size=buffer_size,
            )

    async def receive(ctx: ActorContext[WorkerMsg], msg: WorkerMsg) -> Behavior[WorkerMsg]:
        match msg:
            case RunDigest(task_id=tid, task=task, reply_to=reply_to):
                ctx.pipe_to_self(
                    coro=_execute(task),
                    mapper=lambda result: _DigestDone(
                        task_id=tid, task=task, result=result, reply_to=reply_to,
                    ),
                    on_failure=lambda e: _DigestErrored(
                        task_id=tid, task=task, error=e, reply_to=reply_to,
                    ),
                )
                return Behaviors.same()

            case _DigestDone(task_id=tid, task=task, result=result, reply_to=reply_to):
                log.debug("Task {tid} done ({kind})", tid=tid, kind=type(result).__name__)
                task.collector.tell(Report(result=wire_safe(result)))
                reply_to.tell(SlotFreed(worker_id=worker_id, task_id=tid))
                return Behaviors.same()

            case _DigestErrored(task_id=tid, task=task, error=error, reply_to=reply_to):
                log.error("Task {tid} errored outside the digest: {err}", tid=tid, err=error)
                task.collector.tell(Report(result=wire_safe(DigestFailed(
                    file_id=task.file_id,
                    size=task.length,
                    offset=task.offset,
                    cause=error,
                    traceback="".join(traceback.format_exception(error)),
                ))))
                reply_to.tell(SlotFreed(worker_id=worker_id, task_id=tid))
                return Behaviors.same()

        return Behaviors.same()

    log.debug(
        "Worker ready (concurrency={c}, executor={ex})",
        c=concurrency, ex=executor,
    )
    return Behaviors.receive(receive)


def _round_trips(obj: object) -> bool:
    try:
        cloudpickle.loads(cloudpickle.dumps(obj))
    except Exception:
        return False
    return True


def wire_safe(result: DigestResult) -> DigestResult:
    """Return ``result`` with a cause that survives pickling."""
    match result:
        case DigestFailed(cause=cause) if not _round_trips(cause):
            return replace(result, cause=RuntimeError(f"{type(cause).__name__}: {cause}"))
    return result


def _run_in_process(
    store: BlockStore,
    file_id: str,
    offset: int,
    length: int,
    buffer_size: int,
) -> DigestResult:
    """Module-level so loky can pickle it by reference."""
    return wire_safe(execute(store, file_id, offset, length, buffer_size=buffer_size))
