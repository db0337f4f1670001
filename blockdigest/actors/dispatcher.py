"""Dispatcher actor: places digest tasks on worker slots.

Workers announce themselves with WorkerAvailable and a slot count. A Dispatch
goes round-robin to the next worker with a free slot, or waits in the queue.
Workers send SlotFreed after reporting a result; that drains the queue.

The dispatcher never sees results: workers report them straight to the
task's collector.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from casty import ActorContext, ActorRef, Behavior, Behaviors
from loguru import logger

from blockdigest.actors.messages import (
    Dispatch,
    DispatcherMsg,
    RunDigest,
    SlotFreed,
    WorkerAvailable,
    WorkerId,
    WorkerSlots,
)

log = logger.bind(actor="dispatcher")


def _pick_with_free_slot(
    workers: dict[WorkerId, WorkerSlots],
    round_robin: int,
) -> WorkerId | None:
    worker_ids = sorted(workers)
    if not worker_ids:
        return None
    for i in range(len(worker_ids)):
        wid = worker_ids[(round_robin + i) % len(worker_ids)]
        slot = workers[wid]
        if slot.used < slot.total:
            return wid
    return None


def _send(
    wid: WorkerId,
    job: Dispatch,
    workers: dict[WorkerId, WorkerSlots],
    self_ref: ActorRef[DispatcherMsg],
) -> dict[WorkerId, WorkerSlots]:
    slot = workers[wid]
    slot.ref.tell(RunDigest(task_id=job.task_id, task=job.task, reply_to=self_ref))
    log.debug(
        "Task {tid} (block {idx}) -> worker {wid}",
        tid=job.task_id, idx=job.task.block_index, wid=wid,
    )
    return {**workers, wid: WorkerSlots(slot.ref, slot.total, slot.used + 1)}


@dataclass(frozen=True, slots=True)
class _State:
    workers: dict[WorkerId, WorkerSlots]
    queue: tuple[Dispatch, ...]
    round_robin: int


def _drain_queue(s: _State, self_ref: ActorRef[DispatcherMsg]) -> _State:
    workers = s.workers
    round_robin = s.round_robin
    remaining: list[Dispatch] = []
    for job in s.queue:
        wid = _pick_with_free_slot(workers, round_robin)
        if wid is None:
            remaining.append(job)
            continue
        workers = _send(wid, job, workers, self_ref)
        round_robin += 1
    return _State(workers=workers, queue=tuple(remaining), round_robin=round_robin)


def dispatcher_actor() -> Behavior[DispatcherMsg]:

    def active(s: _State) -> Behavior[DispatcherMsg]:

        async def receive(
            ctx: ActorContext[DispatcherMsg], msg: DispatcherMsg,
        ) -> Behavior[DispatcherMsg]:
            match msg:
                case WorkerAvailable(worker_id=wid, ref=ref, slots=slots):
                    log.info("Worker {wid} available ({slots} slots)", wid=wid, slots=slots)
                    used = s.workers[wid].used if wid in s.workers else 0
                    new_s = replace(
                        s, workers={**s.workers, wid: WorkerSlots(ref, max(slots, 1), used)},
                    )
                    drained = _drain_queue(new_s, ctx.self)
                    if len(drained.queue) < len(s.queue):
                        log.debug(
                            "Drained {n} queued tasks",
                            n=len(s.queue) - len(drained.queue),
                        )
                    return active(drained)

                case SlotFreed(worker_id=wid, task_id=tid):
                    log.debug("Worker {wid} finished task {tid}", wid=wid, tid=tid)
                    if wid not in s.workers:
                        return Behaviors.same()
                    slot = s.workers[wid]
                    new_s = replace(s, workers={
                        **s.workers,
                        wid: WorkerSlots(slot.ref, slot.total, max(0, slot.used - 1)),
                    })
                    return active(_drain_queue(new_s, ctx.self))

                case Dispatch() as job:
                    wid = _pick_with_free_slot(s.workers, s.round_robin)
                    if wid is None:
                        log.debug(
                            "No free worker slot, queuing task {tid} (queue_size={qs})",
                            tid=job.task_id, qs=len(s.queue) + 1,
                        )
                        return active(replace(s, queue=(*s.queue, job)))
                    workers = _send(wid, job, s.workers, ctx.self)
                    return active(replace(s, workers=workers, round_robin=s.round_robin + 1))

            return Behaviors.same()

        return Behaviors.receive(receive)

    log.debug("Dispatcher started")
    return active(_State(workers={}, queue=(), round_robin=0))
