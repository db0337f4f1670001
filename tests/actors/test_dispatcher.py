import asyncio

import pytest
from casty import Behavior, Behaviors

from blockdigest.actors.dispatcher import dispatcher_actor
from blockdigest.actors.messages import (
    Dispatch,
    RunDigest,
    SlotFreed,
    WorkerAvailable,
)
from blockdigest.digest import DigestTask

pytestmark = [pytest.mark.unit, pytest.mark.timeout(30)]


def collector_behavior(collected: list) -> Behavior:
    async def receive(ctx, msg):
        collected.append(msg)
        return Behaviors.same()
    return Behaviors.receive(receive)


def dispatch(system, task_id: str, index: int = 0) -> Dispatch:
    results_ref = system.spawn(collector_behavior([]), f"results-{task_id}")
    task = DigestTask(
        file_id="f.bin", block_index=index, offset=index * 10, length=10,
        collector=results_ref,
    )
    return Dispatch(task_id=task_id, task=task)


@pytest.mark.asyncio
async def test_dispatch_routes_to_available_worker(system):
    worker_msgs: list = []
    worker_ref = system.spawn(collector_behavior(worker_msgs), "worker-0")
    ref = system.spawn(dispatcher_actor(), "dispatcher")

    ref.tell(WorkerAvailable(worker_id=0, ref=worker_ref, slots=2))
    await asyncio.sleep(0.1)

    ref.tell(dispatch(system, "t1"))
    await asyncio.sleep(0.1)

    assert len(worker_msgs) == 1
    assert isinstance(worker_msgs[0], RunDigest)
    assert worker_msgs[0].task_id == "t1"
    assert worker_msgs[0].task.file_id == "f.bin"


@pytest.mark.asyncio
async def test_dispatch_queues_when_no_slots(system):
    worker_msgs: list = []
    worker_ref = system.spawn(collector_behavior(worker_msgs), "worker-0")
    ref = system.spawn(dispatcher_actor(), "dispatcher")

    ref.tell(WorkerAvailable(worker_id=0, ref=worker_ref, slots=1))
    await asyncio.sleep(0.1)

    ref.tell(dispatch(system, "t1", 0))
    ref.tell(dispatch(system, "t2", 1))
    await asyncio.sleep(0.1)

    assert len(worker_msgs) == 1  # only 1 slot

    ref.tell(SlotFreed(worker_id=0, task_id="t1"))
    await asyncio.sleep(0.1)

    assert len(worker_msgs) == 2  # queue drained
    assert worker_msgs[1].task_id == "t2"


@pytest.mark.asyncio
async def test_dispatch_queues_when_no_workers(system):
    worker_msgs: list = []
    worker_ref = system.spawn(collector_behavior(worker_msgs), "worker-0")
    ref = system.spawn(dispatcher_actor(), "dispatcher")

    ref.tell(dispatch(system, "t1"))
    await asyncio.sleep(0.1)
    assert len(worker_msgs) == 0

    ref.tell(WorkerAvailable(worker_id=0, ref=worker_ref, slots=1))
    await asyncio.sleep(0.1)
    assert len(worker_msgs) == 1  # drained on worker join


@pytest.mark.asyncio
async def test_round_robin_across_workers(system):
    w0: list = []
    w1: list = []
    ref = system.spawn(dispatcher_actor(), "dispatcher")
    ref.tell(WorkerAvailable(worker_id=0, ref=system.spawn(collector_behavior(w0), "worker-0"), slots=4))
    ref.tell(WorkerAvailable(worker_id=1, ref=system.spawn(collector_behavior(w1), "worker-1"), slots=4))
    await asyncio.sleep(0.1)

    for i in range(4):
        ref.tell(dispatch(system, f"t{i}", i))
    await asyncio.sleep(0.1)

    assert len(w0) == 2
    assert len(w1) == 2


@pytest.mark.asyncio
async def test_slot_freed_from_unknown_worker_ignored(system):
    w0: list = []
    ref = system.spawn(dispatcher_actor(), "dispatcher")
    ref.tell(SlotFreed(worker_id=9, task_id="x"))
    ref.tell(WorkerAvailable(worker_id=0, ref=system.spawn(collector_behavior(w0), "worker-0"), slots=1))
    ref.tell(dispatch(system, "t1"))
    await asyncio.sleep(0.1)

    assert len(w0) == 1
