import asyncio
import random

import pytest
from casty import Behavior, Behaviors

from blockdigest.actors.collector import ResultCollector, collector_actor
from blockdigest.actors.messages import Collected, Report, WaitForAll
from blockdigest.core.exceptions import CollectionTimeoutError
from blockdigest.results import DigestFailed, DigestSucceeded

pytestmark = [pytest.mark.unit, pytest.mark.timeout(30)]


def collector_behavior(collected: list) -> Behavior:
    async def receive(ctx, msg):
        collected.append(msg)
        return Behaviors.same()
    return Behaviors.receive(receive)


def ok(offset: int) -> DigestSucceeded:
    return DigestSucceeded(
        file_id="f", size=10, offset=offset,
        read_time_ms=0.1, compute_time_ms=0.1, digest=bytes(20),
    )


def failed(offset: int) -> DigestFailed:
    return DigestFailed(file_id="f", size=10, offset=offset, cause=OSError("boom"))


def test_negative_expected_rejected():
    with pytest.raises(ValueError):
        collector_actor(-1)


@pytest.mark.asyncio
async def test_waiters_released_on_last_report(system):
    waiter: list = []
    waiter_ref = system.spawn(collector_behavior(waiter), "waiter")
    ref = system.spawn(collector_actor(2), "collector")

    ref.tell(WaitForAll(reply_to=waiter_ref))
    ref.tell(Report(result=ok(0)))
    await asyncio.sleep(0.1)
    assert waiter == []

    ref.tell(Report(result=failed(10)))
    await asyncio.sleep(0.1)

    assert len(waiter) == 1
    assert isinstance(waiter[0], Collected)
    assert [r.offset for r in waiter[0].results] == [0, 10]


@pytest.mark.asyncio
async def test_late_waiter_answered_immediately(system):
    waiter: list = []
    waiter_ref = system.spawn(collector_behavior(waiter), "waiter")
    ref = system.spawn(collector_actor(1), "collector")

    ref.tell(Report(result=ok(0)))
    await asyncio.sleep(0.1)
    ref.tell(WaitForAll(reply_to=waiter_ref))
    await asyncio.sleep(0.1)

    assert len(waiter) == 1
    assert len(waiter[0].results) == 1


@pytest.mark.asyncio
async def test_wait_returns_all_results_in_arrival_order(system):
    collector = ResultCollector(system, 3)
    for offset in (20, 0, 10):
        collector.report(ok(offset))

    results = await collector.wait_for_all()

    assert [r.offset for r in results] == [20, 0, 10]


@pytest.mark.asyncio
async def test_failures_count_toward_completion(system):
    collector = ResultCollector(system, 2)
    collector.report(failed(0))
    collector.report(ok(10))

    results = await collector.wait_for_all()

    assert {type(r) for r in results} == {DigestFailed, DigestSucceeded}


@pytest.mark.asyncio
async def test_zero_expected_returns_immediately(system):
    collector = ResultCollector(system, 0)
    assert await collector.wait_for_all() == ()


@pytest.mark.asyncio
async def test_concurrent_reporters_release_only_after_last(system):
    collector = ResultCollector(system, 8)
    waiting = asyncio.create_task(collector.wait_for_all())

    async def reporter(offset: int) -> None:
        await asyncio.sleep(random.uniform(0, 0.05))
        collector.report(ok(offset))

    await asyncio.gather(*(reporter(i * 10) for i in range(7)))
    await asyncio.sleep(0.2)
    assert not waiting.done()

    collector.report(ok(70))
    results = await asyncio.wait_for(waiting, timeout=5)

    assert len(results) == 8
    assert sorted(r.offset for r in results) == [i * 10 for i in range(8)]


@pytest.mark.asyncio
async def test_several_waiters_see_same_results(system):
    collector = ResultCollector(system, 2)
    first = asyncio.create_task(collector.wait_for_all())
    second = asyncio.create_task(collector.wait_for_all())
    await asyncio.sleep(0.1)

    collector.report(ok(0))
    collector.report(ok(10))

    assert await first == await second


@pytest.mark.asyncio
async def test_timeout(system):
    collector = ResultCollector(system, 2)
    collector.report(ok(0))

    with pytest.raises(CollectionTimeoutError) as exc_info:
        await collector.wait_for_all(timeout=0.3)

    assert exc_info.value.expected == 2


@pytest.mark.asyncio
async def test_extra_reports_dropped(system):
    collector = ResultCollector(system, 1)
    collector.report(ok(0))
    collector.report(ok(10))
    await asyncio.sleep(0.1)

    results = await collector.wait_for_all()

    assert [r.offset for r in results] == [0]
