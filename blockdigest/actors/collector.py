"""Result collector actor.

A collector tells this story: collecting → drained.

It is created knowing how many results to expect. While collecting it
appends every Report and parks WaitForAll requests. The report that brings
the count to ``expected`` releases every parked waiter and moves the actor to
drained, where late waiters are answered immediately. The mailbox processes
one message at a time, so the append and the count check are atomic no
matter how many workers report concurrently.

There is no timeout here: if a report never arrives, waiters stay parked.
``ResultCollector.wait_for_all`` offers an opt-in timeout on the waiting side.
"""

from __future__ import annotations

import asyncio
from uuid import uuid4

from casty import ActorContext, ActorRef, ActorSystem, Behavior, Behaviors
from loguru import logger

from blockdigest.actors.messages import Collected, CollectorMsg, Report, WaitForAll
from blockdigest.core.exceptions import CollectionTimeoutError
from blockdigest.results import DigestFailed, DigestResult

log = logger.bind(actor="collector")


def collector_actor(expected: int) -> Behavior[CollectorMsg]:
    if expected < 0:
        raise ValueError(f"expected must be >= 0, got {expected}")

    def collecting(
        received: tuple[DigestResult, ...],
        waiters: tuple[ActorRef[Collected], ...],
    ) -> Behavior[CollectorMsg]:
        async def receive(
            _ctx: ActorContext[CollectorMsg], msg: CollectorMsg,
        ) -> Behavior[CollectorMsg]:
            match msg:
                case Report(result=result):
                    now = (*received, result)
                    log.debug(
                        "Received {kind} for offset {offset} ({n}/{expected})",
                        kind="failure" if isinstance(result, DigestFailed) else "digest",
                        offset=result.offset, n=len(now), expected=expected,
                    )
                    if len(now) < expected:
                        return collecting(now, waiters)
                    log.info("All {n} results collected", n=expected)
                    for waiter in waiters:
                        waiter.tell(Collected(results=now))
                    return drained(now)

                case WaitForAll(reply_to=reply_to):
                    return collecting(received, (*waiters, reply_to))

            return Behaviors.same()

        return Behaviors.receive(receive)

    def drained(results: tuple[DigestResult, ...]) -> Behavior[CollectorMsg]:
        async def receive(
            _ctx: ActorContext[CollectorMsg], msg: CollectorMsg,
        ) -> Behavior[CollectorMsg]:
            match msg:
                case Report(result=result):
                    log.warning(
                        "Dropping report for offset {offset}: already holds {n} results",
                        offset=result.offset, n=expected,
                    )
                case WaitForAll(reply_to=reply_to):
                    reply_to.tell(Collected(results=results))
            return Behaviors.same()

        return Behaviors.receive(receive)

    log.debug("Collector expecting {n} results", n=expected)
    if expected == 0:
        return drained(())
    return collecting((), ())


def _waiter(done: asyncio.Future[Collected]) -> Behavior[Collected]:
    async def receive(_ctx: ActorContext[Collected], msg: Collected) -> Behavior[Collected]:
        if not done.done():
            done.set_result(msg)
        return Behaviors.stopped()

    return Behaviors.receive(receive)


class ResultCollector:
    """Facade over a collector actor living on the local collecting context."""

    def __init__(self, system: ActorSystem, expected: int, name: str = "collector") -> None:
        self._system = system
        self._name = name
        self.expected = expected
        self.ref: ActorRef[CollectorMsg] = system.spawn(collector_actor(expected), name)

    def report(self, result: DigestResult) -> None:
        self.ref.tell(Report(result=result))

    async def wait_for_all(self, timeout: float | None = None) -> tuple[DigestResult, ...]:
        """Block until every expected result has arrived, then return them all.

        Results come back in arrival order, not block order.

        Raises:
            CollectionTimeoutError: If ``timeout`` is set and elapses first.
        """
        if self.expected == 0:
            return ()

        loop = asyncio.get_running_loop()
        done: asyncio.Future[Collected] = loop.create_future()
        waiter = self._system.spawn(_waiter(done), f"{self._name}-waiter-{uuid4().hex[:8]}")
        self.ref.tell(WaitForAll(reply_to=waiter))

        if timeout is None:
            collected = await done
        else:
            try:
                collected = await asyncio.wait_for(done, timeout=timeout)
            except TimeoutError as e:
                raise CollectionTimeoutError(self.expected, timeout) from e
        return collected.results
