"""Execution fabric: where digest tasks run and how results find their collector.

Both fabrics tell the same story: start → activate → (collect, submit)* →
done → end.

- ``start`` brings up the rendezvous service and returns its address.
- ``activate`` spawns the dispatcher and registers every worker with it.
- ``collector`` spawns a result collector on the local collecting context.
  Collectors never run digests.
- ``submit`` hands one task to the dispatcher, fire-and-forget.
- ``done`` releases the local execution context.
- ``end`` stops the rendezvous service.

``LocalFabric`` runs workers as actors inside one ActorSystem, digesting on
threads or loky processes. ``ClusterFabric`` starts a clustered actor system
as the seed node and discovers remote workers started with
``blockdigest-worker --seeds <address>``.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

from casty import (
    ActorRef,
    ActorSystem,
    CastyConfig,
    ClusteredActorSystem,
    FailureDetectorConfig,
    HeartbeatConfig,
)
from loguru import logger
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_delay, wait_fixed

from blockdigest.actors.collector import ResultCollector
from blockdigest.actors.dispatcher import dispatcher_actor
from blockdigest.actors.messages import Dispatch, DispatcherMsg, TaskId, WorkerAvailable, WorkerMsg
from blockdigest.actors.worker import digest_worker
from blockdigest.config import DEFAULT_POOL_NAME, WorkerSettings
from blockdigest.core.exceptions import FabricError
from blockdigest.digest import DigestTask
from blockdigest.infra.worker import WORKER_ACTOR_PATH, parse_address, wire_serializer, worker_node_id
from blockdigest.store import BlockStore

log = logger.bind(component="fabric")


@dataclass(frozen=True, slots=True)
class FabricConfig:
    """Runtime configuration shared by every fabric.

    Attributes:
        is_master: Whether this runtime is the result-collecting root.
        pool_name: Logical pool the runtime joins.
        server_address: Rendezvous endpoint to join instead of starting one.
    """

    is_master: bool = True
    pool_name: str = DEFAULT_POOL_NAME
    server_address: str | None = None


class Fabric(Protocol):
    async def start(self) -> str: ...

    async def activate(self) -> None: ...

    def collector(self, expected: int) -> ResultCollector: ...

    def submit(self, task: DigestTask) -> TaskId: ...

    async def done(self) -> None: ...

    async def end(self, timeout: float) -> None: ...


class _ActorFabric:
    """Shared dispatcher, collector and submit plumbing."""

    def __init__(self, config: FabricConfig) -> None:
        self.config = config
        self.address: str | None = None
        self._system: ActorSystem | None = None
        self._dispatcher: ActorRef[DispatcherMsg] | None = None

    @property
    def is_active(self) -> bool:
        return self._dispatcher is not None

    def _require_system(self) -> ActorSystem:
        if self._system is None:
            raise FabricError("Fabric not started. Call start() first.")
        return self._system

    def _spawn_dispatcher(self) -> ActorRef[DispatcherMsg]:
        system = self._require_system()
        self._dispatcher = system.spawn(dispatcher_actor(), "dispatcher")
        return self._dispatcher

    def collector(self, expected: int) -> ResultCollector:
        system = self._require_system()
        return ResultCollector(system, expected, name=f"collector-{uuid4().hex[:8]}")

    def submit(self, task: DigestTask) -> TaskId:
        if self._dispatcher is None:
            raise FabricError("Fabric not activated. Call activate() first.")
        task_id = uuid4().hex
        self._dispatcher.tell(Dispatch(task_id=task_id, task=task))
        return task_id

    async def done(self) -> None:
        log.debug("Releasing local execution context")
        self._dispatcher = None

    async def end(self, timeout: float) -> None:
        if self._system is None:
            return
        system, self._system = self._system, None
        log.debug("Stopping rendezvous service at {addr}", addr=self.address)
        try:
            await asyncio.wait_for(system.__aexit__(None, None, None), timeout=timeout)
        except TimeoutError as e:
            raise FabricError(
                f"Rendezvous service did not stop within {timeout}s"
            ) from e


class LocalFabric(_ActorFabric):
    """All workers are actors in this process.

    Args:
        store: Block store the workers read from.
        workers: Number of worker actors.
        worker: Per-worker execution settings.
        config: Runtime configuration. Must be a master without a server
            address, since there is nothing remote to join.
    """

    def __init__(
        self,
        store: BlockStore,
        *,
        workers: int = 4,
        worker: WorkerSettings | None = None,
        config: FabricConfig | None = None,
    ) -> None:
        super().__init__(config or FabricConfig())
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self._store = store
        self._workers = workers
        self._worker = worker or WorkerSettings()
        self._worker_refs: dict[int, ActorRef[WorkerMsg]] = {}
        self._executor_pool: Executor | None = None

    async def start(self) -> str:
        if not self.config.is_master or self.config.server_address:
            raise FabricError("LocalFabric only runs as a master with its own rendezvous")

        system = ActorSystem(
            self.config.pool_name,
            config=CastyConfig(suppress_dead_letters_on_shutdown=True),
        )
        await system.__aenter__()
        self._system = system

        if self._worker.executor == "process":
            from loky import ProcessPoolExecutor as LokyProcessPoolExecutor

            self._executor_pool = LokyProcessPoolExecutor(
                max_workers=self._workers * self._worker.concurrency,
            )

        for wid in range(self._workers):
            self._worker_refs[wid] = system.spawn(
                digest_worker(
                    wid, self._store,
                    concurrency=self._worker.concurrency,
                    buffer_size=self._worker.buffer_size,
                    executor=self._worker.executor,
                    executor_pool=self._executor_pool,
                ),
                f"worker-{wid}",
            )

        self.address = f"local://{self.config.pool_name}"
        log.info(
            "Local fabric started at {addr} ({n} workers, executor={ex})",
            addr=self.address, n=self._workers, ex=self._worker.executor,
        )
        return self.address

    async def activate(self) -> None:
        dispatcher = self._spawn_dispatcher()
        for wid, ref in sorted(self._worker_refs.items()):
            dispatcher.tell(WorkerAvailable(
                worker_id=wid, ref=ref, slots=self._worker.concurrency,
            ))
        log.debug("Local fabric active")

    async def done(self) -> None:
        await super().done()
        if self._executor_pool is not None:
            pool, self._executor_pool = self._executor_pool, None
            await asyncio.to_thread(pool.shutdown, True)


class _WorkersMissingError(Exception):
    """Not every expected worker has joined yet - retry."""


class ClusterFabric(_ActorFabric):
    """Seed node of an actor cluster whose workers run in other processes.

    Workers join with ``blockdigest-worker --node-id <n> --seeds <address>``
    for n in 1..workers and are discovered at activation.
    Always the master: the collector lives on this node. ``server_address``
    joins an existing seed instead of starting a standalone cluster.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        workers: int,
        worker_slots: int = 1,
        discovery_timeout: float = 120.0,
        config: FabricConfig | None = None,
    ) -> None:
        super().__init__(config or FabricConfig())
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self._host = host
        self._port = port
        self._workers = workers
        self._worker_slots = worker_slots
        self._discovery_timeout = discovery_timeout

    async def start(self) -> str:
        if not self.config.is_master:
            raise FabricError("ClusterFabric only runs as the master node")
        seeds = (parse_address(self.config.server_address),) if self.config.server_address else None
        system = ClusteredActorSystem(
            name=self.config.pool_name,
            host=self._host,
            port=self._port,
            node_id=worker_node_id(0),
            seed_nodes=seeds,
            bind_host="0.0.0.0",
            config=CastyConfig(
                heartbeat=HeartbeatConfig(interval=2.0, availability_check_interval=5.0),
                failure_detector=FailureDetectorConfig(
                    threshold=16.0,
                    acceptable_heartbeat_pause_ms=10_000.0,
                ),
                suppress_dead_letters_on_shutdown=True,
            ),
            serializer=wire_serializer(),
        )
        await system.__aenter__()
        self._system = system
        self.address = f"{self._host}:{self._port}"
        log.info("Started rendezvous service at {addr}", addr=self.address)
        return self.address

    async def _discover_workers(self) -> dict[int, ActorRef[WorkerMsg]]:
        system = self._require_system()

        @retry(
            stop=stop_after_delay(self._discovery_timeout),
            wait=wait_fixed(1.0),
            retry=retry_if_exception_type(_WorkersMissingError),
        )
        async def lookup_all() -> dict[int, ActorRef[WorkerMsg]]:
            found: dict[int, ActorRef[WorkerMsg]] = {}
            for node in range(1, self._workers + 1):
                ref = system.lookup(WORKER_ACTOR_PATH, node=worker_node_id(node))
                if ref is not None:
                    found[node] = ref
            if len(found) < self._workers:
                log.debug(
                    "Found {found}/{expected} workers, waiting...",
                    found=len(found), expected=self._workers,
                )
                raise _WorkersMissingError()
            return found

        try:
            return await lookup_all()
        except RetryError as e:
            raise FabricError(
                f"Only some of {self._workers} workers joined {self.address} "
                f"within {self._discovery_timeout}s"
            ) from e

    async def activate(self) -> None:
        workers = await self._discover_workers()
        dispatcher = self._spawn_dispatcher()
        for wid, ref in sorted(workers.items()):
            dispatcher.tell(WorkerAvailable(worker_id=wid, ref=ref, slots=self._worker_slots))
        log.info("Cluster fabric active with {n} workers", n=len(workers))
