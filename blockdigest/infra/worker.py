"""Digest worker service for cluster runs.

Runs as a long-lived process on each worker machine. It joins the
coordinator's actor cluster through the seed address printed by the
coordinator, spawns one digest worker actor at ``/worker`` and waits. The
coordinator's ClusterFabric looks the actor up by node id (``node-<n>``),
so every worker process needs a distinct ``--node-id`` starting at 1.
"""

from __future__ import annotations

import argparse
import asyncio
import os
from concurrent.futures import Executor

from casty import (
    CastyConfig,
    CloudPickleSerializer,
    ClusteredActorSystem,
    FailureDetectorConfig,
    HeartbeatConfig,
    Lz4CompressedSerializer,
)
from loguru import logger

from blockdigest.config import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_CLUSTER_PORT,
    DEFAULT_POOL_NAME,
    ExecutorKind,
    parse_size,
)
from blockdigest.observability.logging import LogConfig, setup_logging
from blockdigest.store import LocalBlockStore

WORKER_ACTOR_PATH = "/worker"


def wire_serializer() -> Lz4CompressedSerializer:
    """Shared wire serializer for every cluster endpoint (coordinator and workers)."""
    return Lz4CompressedSerializer(CloudPickleSerializer())


def worker_node_id(node: int) -> str:
    return f"node-{node}"


def parse_address(address: str) -> tuple[str, int]:
    host, port_str = address.rsplit(":", 1)
    return host, int(port_str)


def _parse_seeds(seeds_str: str | None) -> list[tuple[str, int]] | None:
    if not seeds_str:
        return None
    return [parse_address(addr) for addr in seeds_str.split(",")]


async def main(
    node_id: int,
    port: int,
    seeds: list[tuple[str, int]] | None,
    *,
    host: str = "0.0.0.0",
    pool_name: str = DEFAULT_POOL_NAME,
    concurrency: int = 1,
    executor: ExecutorKind = "thread",
    store: LocalBlockStore | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> None:
    from blockdigest.actors.worker import digest_worker

    log = logger.bind(component="worker-service", node_id=node_id)
    config = CastyConfig(
        heartbeat=HeartbeatConfig(interval=2.0, availability_check_interval=5.0),
        failure_detector=FailureDetectorConfig(
            threshold=16.0,
            acceptable_heartbeat_pause_ms=10_000.0,
        ),
        suppress_dead_letters_on_shutdown=True,
    )

    log.info("Digest worker starting, port={port} seeds={seeds}", port=port, seeds=seeds)

    async with ClusteredActorSystem(
        name=pool_name,
        host=host,
        port=port,
        node_id=worker_node_id(node_id),
        seed_nodes=tuple(seeds) if seeds else None,
        bind_host="0.0.0.0",
        config=config,
        serializer=wire_serializer(),
    ) as system:
        executor_pool: Executor | None = None
        if executor == "process":
            from loky import ProcessPoolExecutor as LokyProcessPoolExecutor

            executor_pool = LokyProcessPoolExecutor(max_workers=concurrency)

        try:
            system.spawn(
                digest_worker(
                    node_id, store or LocalBlockStore(),
                    concurrency=concurrency,
                    buffer_size=buffer_size,
                    executor=executor,
                    executor_pool=executor_pool,
                ),
                WORKER_ACTOR_PATH.lstrip("/"),
            )
            log.info(
                "Digest worker ready (concurrency={c}, executor={ex}, pid={pid})",
                c=concurrency, ex=executor, pid=os.getpid(),
            )

            await asyncio.Event().wait()
        finally:
            if executor_pool is not None:
                executor_pool.shutdown()


def cli() -> None:
    parser = argparse.ArgumentParser(description="blockdigest worker service")
    parser.add_argument("--node-id", type=int, required=True)
    parser.add_argument("--port", type=int, default=DEFAULT_CLUSTER_PORT + 1)
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument(
        "--seeds", type=str, required=True,
        help="Comma-separated coordinator addresses (host:port)",
    )
    parser.add_argument("--pool-name", type=str, default=DEFAULT_POOL_NAME)
    parser.add_argument("--concurrency", type=int, default=1)
    parser.add_argument(
        "--executor", type=str, default="thread",
        choices=["thread", "process"],
        help="Digest backend: thread (default) or process (loky pool)",
    )
    parser.add_argument("--root", type=str, default=None, help="Directory input files resolve against")
    parser.add_argument("--block-size", type=str, default=str(DEFAULT_BLOCK_SIZE))
    parser.add_argument("--buffer-size", type=str, default=str(DEFAULT_BUFFER_SIZE))
    parser.add_argument("--log-level", type=str, default="INFO")
    args = parser.parse_args()

    if args.node_id < 1:
        parser.error("--node-id must be at least 1 (node 0 is the coordinator)")

    setup_logging(LogConfig(level=args.log_level))

    asyncio.run(main(
        args.node_id, args.port, _parse_seeds(args.seeds),
        host=args.host,
        pool_name=args.pool_name,
        concurrency=args.concurrency,
        executor=args.executor,
        store=LocalBlockStore(root=args.root, block_size=parse_size(args.block_size)),
        buffer_size=parse_size(args.buffer_size),
    ))


if __name__ == "__main__":
    cli()
