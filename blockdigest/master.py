"""Coordinator entry point.

    blockdigest-master <inputFile> <workerCount>

Digests every block of ``inputFile`` on ``workerCount`` workers and prints
one line per block. Runs in-process unless ``[cluster] enabled = true``, in
which case it becomes the seed of a cluster that ``workerCount``
``blockdigest-worker`` processes join.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import TextIO

from loguru import logger

from blockdigest.config import Settings, resolve_settings
from blockdigest.coordinator import Coordinator
from blockdigest.fabric import ClusterFabric, Fabric, FabricConfig, LocalFabric
from blockdigest.observability.logging import setup_logging, teardown_logging
from blockdigest.results import DigestResult
from blockdigest.store import LocalBlockStore

log = logger.bind(component="master")


def build_store(settings: Settings) -> LocalBlockStore:
    return LocalBlockStore(
        root=settings.store.root,
        block_size=settings.store.block_size,
        replication=settings.store.replication,
    )


def build_fabric(settings: Settings, store: LocalBlockStore, worker_count: int) -> Fabric:
    config = FabricConfig(is_master=True, pool_name=settings.coordinator.pool_name)
    if settings.cluster.enabled:
        return ClusterFabric(
            host=settings.cluster.host,
            port=settings.cluster.port,
            workers=worker_count,
            worker_slots=settings.worker.concurrency,
            discovery_timeout=settings.cluster.discovery_timeout,
            config=config,
        )
    return LocalFabric(store, workers=worker_count, worker=settings.worker, config=config)


async def run(
    input_file: str,
    worker_count: int,
    *,
    settings: Settings | None = None,
    out: TextIO | None = None,
) -> tuple[DigestResult, ...]:
    settings = settings or resolve_settings()
    store = build_store(settings)
    coordinator = Coordinator(
        build_fabric(settings, store, worker_count),
        store,
        collect_timeout=settings.coordinator.collect_timeout,
        shutdown_timeout=settings.coordinator.shutdown_timeout,
        out=out,
    )
    return await coordinator.run(input_file)


def main(
    input_file: str,
    worker_count: int,
    *,
    settings: Settings | None = None,
) -> tuple[DigestResult, ...]:
    """Digest ``input_file`` with ``worker_count`` workers and print the report."""
    if worker_count < 1:
        raise ValueError(f"worker_count must be at least 1, got {worker_count}")
    return asyncio.run(run(input_file, worker_count, settings=settings))


def cli() -> None:
    parser = argparse.ArgumentParser(
        prog="blockdigest-master",
        description="Digest every block of a file on a pool of workers",
    )
    parser.add_argument("input_file")
    parser.add_argument("worker_count", type=int)
    args = parser.parse_args()

    if args.worker_count < 1:
        parser.error("workerCount must be at least 1")

    settings = resolve_settings(project_dir=Path.cwd())
    handler_ids = setup_logging(settings.logging)
    try:
        main(args.input_file, args.worker_count, settings=settings)
    finally:
        teardown_logging(handler_ids)


if __name__ == "__main__":
    cli()
