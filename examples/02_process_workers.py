"""Process Workers Example.

Digests on a loky process pool instead of threads, with two concurrent
digests per worker. Useful when the store is fast and hashing is the
bottleneck.
"""

import asyncio
import sys

import blockdigest as bd
from blockdigest.config import WorkerSettings

if __name__ == "__main__":
    store = bd.LocalBlockStore(block_size=bd.parse_size("64MB"))
    fabric = bd.LocalFabric(
        store,
        workers=4,
        worker=WorkerSettings(executor="process", concurrency=2, buffer_size=bd.parse_size("1MB")),
    )

    results = asyncio.run(bd.Coordinator(fabric, store, collect_timeout=600).run(sys.argv[1]))

    for result in sorted(results, key=lambda r: r.offset):
        print(bd.render(result))
