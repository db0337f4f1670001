"""Local Digest Example.

Digests every 16 MB block of a file on 4 in-process workers and prints one
line per block.

    python examples/01_local_digest.py path/to/big.file
"""

import asyncio
import sys

import blockdigest as bd

if __name__ == "__main__":
    bd.setup_logging(bd.LogConfig(level="INFO"))

    store = bd.LocalBlockStore(block_size=bd.parse_size("16MB"))
    coordinator = bd.Coordinator(bd.LocalFabric(store, workers=4), store)
    results = asyncio.run(coordinator.run(sys.argv[1]))

    failed = [r for r in results if isinstance(r, bd.DigestFailed)]
    print(f"{len(results)} blocks, {len(failed)} failed")
