"""Submitter entry point.

    blockdigest-submit <hdfsRoot> <localLibPath> <inputFile> <workerCount>

Stages ``localLibPath`` under the cluster root, runs the coordinator entry
point (``blockdigest.master``) with ``<inputFile> <workerCount>`` and waits
for it to finish. Any failure is printed as ``blockdigest failed <error>``
with its traceback on stdout. The exit status stays 0 in that case unless
``[submit] strict_exit = true``.
"""

from __future__ import annotations

import argparse
import sys
import traceback
from pathlib import Path

from loguru import logger

from blockdigest.config import resolve_settings
from blockdigest.launcher import Launcher, LocalLauncher
from blockdigest.observability.logging import setup_logging, teardown_logging

log = logger.bind(component="submit")

MASTER_ENTRY_POINT = "blockdigest.master"


def main(
    hdfs_root: str,
    local_lib_path: str,
    input_file: str,
    worker_count: int,
    *,
    launcher: Launcher | None = None,
) -> int:
    """Launch one coordinator run and return its exit status."""
    launcher = launcher or LocalLauncher(hdfs_root, local_lib_path)
    try:
        launcher.stage_in()
        launcher.submit(MASTER_ENTRY_POINT, [input_file, str(worker_count)])
        returncode = launcher.wait()
    finally:
        launcher.cleanup()

    if returncode != 0:
        log.warning("Coordinator exited with status {code}", code=returncode)
    return returncode


def cli(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="blockdigest-submit",
        description="Submit a block digest run to the cluster",
    )
    parser.add_argument("hdfs_root")
    parser.add_argument("local_lib_path")
    parser.add_argument("input_file")
    parser.add_argument("worker_count", type=int)
    args = parser.parse_args(argv)

    strict_exit = False
    handler_ids: list[int] = []
    try:
        settings = resolve_settings(project_dir=Path.cwd())
        strict_exit = settings.submit.strict_exit
        handler_ids = setup_logging(settings.logging)
        main(args.hdfs_root, args.local_lib_path, args.input_file, args.worker_count)
    except Exception as e:
        print(f"blockdigest failed {e}", file=sys.stdout)
        traceback.print_exc(file=sys.stdout)
        return 1 if strict_exit else 0
    finally:
        teardown_logging(handler_ids)
    return 0


if __name__ == "__main__":
    sys.exit(cli())
