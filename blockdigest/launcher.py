"""Cluster launcher: stages the job's code and runs the coordinator entry point.

``LocalLauncher`` treats a local directory as the cluster root. Staging
copies the library directory (or a single file) under
``<root>/.blockdigest/<app-id>/lib``; the coordinator then runs as a child
``python -m <entry_point>`` process with that directory first on
``PYTHONPATH``. Its stdout and stderr are inherited, so the coordinator's
report appears on the submitter's console.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable
from uuid import uuid4

from loguru import logger

log = logger.bind(component="launcher")

STAGING_DIR_NAME = ".blockdigest"


@runtime_checkable
class Launcher(Protocol):
    def stage_in(self) -> None: ...

    def submit(self, entry_point: str, arguments: Sequence[str]) -> None: ...

    def wait(self) -> int: ...

    def cleanup(self) -> None: ...


class LocalLauncher:
    """Runs the coordinator as a child process on this machine.

    Args:
        root: Cluster root directory. Created if missing.
        lib_path: Directory or file shipped with the job.
        python: Interpreter for the child. Defaults to the current one.
    """

    def __init__(
        self,
        root: str | os.PathLike[str],
        lib_path: str | os.PathLike[str],
        *,
        python: str | None = None,
    ) -> None:
        self.root = Path(root)
        self.lib_path = Path(lib_path)
        self.python = python or sys.executable
        self.app_id = f"app-{uuid4().hex[:12]}"
        self.staging_dir = self.root / STAGING_DIR_NAME / self.app_id
        self._process: subprocess.Popen[bytes] | None = None

    @property
    def lib_dir(self) -> Path:
        return self.staging_dir / "lib"

    def stage_in(self) -> None:
        if not self.lib_path.exists():
            raise FileNotFoundError(f"Library path not found: {self.lib_path}")

        self.lib_dir.mkdir(parents=True, exist_ok=True)
        if self.lib_path.is_dir():
            shutil.copytree(self.lib_path, self.lib_dir, dirs_exist_ok=True)
        else:
            shutil.copy2(self.lib_path, self.lib_dir / self.lib_path.name)
        log.info("Staged {src} into {dst}", src=self.lib_path, dst=self.lib_dir)

    def _child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = (
            f"{self.lib_dir}{os.pathsep}{existing}" if existing else str(self.lib_dir)
        )
        return env

    def submit(self, entry_point: str, arguments: Sequence[str]) -> None:
        if self._process is not None:
            raise RuntimeError(f"{self.app_id} already submitted")

        cmd = [self.python, "-m", entry_point, *arguments]
        log.info("Submitting {app}: {cmd}", app=self.app_id, cmd=" ".join(cmd))
        self._process = subprocess.Popen(cmd, cwd=self.root, env=self._child_env())

    def wait(self) -> int:
        if self._process is None:
            raise RuntimeError(f"{self.app_id} was never submitted")
        returncode = self._process.wait()
        log.info("{app} exited with status {code}", app=self.app_id, code=returncode)
        return returncode

    def cleanup(self) -> None:
        if self._process is not None and self._process.poll() is None:
            log.warning("Killing still running {app}", app=self.app_id)
            self._process.kill()
            self._process.wait()
        shutil.rmtree(self.staging_dir, ignore_errors=True)
        log.debug("Removed staging dir {dir}", dir=self.staging_dir)
