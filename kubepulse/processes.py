"""
Long-lived kubectl processes: detached port-forwards tracked per workload,
and the blocking interactive shell.
"""

import logging
import subprocess
from typing import Callable, Dict, List, Sequence

from kubepulse.models import ForwardKey

logger = logging.getLogger(__name__)

STOP_TIMEOUT = 2.0


class ProcessSpawnError(RuntimeError):
    """An external process could not be started."""


def spawn_detached(argv: Sequence[str]) -> subprocess.Popen:
    # Own session so terminal signals aimed at the dashboard don't reach it
    return subprocess.Popen(
        list(argv),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


class ProcessRegistry:
    """
    At most one background process per workload. Only the event loop thread
    touches the registry, so there is no locking.
    """

    def __init__(self, spawn: Callable[[Sequence[str]], subprocess.Popen] = spawn_detached):
        self._spawn = spawn
        self._handles: Dict[ForwardKey, subprocess.Popen] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def keys(self) -> List[ForwardKey]:
        return list(self._handles)

    def start(self, key: ForwardKey, argv: Sequence[str]) -> bool:
        """Spawn `argv` for `key`. Returns False if one is already running."""
        if key in self._handles:
            return False
        try:
            handle = self._spawn(argv)
        except OSError as e:
            logger.warning("Failed to start %s: %s", key, e)
            raise ProcessSpawnError(str(e)) from e
        self._handles[key] = handle
        logger.info("Started '%s' for %s (pid %s)", " ".join(argv), key, handle.pid)
        return True

    def stop(self, key: ForwardKey) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        self._terminate(handle)
        logger.info("Stopped process for %s", key)
        return True

    def stop_all(self) -> int:
        stopped = 0
        for key in list(self._handles):
            if self.stop(key):
                stopped += 1
        return stopped

    @staticmethod
    def _terminate(handle: subprocess.Popen) -> None:
        if handle.poll() is not None:
            return
        handle.terminate()
        try:
            handle.wait(timeout=STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            handle.kill()


def open_shell(argv: Sequence[str]) -> int:
    """Run an interactive command attached to the terminal until it exits."""
    logger.info("Opening shell: %s", " ".join(argv))
    try:
        return subprocess.run(list(argv)).returncode
    except OSError as e:
        raise ProcessSpawnError(str(e)) from e
