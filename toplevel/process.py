"""
Service slots for supervised child processes.

A slot owns the spawn/respawn lifecycle of one service. Children run as
independent processes; a daemon thread per child waits for it to exit and
hands the exit over to the event loop, where the slot records it with the
failure tracker and either respawns the service or triggers the abort path.
"""

import asyncio
import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Optional

import psutil

from .failures import FailureTracker

logger = logging.getLogger(__name__)


class ServiceIdentity(Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"

    def __str__(self):
        return self.value


@dataclass
class ExitEvent:
    """A child exit, or a failed spawn when returncode is None."""

    identity: ServiceIdentity
    returncode: Optional[int]
    exit_time: float


class ServiceSlot:
    """Supervises one service, respawning it every time it exits."""

    def __init__(
        self,
        identity: ServiceIdentity,
        command: list[str],
        port: int,
        tracker: FailureTracker,
        on_abort: Callable[[], None],
        environment: Mapping[str, str] = None,
        enabled: bool = True,
        logs_dir: Path = None,
    ):
        self.identity = identity
        self.command = list(command)
        self.port = port
        self.environment = dict(environment or {})
        self.enabled = enabled
        self.logs_dir = Path(logs_dir) if logs_dir else None
        self.process: Optional[subprocess.Popen] = None
        self.last_start_time: Optional[float] = None
        self.restart_count = 0

        self._tracker = tracker
        self._on_abort = on_abort
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._halted = False

    @property
    def pid(self) -> Optional[int]:
        if self.process is not None and self.process.poll() is None:
            return self.process.pid
        return None

    def is_running(self) -> bool:
        return self.pid is not None

    def launch_args(self) -> list[str]:
        return self.command + ["--port", str(self.port)]

    def start(self):
        """
        Spawn the service. Must be called from the event loop thread.

        A spawn failure is reported as an immediate exit, so it goes through
        the same tally and respawn logic as a crash.
        """
        if self._halted:
            return

        self._loop = asyncio.get_running_loop()
        if self.is_running():
            logger.warning(f"Service {self.identity} is already running with PID {self.process.pid}")
            return

        logger.info(f"(Re)spawning {self.identity}...")
        self.last_start_time = time.monotonic()

        try:
            process = self._spawn()
        except OSError as e:
            logger.error(f"Failed to start service {self.identity}: {e}")
            self._loop.call_soon(self._handle_exit, None, ExitEvent(self.identity, None, time.monotonic()))
            return

        self.process = process
        waiter = threading.Thread(
            target=self._wait_for_exit,
            args=(process,),
            name=f"{self.identity}-waiter",
            daemon=True,
        )
        waiter.start()
        logger.info(f"Started service {self.identity} with PID {process.pid} on port {self.port}")

    def halt(self):
        """Stop respawning. Any child that is still running is left alone."""
        self._halted = True

    def kill(self):
        """Forcibly kill the running child and everything it spawned."""
        process = self.process
        if process is None or process.poll() is not None:
            return

        try:
            parent = psutil.Process(process.pid)
            children = parent.children(recursive=True)
        except psutil.NoSuchProcess:
            return

        for proc in children + [parent]:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
        logger.warning(f"Killed service {self.identity} (PID {process.pid})")

    def _spawn(self) -> subprocess.Popen:
        if self.logs_dir is None:
            return subprocess.Popen(self.launch_args(), env=self.environment)

        log_dir = self.logs_dir / self.identity.value
        log_dir.mkdir(parents=True, exist_ok=True)
        with open(log_dir / "stdout.log", "ab") as stdout_log, open(log_dir / "stderr.log", "ab") as stderr_log:
            return subprocess.Popen(
                self.launch_args(),
                env=self.environment,
                stdout=stdout_log,
                stderr=stderr_log,
            )

    def _wait_for_exit(self, process: subprocess.Popen):
        """Block until the child exits, then post the exit to the event loop."""
        returncode = process.wait()
        event = ExitEvent(self.identity, returncode, time.monotonic())
        try:
            self._loop.call_soon_threadsafe(self._handle_exit, process, event)
        except RuntimeError:
            # Event loop already closed during shutdown
            logger.debug(f"Dropped exit of {self.identity} (PID {process.pid}) after shutdown")

    def _handle_exit(self, process: Optional[subprocess.Popen], event: ExitEvent):
        if process is not None and self.process is process:
            self.process = None

        logger.info(f"Service {self.identity} exited with status code: {event.returncode}")
        if self._halted:
            return

        if self._tracker.record_exit(self.identity, event.exit_time):
            self._on_abort()
            return

        self.restart_count += 1
        self._loop.call_soon(self.start)
