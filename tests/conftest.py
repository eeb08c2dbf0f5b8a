"""
Pytest configuration and shared fixtures for toplevel tests.

Child services are real, short-lived Python processes started with the
current interpreter.
"""

import asyncio
import os
import shlex
import sys
import time
from pathlib import Path

import psutil
import pytest

from toplevel.config import Config

project_root = Path(__file__).parent.parent

SLEEP_FOREVER = "import time; time.sleep(60)"
CRASH = "import sys; sys.exit(3)"


def python_command(code: str) -> str:
    """Shell-style command that runs a snippet with the current interpreter."""
    return shlex.join([sys.executable, "-c", code])


def exit_once(marker: Path) -> str:
    """Snippet that exits with status 0 the first time and sleeps afterwards."""
    return (
        "import os, sys, time\n"
        f"marker = {str(marker)!r}\n"
        "if os.path.exists(marker):\n"
        "    time.sleep(60)\n"
        "open(marker, 'w').close()\n"
        "sys.exit(0)\n"
    )


async def wait_for(predicate, timeout: float = 15.0, interval: float = 0.02):
    """Poll a condition from inside the event loop."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


def is_gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


@pytest.fixture(scope="session")
def project_root_path():
    """Return the project root directory path."""
    return project_root


@pytest.fixture
def child_env():
    """Environment in which `python -m toplevel.child` is importable."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(project_root), env.get("PYTHONPATH")]))
    return env


@pytest.fixture
def make_settings(tmp_path):
    """Build a Config rooted in a temporary data directory."""

    def _make(frontend: str = SLEEP_FOREVER, backend: str = SLEEP_FOREVER, **kwargs) -> Config:
        return Config(
            data_dir=tmp_path / "data",
            frontend_command=python_command(frontend),
            backend_command=python_command(backend),
            **kwargs,
        )

    return _make


@pytest.fixture
def reaper():
    """Collect Popen handles and make sure they are dead after the test."""
    processes = []
    yield processes
    for process in processes:
        if process is not None and process.poll() is None:
            process.kill()
            process.wait(timeout=5)
