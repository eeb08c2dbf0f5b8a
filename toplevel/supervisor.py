"""
Top-level supervisor for the frontend and backend services.

Owns both service slots and the failure tracker they share, installs the
SIGINT/SIGTERM handlers and implements the two ways out: a graceful shutdown
that leaves children to their own signal handling, and an abort that kills
every child once a crash loop is detected.
"""

import asyncio
import logging
import os
import signal
from typing import Mapping, Optional

from .config import Config, SupervisorConfig, config as default_settings
from .failures import FailureTracker
from .process import ServiceIdentity, ServiceSlot

logger = logging.getLogger(__name__)

EXIT_OK = 0
# Tells an outer service manager that this tree failed and needs attention
EXIT_ABORT = 255

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Supervisor:
    """Runs the frontend and backend slots until shutdown or abort."""

    def __init__(
        self,
        supervisor_config: SupervisorConfig,
        settings: Config = None,
        environ: Mapping[str, str] = None,
    ):
        self.config = supervisor_config
        self.settings = settings or default_settings
        self.tracker = FailureTracker()

        environ = os.environ if environ is None else environ
        logs_dir = self.settings.logs_dir if self.settings.capture_output else None

        self.slots: dict[ServiceIdentity, ServiceSlot] = {
            ServiceIdentity.FRONTEND: ServiceSlot(
                ServiceIdentity.FRONTEND,
                command=self.settings.command_for(ServiceIdentity.FRONTEND.value),
                port=supervisor_config.client_port,
                tracker=self.tracker,
                on_abort=self.panic_abort,
                environment=dict(environ),
                enabled=supervisor_config.client_enabled,
                logs_dir=logs_dir,
            ),
            ServiceIdentity.BACKEND: ServiceSlot(
                ServiceIdentity.BACKEND,
                command=self.settings.command_for(ServiceIdentity.BACKEND.value),
                port=supervisor_config.server_port,
                tracker=self.tracker,
                on_abort=self.panic_abort,
                environment=dict(environ),
                enabled=supervisor_config.server_enabled,
                logs_dir=logs_dir,
            ),
        }

        self._exit_status: Optional[asyncio.Future] = None

    @property
    def frontend(self) -> ServiceSlot:
        return self.slots[ServiceIdentity.FRONTEND]

    @property
    def backend(self) -> ServiceSlot:
        return self.slots[ServiceIdentity.BACKEND]

    def start(self):
        """Start every enabled slot."""
        for slot in self.slots.values():
            if slot.enabled:
                slot.start()
            else:
                logger.info(f"Service {slot.identity} is disabled, not starting")

    async def run(self) -> int:
        """Supervise until a shutdown path fires. Returns the process exit status."""
        loop = asyncio.get_running_loop()
        self._exit_status = loop.create_future()

        for signo in HANDLED_SIGNALS:
            loop.add_signal_handler(signo, self.graceful_shutdown, signo.name)

        try:
            logger.info("Starting supervisor...")
            self.start()
            return await self._exit_status
        finally:
            for signo in HANDLED_SIGNALS:
                loop.remove_signal_handler(signo)

    def graceful_shutdown(self, signame: str = "shutdown"):
        """Exit cleanly. Children receive their own signal and are not killed here."""
        if self._finished():
            return
        logger.info(f"Process received {signame} signal. Attempting graceful shutdown...")
        for slot in self.slots.values():
            slot.halt()
        self._finish(EXIT_OK)

    def panic_abort(self):
        """Kill every running child and exit with EXIT_ABORT."""
        if self._finished():
            return
        logger.critical("Abnormal abort: shutting down...")
        for slot in self.slots.values():
            slot.halt()
        for slot in self.slots.values():
            slot.kill()
        self._finish(EXIT_ABORT)

    def _finished(self) -> bool:
        return self._exit_status is not None and self._exit_status.done()

    def _finish(self, status: int):
        if self._exit_status is not None:
            self._exit_status.set_result(status)
