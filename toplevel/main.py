"""
Entry point for the toplevel supervisor.

Configures logging, resolves the configuration and command line, then runs the
supervisor until a graceful shutdown (exit status 0) or a crash-loop abort
(exit status 255).
"""

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Config, config, resolve_config
from .supervisor import Supervisor

logger = logging.getLogger(__name__)


def configure_logging(role: str, settings: Config = None, log_file: Path = None):
    """
    Configure the root logger for a process.

    Every record is tagged with the process role and PID. Records go to the
    console, and to a rotating log file when one is given.
    """
    settings = settings or config
    log_formatter = logging.Formatter(
        f"%(asctime)s - {role}(%(process)d) - %(name)s - %(levelname)s - %(message)s"
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    handlers = [console_handler]

    # Rotating file handler (auto-compaction)
    if log_file is not None:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        )
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    level = logging.getLevelName(settings.log_level.upper())
    valid_level = isinstance(level, int)

    logging.basicConfig(
        level=level if valid_level else logging.INFO,
        handlers=handlers,
        force=True,
    )
    if not valid_level:
        logger.warning(f"Unknown log level {settings.log_level!r}, using INFO")


def main(argv: list[str] = None):
    """Run the supervisor and exit with its status."""
    argv = sys.argv[1:] if argv is None else argv

    config.ensure_dirs()
    configure_logging("toplevel", config, config.supervisor_log)
    logger.info(f"Working directory: {Path.cwd()}")

    supervisor_config = resolve_config(argv)
    supervisor = Supervisor(supervisor_config, config)
    status = asyncio.run(supervisor.run())
    sys.exit(status)


if __name__ == "__main__":
    main()
