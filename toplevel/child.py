"""
Placeholder child service.

Implements the command line and signal contract the supervisor expects from
its children: `--port`/`-P` selects the listen port, SIGINT/SIGTERM shut the
process down with status 0. The service itself does nothing but wait.

Usage: python -m toplevel.child <frontend|backend> [--port N]
"""

import asyncio
import logging
import signal
import sys
from typing import TextIO

from .config import DEFAULT_BACKEND_PORT, DEFAULT_FRONTEND_PORT
from .main import configure_logging

logger = logging.getLogger(__name__)

EXIT_USAGE = 255

DEFAULT_PORTS = {"frontend": DEFAULT_FRONTEND_PORT, "backend": DEFAULT_BACKEND_PORT}

CHILD_USAGE = """
Usage: {prog} [OPTIONS]
OPTIONS:
\t--port, -P      Port to listen on
"""


def parse_child_args(
    argv: list[str],
    default_port: int = None,
    prog: str = "toplevel.child",
    out: TextIO = None,
    err: TextIO = None,
) -> int:
    """
    Parse child service flags and return the port.

    A port flag without a value, or with a non-numeric value, writes an error
    to stderr and exits with status 255. --help/-h prints usage and exits 0.
    Other unknown options print usage and are ignored.
    """
    out = out or sys.stdout
    err = err or sys.stderr
    port = default_port

    args = iter(argv)
    for opt in args:
        if opt in ("--port", "-P"):
            value = next(args, None)
            if value is None:
                err.write(f"Option {opt} expects an argument.\n")
                raise SystemExit(EXIT_USAGE)
            try:
                port = int(value, 10)
            except ValueError:
                err.write(f"Option {opt} expects a numeric argument, got {value!r}.\n")
                raise SystemExit(EXIT_USAGE) from None
        else:
            out.write(CHILD_USAGE.format(prog=prog))
            if opt in ("--help", "-h"):
                raise SystemExit(0)
            logger.warning(f"Unrecognized command line option: {opt}")

    return port


async def serve(role: str, port: int):
    """Wait until SIGINT or SIGTERM arrives."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def graceful_shutdown(signame: str):
        logger.info(f"Process received {signame} signal. Attempting graceful shutdown...")
        stop.set()

    for signo in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signo, graceful_shutdown, signo.name)

    logger.info(f"{role} service started on port {port}")
    await stop.wait()


def main(argv: list[str] = None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] not in DEFAULT_PORTS:
        sys.stderr.write(f"Expected a service role, one of: {', '.join(DEFAULT_PORTS)}\n")
        sys.exit(EXIT_USAGE)

    role = argv[0]
    configure_logging(role)
    logger.info("Service starting...")

    port = parse_child_args(argv[1:], DEFAULT_PORTS[role], prog=f"toplevel.child {role}")
    asyncio.run(serve(role, port))
    sys.exit(0)


if __name__ == "__main__":
    main()
