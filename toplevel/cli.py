"""
Command line handling for the toplevel supervisor.

Flags toggle which services get started. They are applied in order, so when
both -C and -S are given the last one wins. Unknown flags print the usage text
and are otherwise ignored.
"""

import logging
import sys
from dataclasses import dataclass
from typing import TextIO

logger = logging.getLogger(__name__)

USAGE = """
Usage: {prog} [OPTION]...

OPTIONS:
-C
--client-only    Do not initialize backend service

-S
--server-only    Do not initialize frontend service

--help           Print this message and exit
"""


@dataclass
class CliOptions:
    client_enabled: bool = True
    server_enabled: bool = True


def print_usage(prog: str = "toplevel", out: TextIO = None):
    out = out or sys.stdout
    out.write(USAGE.format(prog=prog))
    out.flush()


def parse_args(argv: list[str], prog: str = "toplevel", out: TextIO = None) -> CliOptions:
    """Parse supervisor flags. Raises SystemExit(0) on --help."""
    options = CliOptions()

    for arg in argv:
        if arg in ("-C", "--client-only"):
            options.client_enabled = True
            options.server_enabled = False
        elif arg in ("-S", "--server-only"):
            options.server_enabled = True
            options.client_enabled = False
        else:
            print_usage(prog, out)
            if arg == "--help":
                raise SystemExit(0)
            logger.warning(f"Unrecognized command line option: {arg}")

    return options
