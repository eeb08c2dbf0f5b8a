"""
Configuration for the toplevel supervisor.

Ambient settings (paths, logging, launch commands) are loaded from environment
variables with sensible defaults; a .env file is read first. Service ports are
resolved once at startup from hardcoded defaults, an optional config.json and
the command line, each overriding the one before it.
"""

import json
import logging
import os
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .cli import parse_args

load_dotenv()

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"

BACKEND_PORT_KEY = "BACK_SERVPORT"
FRONTEND_PORT_KEY = "FRONT_SERVPORT"

# Used when neither config.json nor the environment provide a port
DEFAULT_BACKEND_PORT = 5001
DEFAULT_FRONTEND_PORT = 8001


def _default_command(role: str) -> str:
    return f"{shlex.quote(sys.executable)} -m toplevel.child {role}"


@dataclass
class Config:
    """Supervisor configuration."""

    # Paths
    data_dir: Path = Path(os.environ.get("TOPLEVEL_DATA_DIR", str(Path.home() / ".toplevel")))
    logs_dir: Path = None
    supervisor_log: Path = None

    # Logging
    log_level: str = os.environ.get("TOPLEVEL_LOG_LEVEL", "INFO")
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    # Services
    frontend_command: str = os.environ.get("FRONTEND_COMMAND", _default_command("frontend"))
    backend_command: str = os.environ.get("BACKEND_COMMAND", _default_command("backend"))
    capture_output: bool = os.environ.get("CAPTURE_OUTPUT", "true").lower() == "true"

    def __post_init__(self):
        """Initialize derived paths."""
        self.data_dir = Path(self.data_dir)
        if self.logs_dir is None:
            self.logs_dir = self.data_dir / "logs"
        if self.supervisor_log is None:
            self.supervisor_log = self.data_dir / "toplevel.log"

    def ensure_dirs(self):
        """Create the data and log directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def command_for(self, role: str) -> list[str]:
        """
        Get the launch command of a service as an argument list.

        Falls back to the placeholder child if the configured command cannot
        be split into arguments.
        """
        command = self.frontend_command if role == "frontend" else self.backend_command
        try:
            return shlex.split(command)
        except ValueError as e:
            logger.error(f"Invalid {role} command {command!r}: {e}. Using the default command")
            return shlex.split(_default_command(role))


def parse_port(value) -> Optional[int]:
    """Parse a TCP port from an int or a decimal string. Returns None if invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        port = value
    elif isinstance(value, str):
        try:
            port = int(value.strip(), 10)
        except ValueError:
            return None
    else:
        return None
    return port if 0 < port < 65536 else None


class PortEnvMap(BaseModel):
    """Names of the environment variables that override each port."""

    model_config = ConfigDict(extra="ignore")

    BACK_SERVPORT: Optional[str] = None
    FRONT_SERVPORT: Optional[str] = None

    @field_validator("BACK_SERVPORT", "FRONT_SERVPORT", mode="before")
    @classmethod
    def _drop_invalid_name(cls, value, info):
        if value is None or isinstance(value, str):
            return value
        logger.warning(f"{CONFIG_FILE_NAME}: ignoring invalid envMap.{info.field_name} {value!r}")
        return None


class PortDefaults(BaseModel):
    """Port values used when the mapped environment variable is unset."""

    model_config = ConfigDict(extra="ignore")

    BACK_SERVPORT: Optional[int] = None
    FRONT_SERVPORT: Optional[int] = None

    @field_validator("BACK_SERVPORT", "FRONT_SERVPORT", mode="before")
    @classmethod
    def _drop_invalid_port(cls, value, info):
        if value is None:
            return None
        port = parse_port(value)
        if port is None:
            logger.warning(f"{CONFIG_FILE_NAME}: ignoring invalid {info.field_name} default {value!r}")
        return port


class ConfigFile(BaseModel):
    """
    Shape of config.json.

    A malformed section is replaced by an empty one, so each port still
    resolves through whatever the rest of the file provides.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    env_map: PortEnvMap = Field(default_factory=PortEnvMap, alias="envMap")
    defaults: PortDefaults = Field(default_factory=PortDefaults)

    @field_validator("env_map", "defaults", mode="before")
    @classmethod
    def _drop_invalid_section(cls, value, info):
        if isinstance(value, dict):
            return value
        if value is not None:
            logger.warning(f"{CONFIG_FILE_NAME}: ignoring invalid section {info.field_name} {value!r}")
        return {}


@dataclass(frozen=True)
class SupervisorConfig:
    """Settings resolved once at startup."""

    client_port: int = DEFAULT_FRONTEND_PORT
    server_port: int = DEFAULT_BACKEND_PORT
    client_enabled: bool = True
    server_enabled: bool = True
    config_dir: Path = None


def default_config_dir(environ: Mapping[str, str] = None) -> Path:
    """Get the directory holding config.json (CONFIG_DIR or the package directory)."""
    environ = os.environ if environ is None else environ
    if environ.get("CONFIG_DIR"):
        return Path(environ["CONFIG_DIR"])
    return Path(__file__).resolve().parent


def load_config_file(config_dir: Path) -> Optional[ConfigFile]:
    """Read config.json from a directory. Returns None if it is missing or invalid."""
    path = Path(config_dir) / CONFIG_FILE_NAME
    try:
        with open(path) as f:
            data = json.load(f)
        return ConfigFile.model_validate(data)
    except (OSError, ValueError, ValidationError) as e:
        logger.info(f"NOT using '{path}': {e}")
        return None


def resolve_port(
    key: str,
    config_file: Optional[ConfigFile],
    environ: Mapping[str, str],
    fallback: int,
) -> int:
    """
    Resolve one port setting.

    The environment variable named by envMap wins if it is set and holds a
    valid port, then the value from defaults, then the hardcoded fallback.
    """
    if config_file is None:
        return fallback

    var_name = getattr(config_file.env_map, key)
    if var_name and environ.get(var_name):
        port = parse_port(environ[var_name])
        if port is not None:
            return port
        logger.warning(f"Ignoring {var_name}={environ[var_name]!r}: not a valid port")

    default = getattr(config_file.defaults, key)
    if default is not None:
        return default
    return fallback


def resolve_config(argv: list[str], environ: Mapping[str, str] = None) -> SupervisorConfig:
    """
    Build the SupervisorConfig.

    config.json is read before the command line is parsed so that flags
    override file settings. Exits with status 0 if --help is given.
    """
    environ = os.environ if environ is None else environ
    config_dir = default_config_dir(environ)
    config_file = load_config_file(config_dir)

    server_port = resolve_port(BACKEND_PORT_KEY, config_file, environ, DEFAULT_BACKEND_PORT)
    client_port = resolve_port(FRONTEND_PORT_KEY, config_file, environ, DEFAULT_FRONTEND_PORT)
    logger.info(f"Using backend TCP port {server_port}, frontend TCP port {client_port}")

    options = parse_args(argv)

    return SupervisorConfig(
        client_port=client_port,
        server_port=server_port,
        client_enabled=options.client_enabled,
        server_enabled=options.server_enabled,
        config_dir=config_dir,
    )


config = Config()
