"""Compose environment and orchestration configuration."""

import os
import pathlib as pl
import tempfile
import urllib.parse

LAUNCH_PATH = pl.Path.cwd()

# Executables of the external tools
DOCKER_BIN = os.environ.get("DOCKER_BIN") or "docker"
COMPOSE_CMD = (os.environ.get("COMPOSE_CMD") or f"{DOCKER_BIN} compose").split()

# Default timeout for the built-in readiness check of all services, in seconds
HEALTH_TIMEOUT = float(os.environ.get("COMPOSE_HEALTH_TIMEOUT") or 120)
if HEALTH_TIMEOUT <= 0:
    msg = f"Invalid COMPOSE_HEALTH_TIMEOUT: {HEALTH_TIMEOUT}"
    raise RuntimeError(msg)

# How long to sleep between two evaluations of a health check, in seconds
POLL_INTERVAL = float(os.environ.get("COMPOSE_POLL_INTERVAL") or 0.5)
if POLL_INTERVAL <= 0:
    msg = f"Invalid COMPOSE_POLL_INTERVAL: {POLL_INTERVAL}"
    raise RuntimeError(msg)

# Number of attempts of `up`, the first attempt included
RETRY_ATTEMPTS = int(os.environ.get("COMPOSE_RETRY_ATTEMPTS") or 2)
if RETRY_ATTEMPTS < 1:
    msg = f"Invalid COMPOSE_RETRY_ATTEMPTS '{RETRY_ATTEMPTS}': must be >= 1"
    raise RuntimeError(msg)

RETRY_DELAY = float(os.environ.get("COMPOSE_RETRY_DELAY") or 5)

SHUTDOWN_STRATEGY = os.environ.get("COMPOSE_SHUTDOWN_STRATEGY") or "kill_down"
if SHUTDOWN_STRATEGY not in ("kill_down", "graceful", "aggressive", "skip"):
    msg = f"Invalid COMPOSE_SHUTDOWN_STRATEGY: {SHUTDOWN_STRATEGY}"
    raise RuntimeError(msg)

# Grace period for the `graceful` shutdown strategy, in seconds
STOP_GRACE = int(os.environ.get("COMPOSE_STOP_GRACE") or 10)

PULL_ON_STARTUP = bool(os.environ.get("COMPOSE_PULL_ON_STARTUP"))
REMOVE_CONFLICTING_CONTAINERS = not os.environ.get("COMPOSE_NO_CONFLICT_REMOVAL")

# Timeout of a single invocation of the external tool, in seconds; 0 means no timeout
COMMAND_TIMEOUT = float(os.environ.get("COMPOSE_COMMAND_TIMEOUT") or 0)

# File for appending stats of every run as JSON lines
STATS_FILE: str | pl.Path = os.environ.get("COMPOSE_STATS_FILE") or ""
if STATS_FILE:
    STATS_FILE = pl.Path(STATS_FILE).expanduser().resolve()

FRAMEWORK_LOG = pl.Path(
    os.environ.get("COMPOSE_FRAMEWORK_LOG")
    or pl.Path(tempfile.gettempdir()) / "compose-harness" / "framework.log"
).expanduser()


def get_docker_host_ip(docker_host: str | None = None) -> str:
    """Return IP address on which the published ports of containers are reachable.

    Local daemons (unix socket, or `DOCKER_HOST` not set) publish ports on localhost.

    >>> get_docker_host_ip("tcp://192.168.99.100:2376")
    '192.168.99.100'
    >>> get_docker_host_ip("unix:///var/run/docker.sock")
    '127.0.0.1'
    """
    if docker_host is None:
        docker_host = os.environ.get("DOCKER_HOST") or ""
    if not docker_host or docker_host.startswith("unix://"):
        return "127.0.0.1"

    parsed = urllib.parse.urlparse(docker_host)
    if not parsed.hostname:
        msg = f"Invalid DOCKER_HOST: {docker_host}"
        raise RuntimeError(msg)
    return parsed.hostname


DOCKER_HOST_IP = get_docker_host_ip()
