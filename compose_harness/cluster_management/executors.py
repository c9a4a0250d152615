"""Execution of the external tools (`docker compose` and `docker`).

Everything above this module works with logical command names (`up`, `list`, `rm`, ...) and
never spawns processes itself.
"""

import dataclasses
import logging
import subprocess
import typing as tp

from compose_harness.cluster_management import exceptions
from compose_harness.utils import configuration
from compose_harness.utils import helpers
from compose_harness.utils import types as ttypes

LOGGER = logging.getLogger(__name__)

COMPOSE_COMMANDS = frozenset(
    ("pull", "build", "up", "down", "kill", "stop", "exec", "run", "logs", "list")
)
DOCKER_COMMANDS = frozenset(("rm",))

# Logical command names that differ from the tool's subcommand
_SUBCOMMANDS = {"list": "ps"}


@dataclasses.dataclass(frozen=True)
class ProcessResult:
    command: list[str]
    stdout: str
    stderr: str
    returncode: int

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    def check(self) -> "ProcessResult":
        """Raise `ProcessFailure` if the process failed."""
        if not self.succeeded:
            raise exceptions.ProcessFailure(
                command=self.command,
                returncode=self.returncode,
                stderr=self.stderr,
                stdout=self.stdout,
            )
        return self


class ProcessExecutor(tp.Protocol):
    def execute(self, command: str, *args: str) -> ProcessResult: ...


class SubprocessExecutor:
    """Run the external tool in a subprocess and capture its output."""

    def __init__(
        self,
        base_cmd: ttypes.ArgsType,
        *,
        commands: tp.Collection[str],
        workdir: ttypes.FileType = "",
        timeout: float = 0,
    ) -> None:
        self.base_cmd = list(base_cmd)
        self.commands = commands
        self.workdir = workdir
        self.timeout = timeout

    def _get_argv(self, command: str, args: tp.Sequence[str]) -> list[str]:
        if command not in self.commands:
            msg = f"Unknown command '{command}', expected one of {sorted(self.commands)}"
            raise ValueError(msg)
        return [*self.base_cmd, _SUBCOMMANDS.get(command, command), *args]

    def execute(self, command: str, *args: str) -> ProcessResult:
        cmd = self._get_argv(command, args)
        cmd_str = " ".join(cmd)
        LOGGER.debug("Running `%s`", cmd_str)

        with subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=self.workdir or None,
        ) as p:
            try:
                stdout, stderr = p.communicate(timeout=self.timeout or None)
            except subprocess.TimeoutExpired:
                p.kill()
                stdout, stderr = p.communicate()
                stderr += f"\nTimed out after {self.timeout} seconds".encode()
            retcode = p.returncode

        return ProcessResult(
            command=cmd,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            returncode=retcode,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({' '.join(self.base_cmd)!r})"


def get_compose_executor(
    compose_files: ttypes.FileTypeList,
    project_name: str,
    *,
    workdir: ttypes.FileType = "",
    timeout: float = configuration.COMMAND_TIMEOUT,
) -> SubprocessExecutor:
    """Return executor of `docker compose` commands bound to the given project."""
    if not compose_files:
        msg = "At least one compose file is needed."
        raise ValueError(msg)

    base_cmd = [
        *configuration.COMPOSE_CMD,
        *helpers.prepend_flag("-f", compose_files),
        "-p",
        project_name,
    ]
    return SubprocessExecutor(
        base_cmd,
        commands=COMPOSE_COMMANDS,
        workdir=workdir or configuration.LAUNCH_PATH,
        timeout=timeout,
    )


def get_docker_executor(*, timeout: float = configuration.COMMAND_TIMEOUT) -> SubprocessExecutor:
    """Return executor of plain `docker` commands."""
    return SubprocessExecutor(
        [configuration.DOCKER_BIN], commands=DOCKER_COMMANDS, timeout=timeout
    )
