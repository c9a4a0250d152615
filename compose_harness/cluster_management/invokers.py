"""Invocation pipeline of the compose tool.

The base `ComposeInvoker` issues the logical operations through a process executor. Decorators
wrap an inner invoker and add behavior to `up`:

* `ConflictRemovingInvoker` removes containers whose names block the startup and tries once more,
* `RetryingInvoker` repeats the whole (possibly conflict-removing) `up`.

The pipeline is assembled by `build_pipeline`, the conflict-removing decorator always sits
directly on the base invoker so every retry attempt benefits from the conflict removal.
"""

import dataclasses
import logging
import re
import time
import typing as tp

from compose_harness.cluster_management import containers
from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import executors
from compose_harness.utils import configuration
from compose_harness.utils import helpers
from compose_harness.utils import types as ttypes

LOGGER = logging.getLogger(__name__)

NAME_CONFLICT_RE = re.compile(r'name "/?([^"]+)" is already in use')


def _env_args(env: ttypes.EnvType) -> list[str]:
    return helpers.prepend_flag("-e", (f"{k}={v}" for k, v in env.items()))


@dataclasses.dataclass(frozen=True)
class ExecOptions:
    """Options of `exec`. TTY allocation is always disabled."""

    detach: bool = False
    privileged: bool = False
    user: str = ""
    workdir: str = ""
    index: int | None = None
    env: ttypes.EnvType = dataclasses.field(default_factory=dict)

    def to_args(self) -> list[str]:
        args = ["-T"]
        if self.detach:
            args.append("--detach")
        if self.privileged:
            args.append("--privileged")
        if self.user:
            args.extend(("--user", self.user))
        if self.workdir:
            args.extend(("--workdir", self.workdir))
        if self.index is not None:
            args.extend(("--index", str(self.index)))
        args.extend(_env_args(self.env))
        return args


@dataclasses.dataclass(frozen=True)
class RunOptions:
    """Options of `run`. TTY allocation is always disabled."""

    remove: bool = True
    detach: bool = False
    no_deps: bool = False
    user: str = ""
    entrypoint: str = ""
    workdir: str = ""
    env: ttypes.EnvType = dataclasses.field(default_factory=dict)

    def to_args(self) -> list[str]:
        args = ["-T"]
        if self.remove:
            args.append("--rm")
        if self.detach:
            args.append("--detach")
        if self.no_deps:
            args.append("--no-deps")
        if self.user:
            args.extend(("--user", self.user))
        if self.entrypoint:
            args.extend(("--entrypoint", self.entrypoint))
        if self.workdir:
            args.extend(("--workdir", self.workdir))
        args.extend(_env_args(self.env))
        return args


class Invoker(tp.Protocol):
    def pull(self) -> None: ...

    def build(self) -> None: ...

    def up(self) -> None: ...

    def down(self) -> None: ...

    def kill(self) -> None: ...

    def stop(self, grace: int) -> None: ...

    def exec(self, options: ExecOptions, container_name: str, args: ttypes.ArgsType) -> str: ...

    def run(self, options: RunOptions, container_name: str, args: ttypes.ArgsType) -> str: ...

    def logs(self, service: str) -> str: ...

    def list_containers(self, *services: str) -> list[containers.ContainerInfo]: ...


class Docker:
    """Operations on containers issued through the plain `docker` tool."""

    def __init__(self, executor: executors.ProcessExecutor) -> None:
        self.executor = executor

    def rm(self, *container_names: str) -> None:
        """Force-remove containers."""
        if not container_names:
            return
        LOGGER.debug(f"Removing containers {container_names}")
        self.executor.execute("rm", "-f", *container_names).check()


class ComposeInvoker:
    """Base invoker, translates operations to commands of the compose tool."""

    def __init__(self, executor: executors.ProcessExecutor) -> None:
        self.executor = executor

    def _execute(self, command: str, *args: str) -> str:
        return self.executor.execute(command, *args).check().stdout

    def pull(self) -> None:
        self._execute("pull")

    def build(self) -> None:
        self._execute("build")

    def up(self) -> None:
        self._execute("up", "--detach")

    def down(self) -> None:
        self._execute("down", "--volumes", "--remove-orphans")

    def kill(self) -> None:
        self._execute("kill")

    def stop(self, grace: int) -> None:
        self._execute("stop", "--timeout", str(grace))

    def exec(self, options: ExecOptions, container_name: str, args: ttypes.ArgsType) -> str:
        return self._execute("exec", *options.to_args(), container_name, *args)

    def run(self, options: RunOptions, container_name: str, args: ttypes.ArgsType) -> str:
        return self._execute("run", *options.to_args(), container_name, *args)

    def logs(self, service: str) -> str:
        return self._execute("logs", "--no-color", service)

    def list_containers(self, *services: str) -> list[containers.ContainerInfo]:
        out = self._execute("list", "--all", "--format", "json", *services)
        return containers.parse_list_output(out)


class InvokerDecorator:
    """Invoker that delegates every operation to the wrapped invoker."""

    def __init__(self, inner: Invoker) -> None:
        self.inner = inner

    def pull(self) -> None:
        self.inner.pull()

    def build(self) -> None:
        self.inner.build()

    def up(self) -> None:
        self.inner.up()

    def down(self) -> None:
        self.inner.down()

    def kill(self) -> None:
        self.inner.kill()

    def stop(self, grace: int) -> None:
        self.inner.stop(grace)

    def exec(self, options: ExecOptions, container_name: str, args: ttypes.ArgsType) -> str:
        return self.inner.exec(options, container_name, args)

    def run(self, options: RunOptions, container_name: str, args: ttypes.ArgsType) -> str:
        return self.inner.run(options, container_name, args)

    def logs(self, service: str) -> str:
        return self.inner.logs(service)

    def list_containers(self, *services: str) -> list[containers.ContainerInfo]:
        return self.inner.list_containers(*services)


def get_conflicting_container_names(output: str) -> list[str]:
    """Return names of containers that blocked `up` because of a name conflict.

    >>> get_conflicting_container_names(
    ...     'Conflict. The container name "/proj-db-1" is already in use by container "3f2a".'
    ... )
    ['proj-db-1']
    """
    return list(dict.fromkeys(NAME_CONFLICT_RE.findall(output)))


class ConflictRemovingInvoker(InvokerDecorator):
    """Remove containers with conflicting names when `up` fails, then retry `up` once."""

    def __init__(self, inner: Invoker, docker: Docker) -> None:
        super().__init__(inner)
        self.docker = docker

    def _remove_containers(self, names: list[str]) -> None:
        try:
            self.docker.rm(*names)
        except exceptions.ProcessFailure as err:
            msg = f"Failed to remove conflicting containers {names}: {err.stderr}"
            raise exceptions.ConflictResolutionFailure(msg) from err

    def up(self) -> None:
        try:
            self.inner.up()
        except exceptions.ProcessFailure as err:
            conflicting_names = get_conflicting_container_names(f"{err.stderr}\n{err.stdout}")
            if not conflicting_names:
                raise
        else:
            return

        LOGGER.warning(
            f"`up` failed due to container name conflicts {conflicting_names}, "
            "removing the containers and retrying."
        )
        self._remove_containers(conflicting_names)
        self.inner.up()


class RetryingInvoker(InvokerDecorator):
    """Repeat failed `up` until the number of attempts is exhausted."""

    def __init__(
        self,
        inner: Invoker,
        attempts: int = configuration.RETRY_ATTEMPTS,
        delay: float = configuration.RETRY_DELAY,
    ) -> None:
        if attempts < 1:
            msg = f"Invalid number of attempts '{attempts}': must be >= 1"
            raise ValueError(msg)
        super().__init__(inner)
        self.attempts = attempts
        self.delay = delay

    def up(self) -> None:
        for attempt in range(1, self.attempts + 1):
            try:
                self.inner.up()
            except exceptions.ProcessFailure as err:
                if attempt >= self.attempts:
                    raise
                LOGGER.warning(f"`up` failed (attempt {attempt}/{self.attempts}), retrying: {err}")
                time.sleep(self.delay)
            else:
                return


def build_pipeline(
    base: Invoker,
    docker: Docker,
    *,
    retry_attempts: int = configuration.RETRY_ATTEMPTS,
    retry_delay: float = configuration.RETRY_DELAY,
    remove_conflicting_containers: bool = configuration.REMOVE_CONFLICTING_CONTAINERS,
) -> RetryingInvoker:
    """Assemble the invocation pipeline around the base invoker."""
    invoker = base
    if remove_conflicting_containers:
        invoker = ConflictRemovingInvoker(inner=invoker, docker=docker)
    return RetryingInvoker(inner=invoker, attempts=retry_attempts, delay=retry_delay)
