"""Model of containers of a compose project and of their published ports."""

import dataclasses
import enum
import json
import logging
import socket
import typing as tp

import requests

from compose_harness.utils import http_client

if tp.TYPE_CHECKING:
    from compose_harness.cluster_management import cache as cache_mod

LOGGER = logging.getLogger(__name__)

HOST_PLACEHOLDER = "$HOST"
EXTERNAL_PORT_PLACEHOLDER = "$EXTERNAL_PORT"


class ContainerState(enum.StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    PAUSED = "paused"
    DOWN = "down"

    @property
    def is_up(self) -> bool:
        return self in (ContainerState.HEALTHY, ContainerState.UNHEALTHY)

    @property
    def is_healthy(self) -> bool:
        """Container is running and its health check passes, or it has no health check."""
        return self == ContainerState.HEALTHY

    @classmethod
    def from_status(cls, state: str, health: str = "") -> "ContainerState":
        """Return state from the "State" and "Health" fields reported by the compose tool."""
        state = state.lower()
        if state == "paused":
            return cls.PAUSED
        if state != "running":
            return cls.DOWN
        if health in ("", "healthy"):
            return cls.HEALTHY
        return cls.UNHEALTHY


@dataclasses.dataclass(frozen=True, order=True)
class DockerPort:
    ip: str
    external_port: int
    internal_port: int

    def is_listening_now(self, timeout: float = 0.5) -> bool:
        """Check that something accepts TCP connections on the port."""
        try:
            with socket.create_connection((self.ip, self.external_port), timeout=timeout):
                return True
        except OSError:
            return False

    def in_format(self, template: str) -> str:
        """Substitute `$HOST` and `$EXTERNAL_PORT` in the template.

        >>> DockerPort("10.0.0.1", 8080, 80).in_format("http://$HOST:$EXTERNAL_PORT/health")
        'http://10.0.0.1:8080/health'
        """
        return template.replace(HOST_PLACEHOLDER, self.ip).replace(
            EXTERNAL_PORT_PLACEHOLDER, str(self.external_port)
        )

    def http_get(self, url_template: str, timeout: float = 2) -> requests.Response:
        """Send GET request to the URL given by the template."""
        url = self.in_format(url_template)
        return http_client.get_session().get(url, timeout=timeout)

    def __str__(self) -> str:
        return f"{self.ip}:{self.external_port}->{self.internal_port}"


@dataclasses.dataclass(frozen=True)
class Ports:
    ports: tuple[DockerPort, ...] = ()

    def __iter__(self) -> tp.Iterator[DockerPort]:
        return iter(self.ports)

    def __len__(self) -> int:
        return len(self.ports)

    def get(self, internal_port: int) -> DockerPort | None:
        for p in self.ports:
            if p.internal_port == internal_port:
                return p
        return None

    @classmethod
    def from_publishers(cls, ip: str, publishers: tp.Iterable[dict]) -> "Ports":
        """Create ports from the "Publishers" records of the compose tool listing.

        Ports that are exposed but not published (published port 0) are skipped.
        """
        ports = {
            DockerPort(
                ip=ip,
                external_port=int(p["PublishedPort"]),
                internal_port=int(p["TargetPort"]),
            )
            for p in publishers
            if p.get("PublishedPort")
        }
        return cls(ports=tuple(sorted(ports)))


@dataclasses.dataclass(frozen=True)
class ContainerInfo:
    """Single record of the compose tool container listing."""

    service: str
    name: str
    state: ContainerState
    publishers: tuple[dict, ...] = ()


def parse_list_output(output: str) -> list[ContainerInfo]:
    """Parse JSON output of the compose tool container listing.

    Newer versions of the tool print one JSON object per line, older ones a single JSON array.
    """
    output = output.strip()
    if not output:
        return []

    if output.startswith("["):
        records = json.loads(output)
    else:
        records = [json.loads(line) for line in output.splitlines() if line.strip()]

    return [
        ContainerInfo(
            service=r["Service"],
            name=r.get("Name") or r["Service"],
            state=ContainerState.from_status(
                state=r.get("State") or "", health=r.get("Health") or ""
            ),
            publishers=tuple(r.get("Publishers") or ()),
        )
        for r in records
    ]


@dataclasses.dataclass(frozen=True)
class Container:
    """Snapshot of a single service container.

    Port bindings are resolved when the container is looked up and don't change afterwards.
    The state is queried anew every time.
    """

    service: str
    name: str
    ip: str
    ports: Ports
    invoker: tp.Any = dataclasses.field(default=None, compare=False, repr=False)

    @classmethod
    def from_info(cls, info: ContainerInfo, ip: str, invoker: tp.Any) -> "Container":
        return cls(
            service=info.service,
            name=info.name,
            ip=ip,
            ports=Ports.from_publishers(ip=ip, publishers=info.publishers),
            invoker=invoker,
        )

    def port(self, internal_port: int) -> DockerPort:
        docker_port = self.ports.get(internal_port)
        if docker_port is None:
            msg = f"No published port for internal port {internal_port} of '{self.service}'."
            raise ValueError(msg)
        return docker_port

    def state(self) -> ContainerState:
        """Query current state of the container."""
        for info in self.invoker.list_containers(self.service):
            if info.service == self.service:
                return info.state
        return ContainerState.DOWN

    def closed_ports(self) -> list[DockerPort]:
        """Return published ports where nothing is listening."""
        return [p for p in self.ports if not p.is_listening_now()]


@dataclasses.dataclass(frozen=True)
class Cluster:
    """View of all containers of a compose project.

    All lookups are delegated to the container cache.
    """

    ip: str
    container_cache: "cache_mod.ContainerCache"

    def container(self, name: str) -> Container:
        return self.container_cache.get(name)

    def containers(self, names: tp.Iterable[str]) -> list[Container]:
        return [self.container_cache.get(n) for n in names]

    def all_containers(self) -> list[Container]:
        return self.container_cache.all_containers()
