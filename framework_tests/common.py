import collections
import json
import typing as tp

from compose_harness.cluster_management import cache
from compose_harness.cluster_management import containers
from compose_harness.cluster_management import executors
from compose_harness.cluster_management import invokers

CONFLICT_STDERR = (
    'Error response from daemon: Conflict. The container name "/proj-db-1" is already in use '
    'by container "3f2a9c". You have to remove (or rename) that container to be able to reuse '
    "that name."
)


def hypothesis_settings(max_examples: int = 100) -> tp.Any:
    import hypothesis

    return hypothesis.settings(
        max_examples=max_examples,
        deadline=None,
        suppress_health_check=(
            hypothesis.HealthCheck.too_slow,
            hypothesis.HealthCheck.function_scoped_fixture,
        ),
    )


def list_record(
    service: str,
    state: str = "running",
    health: str = "",
    ports: tp.Iterable[tuple[int, int]] = (),
) -> dict:
    """Return a record of the compose tool container listing.

    The `ports` are pairs of (published port, target port).
    """
    return {
        "Name": f"proj-{service}-1",
        "Service": service,
        "State": state,
        "Health": health,
        "Publishers": [
            {"URL": "0.0.0.0", "TargetPort": t, "PublishedPort": p, "Protocol": "tcp"}
            for p, t in ports
        ],
    }


def list_output(*records: dict) -> str:
    return "\n".join(json.dumps(r) for r in records)


class FakeExecutor:
    """Process executor with scripted results, records every invocation."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.list_stdout = ""
        self._responses: dict[str, collections.deque] = collections.defaultdict(
            collections.deque
        )

    def add_response(
        self, command: str, returncode: int = 0, stdout: str = "", stderr: str = ""
    ) -> None:
        """Queue result for the next invocation of the command."""
        self._responses[command].append((returncode, stdout, stderr))

    def execute(self, command: str, *args: str) -> executors.ProcessResult:
        self.calls.append((command, args))

        if self._responses[command]:
            returncode, stdout, stderr = self._responses[command].popleft()
        else:
            returncode, stdout, stderr = 0, "", ""
            if command == "list":
                stdout = self.list_stdout

        return executors.ProcessResult(
            command=[command, *args], stdout=stdout, stderr=stderr, returncode=returncode
        )

    def count(self, command: str) -> int:
        return sum(1 for c, __ in self.calls if c == command)

    def commands(self) -> list[str]:
        return [c for c, __ in self.calls]


def get_cluster(executor: FakeExecutor, ip: str = "127.0.0.1") -> containers.Cluster:
    invoker = invokers.ComposeInvoker(executor)
    return containers.Cluster(ip=ip, container_cache=cache.ContainerCache(invoker=invoker, ip=ip))
