"""Health checks of a compose cluster and their combinators.

A health check of a target (container, list of containers, docker port, ...) is any callable
that takes the target and returns `HealthCheckResult`. Cluster-level health checks adapt such
callables to the whole cluster: they look up the target in the cluster and delegate to the
wrapped check.

Combinators (`transform`, `named`, `timed`) return new cluster-level health checks, they never
modify the original one.
"""

import dataclasses
import enum
import typing as tp

from compose_harness.cluster_management import containers

if tp.TYPE_CHECKING:
    from compose_harness.cluster_management import stats

T = tp.TypeVar("T")


class Status(enum.StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


@dataclasses.dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of a single evaluation of a health check.

    `FAILURE` means "not ready yet" and is retried, `ERROR` means the check itself is broken
    and is never retried.
    """

    status: Status
    reason: str = ""
    cause: BaseException | None = None

    @classmethod
    def success(cls) -> "HealthCheckResult":
        return cls(status=Status.SUCCESS)

    @classmethod
    def failure(cls, reason: str) -> "HealthCheckResult":
        return cls(status=Status.FAILURE, reason=reason)

    @classmethod
    def error(cls, cause: BaseException) -> "HealthCheckResult":
        return cls(status=Status.ERROR, reason=str(cause), cause=cause)

    @classmethod
    def from_bool(cls, ok: bool, failure_reason: str) -> "HealthCheckResult":
        return cls.success() if ok else cls.failure(failure_reason)

    @property
    def succeeded(self) -> bool:
        return self.status == Status.SUCCESS

    @property
    def failed(self) -> bool:
        return self.status == Status.FAILURE

    @property
    def errored(self) -> bool:
        return self.status == Status.ERROR


HealthCheck = tp.Callable[[T], HealthCheckResult]


class ClusterHealthCheck(tp.Protocol):
    name: str

    def is_cluster_healthy(self, cluster: containers.Cluster) -> HealthCheckResult: ...


@dataclasses.dataclass(frozen=True)
class ServiceHealthCheck:
    """Check a single service container."""

    service: str
    check: HealthCheck[containers.Container]
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"service '{self.service}'")

    def is_cluster_healthy(self, cluster: containers.Cluster) -> HealthCheckResult:
        return self.check(cluster.container(self.service))


@dataclasses.dataclass(frozen=True)
class ServicesHealthCheck:
    """Check containers of several services at once."""

    services: tuple[str, ...]
    check: HealthCheck[list[containers.Container]]
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "services", tuple(self.services))
        if not self.name:
            object.__setattr__(self, "name", f"services {list(self.services)}")

    def is_cluster_healthy(self, cluster: containers.Cluster) -> HealthCheckResult:
        return self.check(cluster.containers(self.services))


@dataclasses.dataclass(frozen=True)
class ClusterCheck:
    """Check the cluster as a whole."""

    check: HealthCheck[containers.Cluster]
    name: str = "cluster"

    def is_cluster_healthy(self, cluster: containers.Cluster) -> HealthCheckResult:
        return self.check(cluster)


@dataclasses.dataclass(frozen=True)
class TransformedHealthCheck(tp.Generic[T]):
    """Map the cluster to another target and check the target."""

    transform: tp.Callable[[containers.Cluster], T]
    check: HealthCheck[T]
    name: str = "transformed"

    def is_cluster_healthy(self, cluster: containers.Cluster) -> HealthCheckResult:
        return self.check(self.transform(cluster))


def service_check(service: str, check: HealthCheck[containers.Container]) -> ServiceHealthCheck:
    return ServiceHealthCheck(service=service, check=check)


def services_check(
    services: tp.Iterable[str], check: HealthCheck[list[containers.Container]]
) -> ServicesHealthCheck:
    return ServicesHealthCheck(services=tuple(services), check=check)


def cluster_check(check: HealthCheck[containers.Cluster]) -> ClusterCheck:
    return ClusterCheck(check=check)


def transform(
    transform_func: tp.Callable[[containers.Cluster], T], check: HealthCheck[T], name: str = ""
) -> TransformedHealthCheck[T]:
    """Adapt a check of an arbitrary target to a check of the cluster."""
    return TransformedHealthCheck(
        transform=transform_func, check=check, name=name or TransformedHealthCheck.name
    )


CH = tp.TypeVar("CH", ServiceHealthCheck, ServicesHealthCheck, ClusterCheck, TransformedHealthCheck)


def named(name: str, check: CH) -> CH:
    """Return copy of the check with a label used in failure reports."""
    return dataclasses.replace(check, name=name)


def timed(recorder: "stats.StatsRecorder", services: tp.Iterable[str], check: CH) -> CH:
    """Return copy of the check that measures how long the services take to become healthy.

    Timers of the services are started on the first evaluation and stopped on the first success.
    """
    service_names = tuple(services)
    inner_check = check.check

    def _timed_check(target: tp.Any) -> HealthCheckResult:
        stopwatches = [recorder.for_service(s) for s in service_names]
        result = inner_check(target)
        if result.succeeded:
            for stopwatch in stopwatches:
                stopwatch.stop()
        return result

    return dataclasses.replace(check, check=_timed_check)
