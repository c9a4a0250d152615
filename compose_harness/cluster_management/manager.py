"""High-level management of a compose project for a test run.

This module provides the `Orchestrator` class, the interface used by test fixtures. The fixture
calls `start` before the tests, which brings the compose project up and waits until all declared
health checks pass, and `stop` after the tests, which tears the project down and hands timing
stats of the run to the stats consumers.

`stop` is expected to be called even when `start` failed.
"""

import contextlib
import dataclasses
import logging
import re
import typing as tp

from compose_harness.cluster_management import cache
from compose_harness.cluster_management import cluster_wait
from compose_harness.cluster_management import containers
from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import executors
from compose_harness.cluster_management import health
from compose_harness.cluster_management import health_checks
from compose_harness.cluster_management import invokers
from compose_harness.cluster_management import log_collection
from compose_harness.cluster_management import shutdown
from compose_harness.cluster_management import stats
from compose_harness.utils import configuration
from compose_harness.utils import framework_log
from compose_harness.utils import helpers
from compose_harness.utils import types as ttypes

LOGGER = logging.getLogger(__name__)

_PROJECT_NAME_RE = re.compile("^[a-z0-9][a-z0-9_-]*$")


@dataclasses.dataclass(frozen=True)
class ProjectName:
    value: str

    def __post_init__(self) -> None:
        if not _PROJECT_NAME_RE.match(self.value):
            msg = (
                f"Invalid project name '{self.value}': must consist only of lowercase "
                "alphanumeric characters, hyphens and underscores, and start with a letter or digit"
            )
            raise ValueError(msg)

    @classmethod
    def random(cls) -> "ProjectName":
        return cls(helpers.get_rand_str(8))

    @classmethod
    def from_string(cls, name: str) -> "ProjectName":
        """Create project name from arbitrary string by replacing the disallowed characters."""
        return cls(helpers.sanitize_name(name))

    def __str__(self) -> str:
        return self.value


def _get_default_stats_consumers() -> list[stats.StatsConsumer]:
    consumers: list[stats.StatsConsumer] = [stats.LoggingStatsConsumer()]
    if configuration.STATS_FILE:
        consumers.append(stats.JsonFileStatsConsumer(configuration.STATS_FILE))
    return consumers


@dataclasses.dataclass
class OrchestratorConfig:
    compose_files: ttypes.FileTypeList
    project_name: ProjectName = dataclasses.field(default_factory=ProjectName.random)
    workdir: ttypes.FileType = ""
    docker_host_ip: str = configuration.DOCKER_HOST_IP
    health_timeout: float = configuration.HEALTH_TIMEOUT
    poll_interval: float = configuration.POLL_INTERVAL
    retry_attempts: int = configuration.RETRY_ATTEMPTS
    retry_delay: float = configuration.RETRY_DELAY
    shutdown_strategy: shutdown.ShutdownStrategy = dataclasses.field(
        default_factory=shutdown.get_default_strategy
    )
    stop_grace: int = configuration.STOP_GRACE
    pull_on_startup: bool = configuration.PULL_ON_STARTUP
    remove_conflicting_containers: bool = configuration.REMOVE_CONFLICTING_CONTAINERS
    cluster_waits: list[cluster_wait.ClusterWait] = dataclasses.field(default_factory=list)
    stats_consumers: list[stats.StatsConsumer] = dataclasses.field(
        default_factory=_get_default_stats_consumers
    )
    log_collector: log_collection.LogCollector = dataclasses.field(
        default_factory=log_collection.NoopLogCollector
    )


@dataclasses.dataclass(frozen=True)
class _StartStats:
    """Stats known once the start has completed."""

    pull_build_and_start: float
    become_healthy: float


class Orchestrator:
    """Lifecycle management of a single compose project."""

    def __init__(
        self,
        config: OrchestratorConfig,
        compose_executor: executors.ProcessExecutor | None = None,
        docker_executor: executors.ProcessExecutor | None = None,
    ) -> None:
        self.config = config
        self.project_name = str(config.project_name)

        compose_executor = compose_executor or executors.get_compose_executor(
            compose_files=config.compose_files,
            project_name=self.project_name,
            workdir=config.workdir,
        )
        self.docker = invokers.Docker(docker_executor or executors.get_docker_executor())
        self.invoker = invokers.build_pipeline(
            invokers.ComposeInvoker(compose_executor),
            self.docker,
            retry_attempts=config.retry_attempts,
            retry_delay=config.retry_delay,
            remove_conflicting_containers=config.remove_conflicting_containers,
        )

        self.stats_recorder = stats.StatsRecorder()
        self.cluster_waits = list(config.cluster_waits)

        self._cluster: containers.Cluster | None = None
        self._stats_after_start: _StartStats | None = None

    @property
    def cluster(self) -> containers.Cluster:
        if self._cluster is None:
            msg = f"Compose project '{self.project_name}' is not started."
            raise RuntimeError(msg)
        return self._cluster

    def host_networked_port(self, port: int) -> containers.DockerPort:
        return containers.DockerPort(
            ip=self.config.docker_host_ip, external_port=port, internal_port=port
        )

    def _add_wait(
        self, health_check: health.ClusterHealthCheck, timeout: float | None
    ) -> cluster_wait.ClusterWait:
        new_wait = cluster_wait.ClusterWait(
            health_check=health_check,
            timeout=configuration.HEALTH_TIMEOUT if timeout is None else timeout,
        )
        self.cluster_waits.append(new_wait)
        return new_wait

    def waiting_for_service(
        self,
        service: str,
        check: health.HealthCheck[containers.Container],
        timeout: float | None = None,
    ) -> cluster_wait.ClusterWait:
        """Declare a health check of a single service container."""
        return self._add_wait(health.service_check(service, check), timeout)

    def waiting_for_services(
        self,
        services: tp.Iterable[str],
        check: health.HealthCheck[list[containers.Container]],
        timeout: float | None = None,
    ) -> cluster_wait.ClusterWait:
        """Declare a health check of containers of several services."""
        return self._add_wait(health.services_check(services, check), timeout)

    def waiting_for_host_networked_port(
        self,
        port: int,
        check: health.HealthCheck[containers.DockerPort],
        timeout: float | None = None,
    ) -> cluster_wait.ClusterWait:
        """Declare a health check of a port of a service running in host network mode."""
        health_check = health.transform(
            lambda cluster: containers.DockerPort(
                ip=cluster.ip, external_port=port, internal_port=port
            ),
            check,
            name=f"host networked port {port}",
        )
        return self._add_wait(health_check, timeout)

    def _prepare_wait(self, orig_wait: cluster_wait.ClusterWait) -> cluster_wait.ClusterWait:
        """Apply the configured poll interval and attach per-service timers to a wait."""
        if orig_wait.poll_interval is None:
            orig_wait = dataclasses.replace(orig_wait, poll_interval=self.config.poll_interval)

        health_check = orig_wait.health_check
        if isinstance(health_check, health.ServiceHealthCheck):
            services: tp.Iterable[str] = (health_check.service,)
        elif isinstance(health_check, health.ServicesHealthCheck):
            services = health_check.services
        else:
            return orig_wait

        return dataclasses.replace(
            orig_wait,
            health_check=health.timed(self.stats_recorder, services, health_check),
        )

    def _pull_build_and_up(self) -> None:
        if self.config.pull_on_startup:
            LOGGER.info("Pulling images.")
            self.invoker.pull()

        LOGGER.info("Building images.")
        self.invoker.build()

        LOGGER.info("Starting containers.")
        self.invoker.up()

    def _wait_for_services(self) -> None:
        LOGGER.debug("Waiting for services")
        native_wait = cluster_wait.ClusterWait(
            health_check=health_checks.native_health_check(),
            timeout=self.config.health_timeout,
            poll_interval=self.config.poll_interval,
        )
        cluster_wait.wait_all(
            cluster_waits=[native_wait, *(self._prepare_wait(w) for w in self.cluster_waits)],
            cluster=self.cluster,
        )
        LOGGER.debug("Compose project started")
        LOGGER.info(f"Services became healthy in: {self.stats_recorder.get_results()}")

    def start(self) -> None:
        """Bring the compose project up and wait until it is ready."""
        LOGGER.info(f"Starting compose project '{self.project_name}'.")
        # Timers belong to a single run
        self.stats_recorder = stats.StatsRecorder()
        ip = self.config.docker_host_ip
        self._cluster = containers.Cluster(
            ip=ip, container_cache=cache.ContainerCache(invoker=self.invoker, ip=ip)
        )

        try:
            pull_build_and_start = helpers.timed(self._pull_build_and_up)
            self.config.log_collector.start_collecting(self._cluster)
            become_healthy = helpers.timed(self._wait_for_services)
        except BaseException as err:
            framework_log.log_start_failure(project_name=self.project_name, err=err)
            raise

        self._stats_after_start = _StartStats(
            pull_build_and_start=pull_build_and_start, become_healthy=become_healthy
        )

    def stop(self) -> None:
        """Tear the compose project down and deliver stats of the run.

        A failure of the teardown is raised only after the stats were delivered.
        """
        shutdown_failure: exceptions.ShutdownFailure | None = None
        try:
            shutdown_time = self.config.shutdown_strategy.shutdown(
                invoker=self.invoker, docker=self.docker, grace=self.config.stop_grace
            )
        except exceptions.ShutdownFailure as err:
            LOGGER.error(str(err))  # noqa: TRY400
            shutdown_failure = err
            shutdown_time = err.elapsed

        try:
            self.config.log_collector.stop_collecting()
        except Exception:
            LOGGER.exception("Failed to stop collecting logs")

        if self._stats_after_start is not None:
            run_stats = stats.RunStats(
                project_name=self.project_name,
                pull_build_and_start=self._stats_after_start.pull_build_and_start,
                become_healthy=self._stats_after_start.become_healthy,
                services=self.stats_recorder.get_results(),
                shutdown=shutdown_time,
                shutdown_failure=str(shutdown_failure or ""),
            )
            stats.dispatch_stats(run_stats=run_stats, consumers=self.config.stats_consumers)
        else:
            LOGGER.debug("The start didn't complete, not sending stats.")

        self._cluster = None
        self._stats_after_start = None

        if shutdown_failure is not None:
            raise shutdown_failure

    @contextlib.contextmanager
    def running(self) -> tp.Iterator["Orchestrator"]:
        """Start the compose project and stop it on exit - context manager."""
        try:
            self.start()
            yield self
        finally:
            self.stop()

    def exec(
        self, options: invokers.ExecOptions, container_name: str, args: ttypes.ArgsType
    ) -> str:
        return self.invoker.exec(options, container_name, args)

    def run(
        self, options: invokers.RunOptions, container_name: str, args: ttypes.ArgsType
    ) -> str:
        return self.invoker.run(options, container_name, args)

    def logs(self, service: str) -> str:
        return self.invoker.logs(service)
