"""Waiting for a cluster to become ready."""

import dataclasses
import logging
import time
import typing as tp

from compose_harness.cluster_management import containers
from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import health
from compose_harness.utils import configuration

LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ClusterWait:
    """Health check bound to a timeout (in seconds).

    Without `poll_interval` the wait polls every `COMPOSE_POLL_INTERVAL` seconds, unless it is
    run by an orchestrator, which applies its own configured interval.
    """

    health_check: health.ClusterHealthCheck
    timeout: float = configuration.HEALTH_TIMEOUT
    poll_interval: float | None = None

    @property
    def name(self) -> str:
        return self.health_check.name

    def _evaluate(self, cluster: containers.Cluster) -> health.HealthCheckResult:
        try:
            return self.health_check.is_cluster_healthy(cluster)
        except Exception as err:
            return health.HealthCheckResult.error(err)

    def wait_until_ready(self, cluster: containers.Cluster) -> None:
        """Poll the health check until it succeeds.

        Failures are retried until the timeout expires, errors abort the waiting immediately.
        """
        LOGGER.debug(f"Waiting for '{self.name}', timeout {self.timeout} seconds")
        poll_interval = (
            configuration.POLL_INTERVAL if self.poll_interval is None else self.poll_interval
        )
        start = time.monotonic()
        try:
            while True:
                result = self._evaluate(cluster)
                if result.succeeded:
                    LOGGER.debug(f"'{self.name}' succeeded after {time.monotonic() - start} s")
                    return
                if result.errored:
                    raise exceptions.FatalHealthCheckError(
                        check_name=self.name, cause=result.cause
                    ) from result.cause

                elapsed = time.monotonic() - start
                if elapsed >= self.timeout:
                    raise exceptions.ClusterWaitTimeoutError(
                        check_name=self.name, timeout=self.timeout, last_reason=result.reason
                    )
                time.sleep(min(poll_interval, self.timeout - elapsed))
        except KeyboardInterrupt as exc:
            if isinstance(exc, exceptions.WaitInterruptedError):
                raise
            raise exceptions.WaitInterruptedError(check_name=self.name) from exc


def wait_all(cluster_waits: tp.Iterable[ClusterWait], cluster: containers.Cluster) -> None:
    """Run the waits one after another, the first failure stops the waiting."""
    for cluster_wait in cluster_waits:
        cluster_wait.wait_until_ready(cluster)
