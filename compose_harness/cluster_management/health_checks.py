"""Ready-made health checks.

I/O errors that are expected while services are still starting (connection refused, tool
reporting an error, ...) are turned into failures, so they are retried until timeout.
"""

import logging

import requests

from compose_harness.cluster_management import containers
from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import health

LOGGER = logging.getLogger(__name__)

_HealthCheckResult = health.HealthCheckResult


def native_health_check() -> health.ClusterCheck:
    """Check that all containers are running and their own health checks (if any) pass."""

    def _check(cluster: containers.Cluster) -> _HealthCheckResult:
        try:
            states = {c.service: c.state() for c in cluster.all_containers()}
        except exceptions.ProcessFailure as err:
            return _HealthCheckResult.failure(f"Failed to get state of containers: {err}")

        not_healthy = {s: str(st) for s, st in states.items() if not st.is_healthy}
        return _HealthCheckResult.from_bool(
            not not_healthy, failure_reason=f"Containers not healthy: {not_healthy}"
        )

    return health.ClusterCheck(check=_check, name="native health checks")


def to_have_all_ports_open() -> health.HealthCheck[containers.Container]:
    def _check(container: containers.Container) -> _HealthCheckResult:
        closed = container.closed_ports()
        return _HealthCheckResult.from_bool(
            not closed,
            failure_reason=f"Ports of '{container.service}' not open: {[str(p) for p in closed]}",
        )

    return _check


def all_containers_up() -> health.HealthCheck[list[containers.Container]]:
    def _check(container_list: list[containers.Container]) -> _HealthCheckResult:
        try:
            down = [c.service for c in container_list if not c.state().is_up]
        except exceptions.ProcessFailure as err:
            return _HealthCheckResult.failure(f"Failed to get state of containers: {err}")
        return _HealthCheckResult.from_bool(
            not down, failure_reason=f"Containers not up: {down}"
        )

    return _check


def _http_result(
    docker_port: containers.DockerPort, url_template: str, require_2xx: bool
) -> _HealthCheckResult:
    url = docker_port.in_format(url_template)
    try:
        response = docker_port.http_get(url_template)
    except requests.RequestException as err:
        return _HealthCheckResult.failure(f"Request to '{url}' failed: {err}")

    if require_2xx and not 200 <= response.status_code < 300:
        return _HealthCheckResult.failure(
            f"Request to '{url}' returned status code {response.status_code}"
        )
    return _HealthCheckResult.success()


def port_is_listening() -> health.HealthCheck[containers.DockerPort]:
    def _check(docker_port: containers.DockerPort) -> _HealthCheckResult:
        return _HealthCheckResult.from_bool(
            docker_port.is_listening_now(),
            failure_reason=f"Nothing is listening on {docker_port.ip}:{docker_port.external_port}",
        )

    return _check


def port_responds_over_http(
    url_template: str, require_2xx: bool = False
) -> health.HealthCheck[containers.DockerPort]:
    def _check(docker_port: containers.DockerPort) -> _HealthCheckResult:
        return _http_result(
            docker_port=docker_port, url_template=url_template, require_2xx=require_2xx
        )

    return _check


def to_respond_over_http(
    internal_port: int, url_template: str
) -> health.HealthCheck[containers.Container]:
    """Check that the container port responds to HTTP GET, regardless of status code.

    The `url_template` can contain `$HOST` and `$EXTERNAL_PORT` placeholders.
    """

    def _check(container: containers.Container) -> _HealthCheckResult:
        return _http_result(
            docker_port=container.port(internal_port),
            url_template=url_template,
            require_2xx=False,
        )

    return _check


def to_respond_2xx_over_http(
    internal_port: int, url_template: str
) -> health.HealthCheck[containers.Container]:
    """Check that the container port responds to HTTP GET with a 2xx status code."""

    def _check(container: containers.Container) -> _HealthCheckResult:
        return _http_result(
            docker_port=container.port(internal_port),
            url_template=url_template,
            require_2xx=True,
        )

    return _check
