import time

import pytest

from compose_harness.cluster_management import cluster_wait
from compose_harness.cluster_management import containers
from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import health
from framework_tests import common


@pytest.fixture
def cluster(compose_executor: common.FakeExecutor) -> containers.Cluster:
    compose_executor.list_stdout = common.list_output(common.list_record("db"))
    return common.get_cluster(compose_executor)


class _ScriptedCheck:
    """Cluster health check returning prepared results, the last one repeats forever."""

    def __init__(self, *results: health.HealthCheckResult, name: str = "scripted") -> None:
        self.results = list(results)
        self.name = name
        self.calls = 0

    def is_cluster_healthy(self, cluster: containers.Cluster) -> health.HealthCheckResult:
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def test_success_first_time(cluster: containers.Cluster):
    check = _ScriptedCheck(health.HealthCheckResult.success())
    cluster_wait.ClusterWait(check, timeout=1, poll_interval=0.01).wait_until_ready(cluster)
    assert check.calls == 1


def test_timeout_reports_last_failure(cluster: containers.Cluster):
    check = _ScriptedCheck(health.HealthCheckResult.failure("db not up"), name="database")
    wait = cluster_wait.ClusterWait(check, timeout=2, poll_interval=0.1)

    start = time.monotonic()
    with pytest.raises(exceptions.ClusterWaitTimeoutError) as excinfo:
        wait.wait_until_ready(cluster)
    elapsed = time.monotonic() - start

    assert elapsed >= 2
    assert check.calls > 1
    assert excinfo.value.last_reason == "db not up"
    assert "'database'" in str(excinfo.value)
    assert "2 seconds" in str(excinfo.value)
    assert "db not up" in str(excinfo.value)


def test_error_not_retried(cluster: containers.Cluster):
    cause = RuntimeError("malformed check")
    check = _ScriptedCheck(health.HealthCheckResult.error(cause))

    with pytest.raises(exceptions.FatalHealthCheckError) as excinfo:
        cluster_wait.ClusterWait(check, timeout=5, poll_interval=0.01).wait_until_ready(cluster)

    assert check.calls == 1
    assert excinfo.value.cause is cause


def test_raising_check_is_error(cluster: containers.Cluster):
    def _check(container: containers.Container) -> health.HealthCheckResult:
        msg = "unexpected"
        raise KeyError(msg)

    wait = cluster_wait.ClusterWait(health.service_check("db", _check), timeout=5)
    with pytest.raises(exceptions.FatalHealthCheckError, match="service 'db'"):
        wait.wait_until_ready(cluster)


def test_unknown_service_is_error(cluster: containers.Cluster):
    wait = cluster_wait.ClusterWait(
        health.service_check("cache", lambda c: health.HealthCheckResult.success()), timeout=5
    )
    with pytest.raises(exceptions.FatalHealthCheckError) as excinfo:
        wait.wait_until_ready(cluster)
    assert isinstance(excinfo.value.cause, exceptions.UnknownServiceError)


def test_success_after_failures(cluster: containers.Cluster):
    timeout = 0.3
    became_ready = time.monotonic() + timeout

    def _check(container: containers.Container) -> health.HealthCheckResult:
        return health.HealthCheckResult.from_bool(
            time.monotonic() >= became_ready, failure_reason="db starting"
        )

    start = time.monotonic()
    cluster_wait.ClusterWait(
        health.service_check("db", _check), timeout=5, poll_interval=0.05
    ).wait_until_ready(cluster)
    assert time.monotonic() - start >= timeout


def test_interrupted(cluster: containers.Cluster):
    class _Interrupting:
        name = "interrupting"

        def is_cluster_healthy(self, cluster: containers.Cluster) -> health.HealthCheckResult:
            raise KeyboardInterrupt

    with pytest.raises(exceptions.WaitInterruptedError) as excinfo:
        cluster_wait.ClusterWait(_Interrupting(), timeout=5).wait_until_ready(cluster)
    assert excinfo.value.check_name == "interrupting"
    assert isinstance(excinfo.value, KeyboardInterrupt)


def test_wait_all_first_failure_wins(cluster: containers.Cluster):
    first = _ScriptedCheck(health.HealthCheckResult.success(), name="first")
    failing = _ScriptedCheck(health.HealthCheckResult.failure("nope"), name="failing")
    never = _ScriptedCheck(health.HealthCheckResult.success(), name="never")

    with pytest.raises(exceptions.ClusterWaitTimeoutError, match="'failing'"):
        cluster_wait.wait_all(
            [
                cluster_wait.ClusterWait(c, timeout=0.1, poll_interval=0.01)
                for c in (first, failing, never)
            ],
            cluster,
        )

    assert first.calls == 1
    assert failing.calls >= 1
    assert never.calls == 0
