import pytest

from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import invokers
from compose_harness.cluster_management import shutdown
from framework_tests import common


def _shutdown(
    strategy: shutdown.ShutdownStrategy,
    compose_executor: common.FakeExecutor,
    docker_executor: common.FakeExecutor,
) -> float:
    return strategy.shutdown(
        invoker=invokers.ComposeInvoker(compose_executor),
        docker=invokers.Docker(docker_executor),
        grace=3,
    )


@pytest.mark.parametrize(
    ("strategy", "expected"),
    (
        (shutdown.ShutdownStrategy.KILL_DOWN, ["kill", "down"]),
        (shutdown.ShutdownStrategy.GRACEFUL, ["stop", "down"]),
        (shutdown.ShutdownStrategy.SKIP, []),
    ),
)
def test_strategy_commands(
    strategy: shutdown.ShutdownStrategy,
    expected: list[str],
    compose_executor: common.FakeExecutor,
    docker_executor: common.FakeExecutor,
):
    elapsed = _shutdown(strategy, compose_executor, docker_executor)
    assert compose_executor.commands() == expected
    assert docker_executor.calls == []
    assert elapsed >= 0


def test_graceful_uses_grace(
    compose_executor: common.FakeExecutor, docker_executor: common.FakeExecutor
):
    _shutdown(shutdown.ShutdownStrategy.GRACEFUL, compose_executor, docker_executor)
    assert compose_executor.calls[0] == ("stop", ("--timeout", "3"))


def test_aggressive(compose_executor: common.FakeExecutor, docker_executor: common.FakeExecutor):
    compose_executor.list_stdout = common.list_output(
        common.list_record("db"), common.list_record("web", state="exited")
    )
    _shutdown(shutdown.ShutdownStrategy.AGGRESSIVE, compose_executor, docker_executor)
    assert docker_executor.calls == [("rm", ("-f", "proj-db-1", "proj-web-1"))]
    assert compose_executor.commands() == ["list", "down"]


def test_failure(compose_executor: common.FakeExecutor, docker_executor: common.FakeExecutor):
    compose_executor.add_response("kill", returncode=1, stderr="cannot kill container")
    with pytest.raises(exceptions.ShutdownFailure, match="cannot kill container") as excinfo:
        _shutdown(shutdown.ShutdownStrategy.KILL_DOWN, compose_executor, docker_executor)
    assert isinstance(excinfo.value.__cause__, exceptions.ProcessFailure)
    assert excinfo.value.elapsed >= 0
    assert compose_executor.commands() == ["kill"]


def test_default_strategy():
    assert shutdown.get_default_strategy() in set(shutdown.ShutdownStrategy)
