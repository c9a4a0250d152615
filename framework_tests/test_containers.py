import concurrent.futures
import json
import threading

import pytest

from compose_harness.cluster_management import cache
from compose_harness.cluster_management import containers
from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import invokers
from framework_tests import common


class TestContainerState:
    @pytest.mark.parametrize(
        ("state", "health_status", "expected"),
        (
            ("running", "", containers.ContainerState.HEALTHY),
            ("running", "healthy", containers.ContainerState.HEALTHY),
            ("running", "starting", containers.ContainerState.UNHEALTHY),
            ("running", "unhealthy", containers.ContainerState.UNHEALTHY),
            ("paused", "", containers.ContainerState.PAUSED),
            ("exited", "", containers.ContainerState.DOWN),
            ("created", "", containers.ContainerState.DOWN),
            ("Running", "", containers.ContainerState.HEALTHY),
        ),
    )
    def test_from_status(
        self, state: str, health_status: str, expected: containers.ContainerState
    ):
        assert containers.ContainerState.from_status(state, health_status) == expected

    def test_is_up(self):
        assert containers.ContainerState.HEALTHY.is_up
        assert containers.ContainerState.UNHEALTHY.is_up
        assert not containers.ContainerState.PAUSED.is_up
        assert not containers.ContainerState.DOWN.is_up


class TestParseListOutput:
    def test_json_lines(self):
        out = common.list_output(
            common.list_record("db", ports=[(15432, 5432)]),
            common.list_record("web", state="exited"),
        )
        infos = containers.parse_list_output(out)
        assert [i.service for i in infos] == ["db", "web"]
        assert infos[0].name == "proj-db-1"
        assert infos[0].state == containers.ContainerState.HEALTHY
        assert infos[1].state == containers.ContainerState.DOWN

    def test_json_array(self):
        out = json.dumps([common.list_record("db"), common.list_record("web", state="paused")])
        infos = containers.parse_list_output(out)
        assert [i.state for i in infos] == [
            containers.ContainerState.HEALTHY,
            containers.ContainerState.PAUSED,
        ]

    def test_empty(self):
        assert containers.parse_list_output("") == []
        assert containers.parse_list_output("\n") == []

    def test_missing_publishers(self):
        info = containers.parse_list_output(
            json.dumps({"Service": "db", "State": "running", "Publishers": None})
        )[0]
        assert info.name == "db"
        assert info.publishers == ()


class TestPorts:
    def test_unpublished_skipped(self):
        ports = containers.Ports.from_publishers(
            "10.0.0.1",
            [
                {"TargetPort": 5432, "PublishedPort": 15432},
                {"TargetPort": 6379, "PublishedPort": 0},
                {"TargetPort": 5432, "PublishedPort": 15432},
            ],
        )
        assert len(ports) == 1
        assert ports.get(5432) == containers.DockerPort("10.0.0.1", 15432, 5432)
        assert ports.get(6379) is None

    def test_in_format(self):
        port = containers.DockerPort("10.0.0.1", 8080, 80)
        assert port.in_format("$HOST:$EXTERNAL_PORT") == "10.0.0.1:8080"
        assert str(port) == "10.0.0.1:8080->80"

    def test_is_listening_now(self):
        import socket

        with socket.socket() as server:
            server.bind(("127.0.0.1", 0))
            server.listen()
            port_num = server.getsockname()[1]
            assert containers.DockerPort("127.0.0.1", port_num, 80).is_listening_now()

        assert not containers.DockerPort("127.0.0.1", port_num, 80).is_listening_now()


class TestContainer:
    def test_port(self, compose_executor: common.FakeExecutor):
        compose_executor.list_stdout = common.list_output(
            common.list_record("db", ports=[(15432, 5432)])
        )
        container = common.get_cluster(compose_executor, ip="10.0.0.5").container("db")
        assert container.ip == "10.0.0.5"
        assert container.port(5432).external_port == 15432
        with pytest.raises(ValueError, match="internal port 80"):
            container.port(80)

    def test_state_queried_every_time(self, compose_executor: common.FakeExecutor):
        compose_executor.list_stdout = common.list_output(common.list_record("db"))
        container = common.get_cluster(compose_executor).container("db")

        compose_executor.add_response(
            "list", stdout=common.list_output(common.list_record("db", health="starting"))
        )
        assert container.state() == containers.ContainerState.UNHEALTHY
        assert container.state() == containers.ContainerState.HEALTHY
        assert compose_executor.calls[-1] == ("list", ("--all", "--format", "json", "db"))

    def test_state_container_gone(self, compose_executor: common.FakeExecutor):
        compose_executor.list_stdout = common.list_output(common.list_record("db"))
        container = common.get_cluster(compose_executor).container("db")
        compose_executor.add_response("list", stdout="")
        assert container.state() == containers.ContainerState.DOWN


class TestContainerCache:
    def _get_cache(self, executor: common.FakeExecutor) -> cache.ContainerCache:
        executor.list_stdout = common.list_output(
            common.list_record("db"), common.list_record("web"), common.list_record("cache")
        )
        return cache.ContainerCache(invoker=invokers.ComposeInvoker(executor), ip="127.0.0.1")

    def test_same_container_returned(self, compose_executor: common.FakeExecutor):
        container_cache = self._get_cache(compose_executor)
        assert container_cache.get("db") is container_cache.get("db")
        container_cache.get("web")
        assert compose_executor.count("list") == 1

    def test_unknown_service(self, compose_executor: common.FakeExecutor):
        container_cache = self._get_cache(compose_executor)
        with pytest.raises(exceptions.UnknownServiceError, match="'queue'"):
            container_cache.get("queue")

    def test_all_containers(self, compose_executor: common.FakeExecutor):
        container_cache = self._get_cache(compose_executor)
        assert [c.service for c in container_cache.all_containers()] == ["cache", "db", "web"]
        container_cache.all_containers()
        assert compose_executor.count("list") == 1

    def test_concurrent_get(self, compose_executor: common.FakeExecutor):
        container_cache = self._get_cache(compose_executor)
        barrier = threading.Barrier(8)

        def _get(service: str) -> containers.Container:
            barrier.wait()
            return container_cache.get(service)

        with concurrent.futures.ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(_get, ["db", "web"] * 4))

        assert all(r is results[0] for r in results[::2])
        assert all(r is results[1] for r in results[1::2])
        assert compose_executor.count("list") == 1


def test_cluster_lookups(compose_executor: common.FakeExecutor):
    compose_executor.list_stdout = common.list_output(
        common.list_record("db"), common.list_record("web")
    )
    cluster = common.get_cluster(compose_executor)
    assert [c.service for c in cluster.containers(["web", "db"])] == ["web", "db"]
    assert cluster.container("db") == cluster.all_containers()[0]
