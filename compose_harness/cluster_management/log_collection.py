import logging
import typing as tp

from compose_harness.cluster_management import containers

LOGGER = logging.getLogger(__name__)


class LogCollector(tp.Protocol):
    """Receives output of the services for the duration of a run."""

    def start_collecting(self, cluster: containers.Cluster) -> None: ...

    def stop_collecting(self) -> None: ...


class NoopLogCollector:
    def start_collecting(self, cluster: containers.Cluster) -> None:
        LOGGER.debug(f"Not collecting logs of cluster on {cluster.ip}")

    def stop_collecting(self) -> None:
        pass
