import logging
import threading

from compose_harness.cluster_management import containers
from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import invokers
from compose_harness.utils import concurrent_dict

LOGGER = logging.getLogger(__name__)


class ContainerCache:
    """Cache of containers of a single compose project.

    The cache lives for a single orchestration run and its entries are never invalidated. A miss
    lists all containers of the project and stores every container that is not cached yet, so
    concurrent lookups always end up with the same `Container` values.
    """

    def __init__(self, invoker: invokers.Invoker, ip: str) -> None:
        self.invoker = invoker
        self.ip = ip
        self._containers: concurrent_dict.ConcurrentDict[str, containers.Container] = (
            concurrent_dict.ConcurrentDict()
        )
        self._populate_lock = threading.Lock()
        self._populated = False

    def _populate(self) -> None:
        infos = self.invoker.list_containers()
        for info in infos:
            container = containers.Container.from_info(info=info, ip=self.ip, invoker=self.invoker)
            self._containers.put_if_absent(info.service, container)
        self._populated = True
        LOGGER.debug(f"Cached containers of services: {sorted(self._containers.snapshot())}")

    def get(self, service_name: str) -> containers.Container:
        container = self._containers.get(service_name)
        if container is not None:
            return container

        with self._populate_lock:
            # Another thread might have populated the cache while we were waiting for the lock
            container = self._containers.get(service_name)
            if container is None:
                self._populate()
                container = self._containers.get(service_name)

        if container is None:
            msg = f"Service '{service_name}' is not part of the compose project."
            raise exceptions.UnknownServiceError(msg)
        return container

    def all_containers(self) -> list[containers.Container]:
        with self._populate_lock:
            if not self._populated:
                self._populate()
        cached = self._containers.snapshot()
        return [cached[s] for s in sorted(cached)]
