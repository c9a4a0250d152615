"""Policies for tearing down the compose project at the end of a run."""

import enum
import logging
import time

from compose_harness.cluster_management import exceptions
from compose_harness.cluster_management import invokers
from compose_harness.utils import configuration

LOGGER = logging.getLogger(__name__)


class ShutdownStrategy(enum.StrEnum):
    KILL_DOWN = "kill_down"
    GRACEFUL = "graceful"
    AGGRESSIVE = "aggressive"
    SKIP = "skip"

    def _teardown(self, invoker: invokers.Invoker, docker: invokers.Docker, grace: int) -> None:
        if self == ShutdownStrategy.SKIP:
            LOGGER.warning("Skipping shutdown, the compose project is left running.")
        elif self == ShutdownStrategy.KILL_DOWN:
            invoker.kill()
            invoker.down()
        elif self == ShutdownStrategy.GRACEFUL:
            invoker.stop(grace)
            invoker.down()
        elif self == ShutdownStrategy.AGGRESSIVE:
            docker.rm(*(c.name for c in invoker.list_containers()))
            invoker.down()
        else:
            msg = f"Unknown shutdown strategy: {self}"
            raise ValueError(msg)

    def shutdown(
        self,
        invoker: invokers.Invoker,
        docker: invokers.Docker,
        grace: int = configuration.STOP_GRACE,
    ) -> float:
        """Tear down the compose project, return how long it took, in seconds."""
        LOGGER.info(f"Shutting down compose project with strategy '{self}'.")
        start = time.monotonic()
        try:
            self._teardown(invoker=invoker, docker=docker, grace=grace)
        except Exception as err:
            msg = f"Error cleaning up compose project (strategy '{self}'): {err}"
            raise exceptions.ShutdownFailure(msg, elapsed=time.monotonic() - start) from err
        return time.monotonic() - start


def get_default_strategy() -> ShutdownStrategy:
    return ShutdownStrategy(configuration.SHUTDOWN_STRATEGY)
