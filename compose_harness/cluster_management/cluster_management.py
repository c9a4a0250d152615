"""Module for exposing useful components of compose cluster management.

The cluster management system brings up a multi-container environment described by compose
files, waits until it is ready to be used by tests, and tears it down after the tests finish.

Key concepts:
    - **Invocation pipeline**: All operations are issued to the external compose tool through an
      invoker. The base invoker is wrapped by decorators that retry a failed startup and remove
      leftover containers whose names conflict with the new ones.
    - **Cluster**: A view of the running containers, addressable by service name. Containers are
      looked up lazily and cached for the duration of the run.
    - **Health checks**: Checks of a container, a list of containers, a port or the whole cluster.
      A check either succeeds, fails (not ready yet, retried until timeout), or errors (never
      retried).
    - **Cluster waits**: Health checks bound to timeouts. Waits are evaluated one after another
      and the first one that doesn't succeed aborts the startup.
    - **Shutdown strategy**: How the environment is torn down after the run.
    - **Stats**: Durations of the startup, of services becoming healthy and of the shutdown are
      delivered to stats consumers at the end of the run.
    - **`Orchestrator`**: The main class that test fixtures interact with. Its `start()` method is
      called before tests and `stop()` after them.
"""

# flake8: noqa
from compose_harness.cluster_management.cluster_wait import ClusterWait
from compose_harness.cluster_management.containers import Cluster
from compose_harness.cluster_management.containers import Container
from compose_harness.cluster_management.containers import DockerPort
from compose_harness.cluster_management.health import HealthCheckResult
from compose_harness.cluster_management.invokers import ExecOptions
from compose_harness.cluster_management.invokers import RunOptions
from compose_harness.cluster_management.manager import Orchestrator
from compose_harness.cluster_management.manager import OrchestratorConfig
from compose_harness.cluster_management.manager import ProjectName
from compose_harness.cluster_management.shutdown import ShutdownStrategy
