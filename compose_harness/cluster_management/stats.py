"""Timing of the compose project lifecycle and delivery of the stats to consumers."""

import dataclasses
import json
import logging
import pathlib as pl
import threading
import time
import typing as tp

import allure
from filelock import FileLock

from compose_harness.cluster_management import exceptions
from compose_harness.utils import concurrent_dict
from compose_harness.utils import helpers
from compose_harness.utils import types as ttypes

LOGGER = logging.getLogger(__name__)

# Suppress messages from filelock
logging.getLogger("filelock").setLevel(logging.WARNING)


class Stopwatch:
    """Timer that starts when created and can be stopped once."""

    def __init__(self) -> None:
        self._start = time.monotonic()
        self._stop: float | None = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._stop is None

    def stop(self) -> None:
        """Stop the timer. Stopping already stopped timer has no effect."""
        with self._lock:
            if self._stop is None:
                self._stop = time.monotonic()

    @property
    def elapsed(self) -> float | None:
        """Return the measured duration, or `None` when the timer wasn't stopped yet."""
        if self._stop is None:
            return None
        return self._stop - self._start


class StatsRecorder:
    """Per-service timers measuring how long the services take to become healthy."""

    def __init__(self) -> None:
        self._stopwatches: concurrent_dict.ConcurrentDict[str, Stopwatch] = (
            concurrent_dict.ConcurrentDict()
        )

    def for_service(self, service_name: str) -> Stopwatch:
        """Return timer of the service, the timer is created and started on the first call."""
        return self._stopwatches.compute_if_absent(service_name, lambda _: Stopwatch())

    def get_results(self) -> dict[str, float | None]:
        """Return durations of all services, `None` for services that didn't finish."""
        return {name: sw.elapsed for name, sw in self._stopwatches.snapshot().items()}


@dataclasses.dataclass(frozen=True)
class RunStats:
    """Durations (in seconds) of the phases of a single run."""

    project_name: str
    pull_build_and_start: float
    become_healthy: float | None
    services: dict[str, float | None]
    shutdown: float
    shutdown_failure: str = ""
    timestamp: str = dataclasses.field(default_factory=helpers.get_timestamp)

    def to_dict(self) -> dict[str, tp.Any]:
        return dataclasses.asdict(self)

    def __str__(self) -> str:
        services_str = ", ".join(
            f"{s}: {helpers.format_duration(d)}" for s, d in sorted(self.services.items())
        )
        return (
            f"project '{self.project_name}': "
            f"pull, build and start {helpers.format_duration(self.pull_build_and_start)}; "
            f"become healthy {helpers.format_duration(self.become_healthy)} ({services_str}); "
            f"shutdown {helpers.format_duration(self.shutdown)}"
        )


class StatsConsumer(tp.Protocol):
    def consume(self, run_stats: RunStats) -> None: ...


class LoggingStatsConsumer:
    def consume(self, run_stats: RunStats) -> None:
        LOGGER.info(f"Compose stats: {run_stats}")


class JsonFileStatsConsumer:
    """Append stats of every run as a JSON line to a file shared by all pytest workers."""

    def __init__(self, stats_file: ttypes.FileType) -> None:
        self.stats_file = pl.Path(stats_file).expanduser()

    def consume(self, run_stats: RunStats) -> None:
        self.stats_file.parent.mkdir(parents=True, exist_ok=True)
        with (
            FileLock(f"{self.stats_file}.lock"),
            open(self.stats_file, "a", encoding="utf-8") as out_fp,
        ):
            out_fp.write(f"{json.dumps(run_stats.to_dict())}\n")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({str(self.stats_file)!r})"


class AllureStatsConsumer:
    """Attach the stats to the Allure report of the current test."""

    def consume(self, run_stats: RunStats) -> None:
        allure.attach(
            json.dumps(run_stats.to_dict(), indent=4),
            name=f"compose-stats-{run_stats.project_name}",
            attachment_type=allure.attachment_type.JSON,
        )


def dispatch_stats(
    run_stats: RunStats, consumers: tp.Iterable[StatsConsumer]
) -> list[exceptions.StatsConsumerFailure]:
    """Deliver stats to every consumer. Failure of one consumer doesn't affect the others."""
    failures = []
    for consumer in consumers:
        try:
            consumer.consume(run_stats)
        except Exception as err:
            failure = exceptions.StatsConsumerFailure(consumer=consumer, cause=err)
            LOGGER.exception(f"Failed to consume stats: {failure}")
            failures.append(failure)
    return failures
