import functools
import logging
import pathlib as pl
import time

from compose_harness.utils import configuration


@functools.cache
def get_framework_log_path() -> pl.Path:
    log_path = configuration.FRAMEWORK_LOG
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return log_path


@functools.cache
def framework_logger() -> logging.Logger:
    """Get logger for the `framework.log` file.

    It is used for logging (and later reporting) events like a failure to start a compose
    project, which would otherwise be buried in the output of a failed test setup.
    """

    class UTCFormatter(logging.Formatter):
        converter = time.gmtime  # type: ignore[assignment]

    formatter = UTCFormatter("%(asctime)s %(levelname)s %(message)s")
    handler = logging.FileHandler(get_framework_log_path())
    handler.setFormatter(formatter)

    logger = logging.getLogger("compose_harness.framework")
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)

    return logger


def log_start_failure(project_name: str, err: BaseException) -> None:
    """Record that the compose project could not be started."""
    framework_logger().error(
        "Failed to start compose project '%s':\n%s: %s",
        project_name,
        err.__class__.__name__,
        err,
    )
