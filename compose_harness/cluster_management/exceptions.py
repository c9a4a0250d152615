"""Errors raised while managing a compose cluster."""

import typing as tp


class ComposeHarnessError(Exception):
    pass


class ProcessFailure(ComposeHarnessError):
    """The external tool exited with non-zero return code."""

    def __init__(
        self, command: tp.Sequence[str], returncode: int, stderr: str, stdout: str = ""
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        cmd_str = " ".join(self.command)
        output = stderr or stdout
        super().__init__(
            f"An error occurred while running `{cmd_str}` (return code {returncode}): {output}"
        )


class UnknownServiceError(ComposeHarnessError):
    pass


class ClusterWaitTimeoutError(ComposeHarnessError, TimeoutError):
    """A health check didn't succeed within its timeout."""

    def __init__(self, check_name: str, timeout: float, last_reason: str) -> None:
        self.check_name = check_name
        self.timeout = timeout
        self.last_reason = last_reason
        super().__init__(
            f"The health check '{check_name}' didn't succeed within {timeout} seconds. "
            f"Last failure: {last_reason}"
        )


class FatalHealthCheckError(ComposeHarnessError):
    """A health check errored; such errors are not retried."""

    def __init__(self, check_name: str, cause: BaseException | None) -> None:
        self.check_name = check_name
        self.cause = cause
        super().__init__(f"The health check '{check_name}' failed with error: {cause!r}")


class WaitInterruptedError(KeyboardInterrupt):
    """Waiting for a health check was interrupted."""

    def __init__(self, check_name: str) -> None:
        self.check_name = check_name
        super().__init__(f"Interrupted while waiting for health check '{check_name}'")


class ConflictResolutionFailure(ComposeHarnessError):
    pass


class ShutdownFailure(ComposeHarnessError):
    def __init__(self, msg: str, elapsed: float = 0.0) -> None:
        self.elapsed = elapsed
        super().__init__(msg)


class StatsConsumerFailure(ComposeHarnessError):
    """A stats consumer failed to process the stats."""

    def __init__(self, consumer: tp.Any, cause: Exception) -> None:
        self.consumer = consumer
        self.cause = cause
        super().__init__(f"Stats consumer {consumer!r} failed: {cause!r}")
