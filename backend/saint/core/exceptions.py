"""Errors raised by the execution core.

Test failures and post-processing problems are not errors: they are folded
into the ExecutionResult (``status`` / ``processing_error``). Everything here
is a terminal condition for a request or an execution.
"""


class ExecutionError(Exception):
    """Base class for execution orchestration errors."""

    def __init__(self, message: str, session_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.session_id = session_id


class AdmissionError(ExecutionError):
    """The request is malformed and never starts."""


class DuplicateSessionError(AdmissionError):
    """The session id is already active or queued."""


class DependencyInstallError(ExecutionError):
    """Installing the runner's dependencies failed; no test process is started."""

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message, session_id)
        self.exit_code = exit_code


class ProcessSpawnError(ExecutionError):
    """The test-runner process could not be started."""
