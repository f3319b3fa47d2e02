from typing import Optional

from alma_job_runner.models import AlmaJobInstance, ErrorKind


class AlmaJobRunnerError(Exception):
    """Base class for every failure the job runner reports."""


class ParseError(AlmaJobRunnerError):
    """A job, job instance or error document could not be read."""


class TransportError(AlmaJobRunnerError):
    """Network failure or an HTTP status the API does not describe with an error list."""

    def __init__(
        self, message: str, status: Optional[int] = None, body: Optional[str] = None
    ):
        super().__init__(message)
        self.status = status
        self.body = body


class ClassifiedError(AlmaJobRunnerError):
    def __init__(
        self,
        kind: ErrorKind,
        description: str,
        code: Optional[str] = None,
        api_message: str = "",
    ):
        self.kind = kind
        self.description = description
        self.code = code
        self.api_message = api_message
        text = f"{description} ({code})" if code else description
        if api_message:
            text += f": {api_message}"
        super().__init__(text)


class RetryExhausted(AlmaJobRunnerError):
    def __init__(self, attempts: int, last_error: Optional[AlmaJobRunnerError] = None):
        self.attempts = attempts
        self.last_error = last_error
        if last_error is None:
            message = f"job was not submitted after {attempts} attempt(s)"
        else:
            message = f"job was not submitted after {attempts} attempt(s): {last_error}"
        super().__init__(message)


class MonitorTimeout(AlmaJobRunnerError):
    def __init__(self, polls: int, last_status: Optional[AlmaJobInstance] = None):
        self.polls = polls
        self.last_status = last_status
        message = f"job instance did not finish after {polls} status check(s)"
        if last_status is not None:
            message += f", last status {last_status.describe()}"
        super().__init__(message)


class NotificationError(AlmaJobRunnerError):
    """The email report could not be delivered."""
