from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Status values that may carry an end time while the job is still wrapping up.
TRANSITIONAL_STATUSES = frozenset({"FINALIZING"})

FAILED_STATUSES = frozenset(
    {"FAILED", "COMPLETED_FAILED", "ABORTED", "SYSTEM_ABORTED", "CANCELLED"}
)


class ErrorKind(str, Enum):
    invalid_id = "invalid_id"
    invalid_operation = "invalid_operation"
    threshold_reached = "threshold_reached"
    internal = "internal"
    missing_parameter = "missing_parameter"
    scheduled_job = "scheduled_job"
    unsupported_job = "unsupported_job"
    unknown = "unknown"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class DescAndValue(_Frozen):
    """Element text plus its optional ``desc`` attribute."""

    value: str = ""
    desc: Optional[str] = None


class LinkAndValue(_Frozen):
    """Element text plus its optional ``link`` attribute."""

    value: str = ""
    link: Optional[str] = None


class Parameter(_Frozen):
    name: DescAndValue
    value: str = ""


class Counter(_Frozen):
    type: DescAndValue
    value: str = ""


class AlmaJob(_Frozen):
    """A job document, as read from a parameters file or returned by the API."""

    link: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[DescAndValue] = None
    category: Optional[DescAndValue] = None
    content: Optional[DescAndValue] = None
    schedule: Optional[DescAndValue] = None
    creator: Optional[str] = None
    next_run: Optional[str] = None
    parameters: tuple[Parameter, ...] = ()
    related_profile: Optional[LinkAndValue] = None
    additional_info: Optional[LinkAndValue] = None

    @property
    def parameter_pairs(self) -> list[tuple[str, str]]:
        return [(parameter.name.value, parameter.value) for parameter in self.parameters]


class AlmaJobInfo(_Frozen):
    link: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[DescAndValue] = None
    category: Optional[DescAndValue] = None


class AlmaJobInstance(_Frozen):
    """A snapshot of a running (or finished) job instance."""

    link: Optional[str] = None
    id: Optional[str] = None
    external_id: Optional[str] = None
    name: Optional[str] = None
    submitted_by: Optional[DescAndValue] = None
    submit_time: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    progress: Optional[float] = None
    status: Optional[DescAndValue] = None
    status_date: Optional[str] = None
    alerts: tuple[DescAndValue, ...] = ()
    counters: tuple[Counter, ...] = ()
    actions: tuple[str, ...] = ()
    job_info: Optional[AlmaJobInfo] = None

    @property
    def status_value(self) -> str:
        return self.status.value if self.status is not None else ""

    @property
    def is_terminal(self) -> bool:
        return bool(self.end_time) and self.status_value not in TRANSITIONAL_STATUSES

    @property
    def is_success(self) -> bool:
        return self.is_terminal and self.status_value not in FAILED_STATUSES

    def describe(self) -> str:
        text = self.status_value or "UNKNOWN"
        if self.status is not None and self.status.desc:
            text += f" ({self.status.desc})"
        if self.progress is not None:
            text += f", progress {self.progress:g}%"
        return text


class JobInstanceHandle(_Frozen):
    """Tracking link for a submitted job instance."""

    link: str

    @property
    def instance_id(self) -> str:
        return urlparse(self.link).path.rstrip("/").rsplit("/", 1)[-1]


class ApiErrorDetail(_Frozen):
    code: str = ""
    message: str = ""
    tracking_id: Optional[str] = None


class ApiErrorPayload(_Frozen):
    errors: tuple[ApiErrorDetail, ...] = ()


class SubmissionConfig(BaseModel):
    timeout: float = 10.0
    max_attempts: int = 5
    backoff_unit: float = 1.0  # seconds


class StatusPollingConfig(BaseModel):
    poll_interval: float = Field(30.0, gt=0)
    max_duration: float = 23 * 60 * 60  # 23 hours
    timeout: float = 10.0

    @property
    def max_polls(self) -> int:
        return max(1, int(self.max_duration // self.poll_interval))


class EmailConfig(BaseModel):
    smtp_server: str
    smtp_port: int = 25
    mail_to: list[str]
    mail_from: str

    @field_validator("mail_to", mode="before")
    @classmethod
    def split_recipients(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        recipients = [address.strip() for address in value if address.strip()]
        if not recipients:
            raise ValueError("at least one recipient is required")
        return recipients
