"""Reduces Alma API error lists to a single, stable error kind.

The API reports the same condition under several codes, so the table below is
many-to-one. Only the first error of a response is considered.
"""

from typing import Union

from alma_job_runner.documents import parse_api_error
from alma_job_runner.errors import ClassifiedError, ParseError
from alma_job_runner.models import ApiErrorPayload, ErrorKind

ERROR_CODES: dict[str, tuple[ErrorKind, str]] = {
    "402215": (ErrorKind.invalid_id, "invalid job id format"),
    "402216": (ErrorKind.invalid_id, "invalid job id"),
    "402218": (ErrorKind.invalid_id, "invalid job instance id"),
    "402220": (ErrorKind.invalid_operation, "operation was not provided"),
    "402221": (ErrorKind.invalid_operation, "operation is not supported"),
    "402222": (ErrorKind.threshold_reached, "execution threshold reached"),
    "402223": (ErrorKind.threshold_reached, "execution threshold reached"),
    "402224": (ErrorKind.internal, "an internal error occurred"),
    "402225": (ErrorKind.internal, "an internal error occurred"),
    "402226": (ErrorKind.internal, "an internal error occurred"),
    "402228": (ErrorKind.missing_parameter, "mandatory parameter is missing from input"),
    "402229": (ErrorKind.missing_parameter, "mandatory parameter value is empty"),
    "402248": (ErrorKind.scheduled_job, "cannot submit scheduled job"),
    "402249": (ErrorKind.scheduled_job, "invalid scheduled job category"),
    "402231": (
        ErrorKind.unsupported_job,
        "job consists of more than one task, which the API cannot run",
    ),
}

UNKNOWN_ERROR = "unknown error"
NO_ERROR_DETAILS = "no error details were returned"


def classify(payload: ApiErrorPayload) -> ClassifiedError:
    if not payload.errors:
        return ClassifiedError(ErrorKind.unknown, NO_ERROR_DETAILS)

    first = payload.errors[0]
    kind, description = ERROR_CODES.get(first.code, (ErrorKind.unknown, UNKNOWN_ERROR))
    return ClassifiedError(
        kind, description, code=first.code or None, api_message=first.message
    )


def classify_body(body: Union[bytes, str]) -> ClassifiedError:
    """Classifies a raw HTTP 400 body, degrading to ``unknown`` if it is unreadable."""
    try:
        payload = parse_api_error(body)
    except ParseError:
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        return ClassifiedError(ErrorKind.unknown, UNKNOWN_ERROR, api_message=body.strip())
    return classify(payload)
