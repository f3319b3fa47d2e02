import pytest

from alma_job_runner.classifier import ERROR_CODES, classify, classify_body
from alma_job_runner.models import ApiErrorDetail, ApiErrorPayload, ErrorKind
from alma_server import AlmaServer


def payload(*codes: str) -> ApiErrorPayload:
    return ApiErrorPayload(
        errors=tuple(ApiErrorDetail(code=code, message=f"message {code}") for code in codes)
    )


@pytest.mark.parametrize(
    "code, kind",
    [
        ("402215", ErrorKind.invalid_id),
        ("402216", ErrorKind.invalid_id),
        ("402218", ErrorKind.invalid_id),
        ("402220", ErrorKind.invalid_operation),
        ("402221", ErrorKind.invalid_operation),
        ("402222", ErrorKind.threshold_reached),
        ("402223", ErrorKind.threshold_reached),
        ("402224", ErrorKind.internal),
        ("402225", ErrorKind.internal),
        ("402226", ErrorKind.internal),
        ("402228", ErrorKind.missing_parameter),
        ("402229", ErrorKind.missing_parameter),
        ("402248", ErrorKind.scheduled_job),
        ("402249", ErrorKind.scheduled_job),
        ("402231", ErrorKind.unsupported_job),
        ("999999", ErrorKind.unknown),
        ("not-a-code", ErrorKind.unknown),
    ],
)
def test_classify_maps_code_to_kind(code, kind):
    error = classify(payload(code))

    assert error.kind == kind
    assert error.code == code
    assert error.api_message == f"message {code}"


def test_codes_for_the_same_condition_share_a_kind():
    internal = {code for code, (kind, _) in ERROR_CODES.items() if kind == ErrorKind.internal}
    assert internal == {"402224", "402225", "402226"}
    assert len({ERROR_CODES[code][1] for code in internal}) == 1


def test_classify_uses_only_the_first_error():
    error = classify(payload("402222", "402216", "402224"))

    assert error.kind == ErrorKind.threshold_reached
    assert error.code == "402222"


def test_classify_empty_error_list():
    error = classify(ApiErrorPayload())

    assert error.kind == ErrorKind.unknown
    assert error.code is None
    assert "no error details" in str(error)


def test_classify_body_from_api_response():
    body = AlmaServer.error_body("402229", "mandatory parameter value is empty").encode()
    error = classify_body(body)

    assert error.kind == ErrorKind.missing_parameter
    assert str(error) == (
        "mandatory parameter value is empty (402229): mandatory parameter value is empty"
    )


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"<html>Bad Request</html",
        b"<web_service_result/>",
        "plain text",
        b'<?xml version="1.0" encoding="bogus"?><web_service_result/>',
    ],
)
def test_classify_body_never_raises(body):
    error = classify_body(body)
    assert error.kind == ErrorKind.unknown
