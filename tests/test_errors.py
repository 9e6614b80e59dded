"""Tests for errors.py: failure parsing, normalization, ApiError accessors."""
import httpx
import pytest

from clinic_api.errors import (
    ApiError,
    EnvelopeFailure,
    TransportFailure,
    UnformattedFailure,
    normalize,
    parse_exception,
    parse_response,
)
from clinic_api.models.envelope import ErrorDetail, PaginatedResponse

from conftest import fail, ok


def _response(status_code, **kwargs):
    return httpx.Response(status_code, request=httpx.Request("GET", "http://testserver/x"), **kwargs)


# ── parse_response ───────────────────────────────────────────────────

def test_parse_success_envelope():
    outcome = parse_response(_response(200, json=ok({"id": "p1"}, message="Fetched")))
    assert isinstance(outcome, PaginatedResponse)
    assert outcome.value == {"id": "p1"}
    assert outcome.message == "Fetched"


def test_parse_envelope_failure_with_4xx():
    body = fail("Validation Failed", 400, "VALIDATION_ERROR", message="Bad input", details=["email invalid"])
    outcome = parse_response(_response(400, json=body))

    assert isinstance(outcome, EnvelopeFailure)
    assert outcome.error.title == "Validation Failed"
    assert outcome.message == "Bad input"


def test_parse_envelope_failure_inside_200():
    outcome = parse_response(_response(200, json=fail("Conflict", 409)))
    assert isinstance(outcome, EnvelopeFailure)
    assert outcome.error.status == 409


def test_parse_html_error_is_unformatted():
    outcome = parse_response(_response(503, text="<h1>Service Unavailable</h1>"))
    assert outcome == UnformattedFailure(status=503, reason="Request failed with status code 503")


def test_parse_json_error_without_envelope_is_unformatted():
    outcome = parse_response(_response(500, json={"detail": "boom"}))
    assert isinstance(outcome, UnformattedFailure)
    assert outcome.status == 500


def test_parse_broken_error_block_is_unformatted():
    outcome = parse_response(_response(400, json={"success": False, "error": {"code": "X"}}))
    assert isinstance(outcome, UnformattedFailure)


def test_parse_empty_body():
    outcome = parse_response(_response(204))
    assert isinstance(outcome, PaginatedResponse)
    assert outcome.value is None


def test_parse_bare_json_list():
    outcome = parse_response(_response(200, json=[1, 2]))
    assert outcome.value == [1, 2]


# ── parse_exception ──────────────────────────────────────────────────

def test_connect_error_is_transport():
    outcome = parse_exception(httpx.ConnectError("refused"))
    assert isinstance(outcome, TransportFailure)
    assert "refused" in outcome.reason


def test_timeout_is_transport():
    assert isinstance(parse_exception(httpx.ReadTimeout("slow")), TransportFailure)


def test_invalid_url_is_transport():
    assert isinstance(parse_exception(httpx.InvalidURL("Invalid port: 'abc'")), TransportFailure)


def test_status_error_is_unformatted():
    response = _response(504)
    exc = httpx.HTTPStatusError("gateway timeout", request=response.request, response=response)
    assert parse_exception(exc) == UnformattedFailure(status=504, reason="Request failed with status code 504")


# ── normalize ────────────────────────────────────────────────────────

def test_normalize_envelope_copies_fields():
    detail = ErrorDetail(
        title="Validation Failed",
        code="VALIDATION_ERROR",
        status=422,
        details=["Check your input"],
        field_errors={"email": ["Email must be valid", "Email is required"]},
    )
    error = normalize(EnvelopeFailure(error=detail, message="Patient not saved"))

    assert error.title == "Validation Failed"
    assert error.code == "VALIDATION_ERROR"
    assert error.status == 422
    assert error.details == ("Check your input",)
    assert error.get_field_errors("email") == ("Email must be valid", "Email is required")
    assert error.backend_message == "Patient not saved"


def test_normalize_transport():
    error = normalize(TransportFailure(reason="connection refused"))

    assert error.title == "Network Error"
    assert error.status == 0
    assert error.code == "NETWORK_ERROR"
    assert len(error.details) == 1
    assert "internet connection" in error.details[0]


def test_normalize_unformatted():
    error = normalize(UnformattedFailure(status=502, reason="Request failed with status code 502"))

    assert error.title == "Request Failed"
    assert error.status == 502
    assert error.code == "REQUEST_FAILED"
    assert error.details == ("Request failed with status code 502",)


@pytest.mark.parametrize(
    "failure",
    [
        EnvelopeFailure(error=ErrorDetail(title="Nope", status=403)),
        TransportFailure(reason=""),
        UnformattedFailure(status=500, reason=""),
    ],
)
def test_normalize_is_total(failure):
    error = normalize(failure)
    assert isinstance(error, ApiError)
    assert error.title
    assert isinstance(error.status, int)


# ── ApiError accessors ───────────────────────────────────────────────

def test_message_prefers_backend_message():
    assert ApiError("Unauthorized", 401, backend_message="Token expired").message == "Token expired"
    assert ApiError("Unauthorized", 401).message == "Unauthorized"


def test_full_message_concatenates():
    error = ApiError(
        "Login Failed",
        401,
        details=["Invalid email or password"],
        field_errors={"email": ["Email must be valid"]},
    )
    assert error.full_message == "Login Failed. Invalid email or password. email: Email must be valid"


def test_field_lookup_missing_field():
    assert ApiError("Bad", 400).get_field_errors("email") == ()


def test_has_details_and_field_errors():
    error = ApiError("Bad", 400, details=["x"], field_errors={"name": ["required"]})
    assert error.has_details
    assert error.has_field_errors
    assert not ApiError("Bad", 400).has_field_errors


def test_api_error_is_immutable():
    source = {"email": ["bad"]}
    error = ApiError("Bad", 400, field_errors=source)
    source["email"].append("worse")

    assert error.get_field_errors("email") == ("bad",)
    with pytest.raises(AttributeError):
        error.status = 500
    with pytest.raises(TypeError):
        error.field_errors["name"] = ("x",)


def test_str_is_title():
    assert str(ApiError("Network Error", 0)) == "Network Error"


def test_to_dict():
    data = ApiError("Bad", 400, code="BAD", field_errors={"a": ["b"]}).to_dict()
    assert data["code"] == "BAD"
    assert data["field_errors"] == {"a": ["b"]}
