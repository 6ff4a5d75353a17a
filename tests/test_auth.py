import base64

import pytest

from sitegen.auth import authenticate_mock_user, basic_auth_header, parse_basic_auth


def test_mock_users():
    assert authenticate_mock_user("admin@example.com", "admin123").role == "admin"
    assert authenticate_mock_user(" USER@example.com ", "user123").role == "user"
    assert authenticate_mock_user("admin@example.com", "user123") is None
    assert authenticate_mock_user("nobody@example.com", "x") is None
    assert authenticate_mock_user("admin@example.com", None) is None


def test_basic_header_round_trip_keeps_colons_in_password():
    header = basic_auth_header("designer@example.com", "pa:ss")
    assert header.startswith("Basic ")
    assert parse_basic_auth(header) == ("designer@example.com", "pa:ss")
    assert parse_basic_auth(header.replace("Basic", "basic")) == ("designer@example.com", "pa:ss")


@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "Bearer abc",
        "Basic",
        "Basic !!!not-base64!!!",
        "Basic " + base64.b64encode(b"no-colon").decode(),
        "Basic " + base64.b64encode(b":password").decode(),
    ],
)
def test_malformed_headers(header):
    assert parse_basic_auth(header) is None
