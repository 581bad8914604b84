"""Unit tests for CLI commands.

All tests use Typer's CliRunner and mock _get_service so that no real
HTTP requests are made.
"""

import json
import time
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from storefront.config import Settings
from storefront.core.exceptions import ApiError, SessionExpiredError
from storefront.core.models import CredentialPair, Profile, SessionState
from storefront.core.outcomes import ClientError, NetworkError, Success
from storefront_cli.main import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_profile():
    return Profile(id="c1", name="Ada Lovelace", email="ada@example.com")


def _make_service(pair=None, profile=None, outcome=None, state=SessionState.ACTIVE):
    """Return a MagicMock AccountService with canned return values."""
    svc = MagicMock()
    svc.client.settings = Settings(api_base_url="http://api.test/v1")
    svc.client.coordinator.current_pair.return_value = pair
    svc.client.session_state = state
    svc.client.request.return_value = outcome
    svc.current_profile.return_value = profile
    svc.login.return_value = profile
    return svc


# ---------------------------------------------------------------------------
# auth commands
# ---------------------------------------------------------------------------


def test_login_success(mock_profile):
    svc = _make_service(profile=mock_profile)
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(
            app, ["auth", "login", "--email", "ada@example.com", "--password", "secret"]
        )
    assert result.exit_code == 0
    assert "Ada Lovelace" in result.output
    svc.login.assert_called_once_with("ada@example.com", "secret")


def test_login_prompts_for_missing_values(mock_profile):
    svc = _make_service(profile=mock_profile)
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(
            app, ["auth", "login"], input="ada@example.com\nsecret\n"
        )
    assert result.exit_code == 0
    assert "secret" not in result.output
    svc.login.assert_called_once_with("ada@example.com", "secret")


def test_login_failure():
    svc = _make_service()
    svc.login.side_effect = ApiError("Invalid credentials", 401)
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(
            app, ["auth", "login", "--email", "ada@example.com", "--password", "bad"]
        )
    assert result.exit_code == 1
    assert "Invalid credentials" in result.output


def test_status_logged_in(mock_profile):
    pair = CredentialPair("A1", "R1", expires_in=900, issued_at=time.time())
    svc = _make_service(pair=pair, profile=mock_profile)
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["auth", "status"])
    assert result.exit_code == 0
    assert "active" in result.output
    assert "ada@example.com" in result.output
    assert "valid" in result.output


def test_status_not_logged_in():
    svc = _make_service(state=SessionState.ANONYMOUS)
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["auth", "status"])
    assert result.exit_code == 1
    assert "Not logged in" in result.output


def test_logout():
    svc = _make_service(pair=CredentialPair("A1", "R1"))
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["auth", "logout"])
    assert result.exit_code == 0
    assert "Logged out" in result.output
    svc.logout.assert_called_once_with()


def test_logout_without_session():
    svc = _make_service()
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["auth", "logout"])
    assert result.exit_code == 0
    assert "No saved session" in result.output


# ---------------------------------------------------------------------------
# request command
# ---------------------------------------------------------------------------


def test_request_json_output():
    svc = _make_service(outcome=Success({"orders": [{"id": "o1"}]}))
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["request", "GET", "/order/customer"])
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["orders"][0]["id"] == "o1"
    svc.client.request.assert_called_once_with("GET", "/order/customer", None)


def test_request_with_body():
    svc = _make_service(outcome=Success({"id": "o2"}, 201))
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(
            app, ["request", "POST", "/order", "--data", '{"items": ["p1"]}']
        )
    assert result.exit_code == 0
    svc.client.request.assert_called_once_with("POST", "/order", {"items": ["p1"]})


def test_request_table_output():
    svc = _make_service(outcome=Success({"id": "o1", "total": 12}))
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(
            app, ["request", "GET", "/order/o1", "--output", "table"]
        )
    assert result.exit_code == 0
    assert "total" in result.output


def test_request_invalid_json():
    svc = _make_service()
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["request", "POST", "/order", "--data", "{oops"])
    assert result.exit_code == 2
    svc.client.request.assert_not_called()


def test_request_client_error():
    svc = _make_service(outcome=ClientError(404, {"message": "No such order"}, "No such order"))
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["request", "GET", "/order/o9"])
    assert result.exit_code == 1
    assert "HTTP 404" in result.output


def test_request_network_error():
    svc = _make_service(outcome=NetworkError("connection", "refused"))
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["request", "GET", "/cart"])
    assert result.exit_code == 1
    assert "Network error" in result.output


def test_request_session_expired():
    svc = _make_service(state=SessionState.ANONYMOUS)
    svc.client.request.side_effect = SessionExpiredError("No active session to refresh.")
    with patch("storefront_cli.main._get_service", return_value=svc):
        result = runner.invoke(app, ["request", "GET", "/cart"])
    assert result.exit_code == 1
