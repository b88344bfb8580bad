import pytest
import requests
from unittest.mock import MagicMock

from eventify.crm.session import CRMAuthError, CRMSession


@pytest.fixture
def session():
    return CRMSession(
        "https://test.salesforce.com/", "svc@x.com", "pw", "cid", "csecret", security_token="TOK"
    )


def token_response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.reason = "Bad Request"
    response.json.return_value = body or {}
    return response


def test_login_stores_instance_and_token(session, mocker):
    post = mocker.patch("eventify.crm.session.requests.post", return_value=token_response(200, {
        "instance_url": "https://example.my.salesforce.com/",
        "access_token": "00Dxx!AQ",
    }))

    session.login()

    assert session.instance_url == "https://example.my.salesforce.com"
    assert session.access_token == "00Dxx!AQ"
    args, kwargs = post.call_args
    assert args[0] == "https://test.salesforce.com/services/oauth2/token"
    assert kwargs["data"]["grant_type"] == "password"
    assert kwargs["data"]["password"] == "pwTOK"

def test_login_rejected(session, mocker):
    mocker.patch("eventify.crm.session.requests.post", return_value=token_response(400, {
        "error": "invalid_grant", "error_description": "authentication failure"
    }))

    with pytest.raises(CRMAuthError, match="authentication failure"):
        session.login()
    assert not session.is_connected

def test_login_unreachable(session, mocker):
    mocker.patch("eventify.crm.session.requests.post", side_effect=requests.ConnectionError("down"))

    with pytest.raises(CRMAuthError):
        session.login()

def test_login_requires_credentials(mocker):
    post = mocker.patch("eventify.crm.session.requests.post")
    session = CRMSession("https://login.salesforce.com", "", "", "", "")

    with pytest.raises(CRMAuthError):
        session.login()
    post.assert_not_called()

def test_ensure_logs_in_once(session, mocker):
    login = mocker.patch.object(session, "login", side_effect=lambda: (
        setattr(session, "instance_url", "https://i"), setattr(session, "access_token", "T1")
    ))

    session.ensure()
    session.ensure()

    login.assert_called_once()

def test_refresh_skips_when_token_already_replaced(session, mocker):
    session.instance_url = "https://i"
    session.access_token = "T2"
    login = mocker.patch.object(session, "login")

    session.refresh("T1")

    login.assert_not_called()

def test_refresh_logs_in_for_stale_token(session, mocker):
    session.instance_url = "https://i"
    session.access_token = "T1"
    login = mocker.patch.object(session, "login")

    session.refresh("T1")

    login.assert_called_once()

def test_from_env(monkeypatch):
    monkeypatch.setenv("SF_LOGIN_URL", "https://test.salesforce.com")
    monkeypatch.setenv("SF_USERNAME", "svc@x.com")
    monkeypatch.setenv("CRM_TIMEOUT_SECONDS", "12")

    session = CRMSession.from_env()

    assert session.login_url == "https://test.salesforce.com"
    assert session.username == "svc@x.com"
    assert session.timeout == 12.0
