import pytest

pytest.importorskip("requests")
import requests

responses = pytest.importorskip("responses")

from helpers import TOKEN, WWWROOT, form_of
from moodle_client import (
    AuthenticationError,
    ClientConfig,
    ConfigurationError,
    MoodleClient,
    TransportError,
    connect,
)

LOGIN_URL = f"{WWWROOT}/login/token.php"


@responses.activate
def test_authenticate_stores_token(anonymous_client):
    responses.add(responses.POST, LOGIN_URL, json={"token": "abc123", "privatetoken": None})

    result = anonymous_client.authenticate("student", "s3cret")

    assert result is anonymous_client
    assert anonymous_client.token == "abc123"
    request = responses.calls[0].request
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert form_of(request) == {"service": "moodle_mobile_app", "username": "student", "password": "s3cret"}


@responses.activate
def test_authenticate_uses_configured_service():
    responses.add(responses.POST, LOGIN_URL, json={"token": "abc123"})
    client = MoodleClient(ClientConfig(wwwroot=WWWROOT, service="local_reports"))

    client.authenticate("u", "p")

    assert form_of(responses.calls[0].request)["service"] == "local_reports"


@responses.activate
def test_authenticate_rejected(anonymous_client):
    responses.add(responses.POST, LOGIN_URL, json={"error": "Invalid login, please try again", "errorcode": "invalidlogin"})

    with pytest.raises(AuthenticationError, match="Invalid login, please try again"):
        anonymous_client.authenticate("student", "wrong")
    assert anonymous_client.token is None


@responses.activate
def test_authenticate_unexpected_response(anonymous_client):
    responses.add(responses.POST, LOGIN_URL, json={"hello": "world"})

    with pytest.raises(AuthenticationError, match="unexpected response"):
        anonymous_client.authenticate("student", "s3cret")


@responses.activate
def test_authenticate_twice_overwrites_token(anonymous_client):
    responses.add(responses.POST, LOGIN_URL, json={"token": "first"})
    responses.add(responses.POST, LOGIN_URL, json={"token": "second"})

    anonymous_client.authenticate("a", "b")
    anonymous_client.authenticate("a", "b")

    assert anonymous_client.token == "second"
    assert len(responses.calls) == 2


@responses.activate
def test_authenticate_network_failure_propagates(anonymous_client):
    responses.add(responses.POST, LOGIN_URL, body=requests.ConnectionError("connection refused"))

    with pytest.raises(requests.ConnectionError):
        anonymous_client.authenticate("student", "s3cret")


@responses.activate
def test_authenticate_http_error_is_transport_error(anonymous_client):
    responses.add(responses.POST, LOGIN_URL, status=503, body="maintenance")

    with pytest.raises(TransportError):
        anonymous_client.authenticate("student", "s3cret")


@responses.activate
def test_connect_with_token_makes_no_request():
    client = connect(WWWROOT, token=TOKEN)

    assert client.token == TOKEN
    assert len(responses.calls) == 0


@responses.activate
def test_connect_logs_in_with_credentials():
    responses.add(responses.POST, LOGIN_URL, json={"token": "fresh"})

    client = connect(WWWROOT + "/", username="teacher", password="pw")

    assert client.token == "fresh"
    assert client.wwwroot == WWWROOT


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({}, "no username"),
        ({"username": "teacher"}, "no password"),
        ({"password": "pw"}, "no username"),
    ],
)
def test_connect_requires_credentials_or_token(kwargs, message):
    with pytest.raises(ConfigurationError, match=message):
        connect(WWWROOT, **kwargs)


def test_config_requires_wwwroot():
    with pytest.raises(ConfigurationError):
        ClientConfig(wwwroot="")


@responses.activate
def test_connect_rejects_empty_token():
    with pytest.raises(ConfigurationError, match="empty token"):
        connect(WWWROOT, token="", username="teacher", password="pw")
    assert len(responses.calls) == 0
