"""
Tests for the mail.tm API client.

The HTTP session is mocked; no request leaves the process.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from client.services.mailbox_client import MERGE_PATCH, MailTMClient
from client.services.retry import RetryPolicy
from common.exceptions import (
    APIError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
)

MESSAGE = {
    "id": "m1",
    "accountId": "acc-1",
    "msgid": "<m1@example.com>",
    "from": {"address": "alice@example.com", "name": "Alice"},
    "to": [{"address": "me@example.com", "name": None}],
    "subject": "Hello",
    "intro": "Hi there",
    "seen": False,
    "isDeleted": False,
    "hasAttachments": True,
    "size": 2048,
    "downloadUrl": "/messages/m1/download",
    "createdAt": "2024-03-01T12:00:00+00:00",
    "updatedAt": "2024-03-01T12:00:00+00:00",
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"", headers=None):
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.headers = headers or {}
        self.text = json.dumps(payload) if payload is not None else ""

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


@pytest.fixture
def session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(session):
    return MailTMClient(
        base_url="https://api.test/",
        min_request_interval=0,
        token="tok",
        session=session,
    )


def respond(session, *responses):
    session.request.side_effect = list(responses)


# =============================================================================
# Transport
# =============================================================================

class TestTransport:
    """Tests for headers, auth and error mapping."""

    def test_session_headers(self, client, session):
        assert session.headers["User-Agent"] == "burnmail"
        assert session.headers["Accept"] == "application/json"

    def test_bearer_token_sent(self, client, session):
        respond(session, FakeResponse(payload=[]))
        client.list_messages()

        args, kwargs = session.request.call_args
        assert args == ("GET", "https://api.test/messages")
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        assert kwargs["timeout"] == 30.0

    def test_domains_are_public(self, client, session):
        respond(session, FakeResponse(payload=[]))
        client.get_domains()

        assert "Authorization" not in session.request.call_args.kwargs["headers"]

    @pytest.mark.parametrize("status,error", [
        (429, RateLimitError),
        (401, AuthenticationError),
        (404, NotFoundError),
    ])
    def test_status_mapping(self, client, session, status, error):
        respond(session, FakeResponse(status_code=status, payload={"detail": "x"}))

        with pytest.raises(error):
            client.get_message("m1")

    def test_unexpected_status(self, client, session):
        respond(session, FakeResponse(status_code=500, payload={"detail": "boom"}))

        with pytest.raises(APIError) as exc_info:
            client.list_messages()
        assert type(exc_info.value) is APIError
        assert exc_info.value.status_code == 500

    def test_server_error_mentioning_429_is_not_retried(self, client, session):
        respond(
            session,
            FakeResponse(status_code=500, payload={"detail": "internal error, trace 84291"}),
            FakeResponse(status_code=204),
        )
        policy = RetryPolicy(wait=lambda delay, cancel_event: False)

        with pytest.raises(APIError) as exc_info:
            policy.run(lambda: client.delete_message("abc"))

        assert type(exc_info.value) is APIError
        assert "84291" in str(exc_info.value)
        assert session.request.call_count == 1

    def test_rate_limit_retry_after(self, client, session):
        respond(session, FakeResponse(status_code=429, headers={"Retry-After": "3"}))

        with pytest.raises(RateLimitError) as exc_info:
            client.list_messages()
        assert exc_info.value.retry_after == 3.0

    def test_timeout(self, client, session):
        session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(RequestTimeoutError):
            client.list_messages()

    def test_connection_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError):
            client.list_messages()

    def test_invalid_json(self, client, session):
        respond(session, FakeResponse(payload=None))

        with pytest.raises(APIError):
            client.list_messages()


# =============================================================================
# Endpoints
# =============================================================================

class TestEndpoints:
    """Tests for individual API operations."""

    def test_list_messages_hydra(self, client, session):
        respond(session, FakeResponse(payload={"hydra:member": [MESSAGE], "hydra:totalItems": 1}))

        messages = client.list_messages()

        assert len(messages) == 1
        assert messages[0].sender == "alice@example.com"
        assert messages[0].has_attachments is True
        assert messages[0].to[0].name == ""

    def test_list_messages_bare_array(self, client, session):
        respond(session, FakeResponse(payload=[MESSAGE, dict(MESSAGE, id="m2")]))
        assert [m.id for m in client.list_messages()] == ["m1", "m2"]

    def test_list_messages_without_members(self, client, session):
        respond(session, FakeResponse(payload={"hydra:totalItems": 0}))
        assert client.list_messages() == []

    def test_get_message_detail(self, client, session):
        detail = dict(
            MESSAGE,
            text="",
            html=["<p>Hi</p>"],
            attachments=[{
                "id": "a1",
                "filename": "report.pdf",
                "contentType": "application/pdf",
                "size": 2048,
            }],
        )
        respond(session, FakeResponse(payload=detail))

        message = client.get_message("m1")

        assert message.html == ["<p>Hi</p>"]
        assert message.attachments[0].size_kb == 2.0

    def test_login_stores_token(self, client, session):
        respond(session, FakeResponse(payload={"token": "new-token", "id": "acc-1"}))

        assert client.login("me@example.com", "secret") == "new-token"
        assert client.token == "new-token"
        assert session.request.call_args.kwargs["json"] == {
            "address": "me@example.com",
            "password": "secret",
        }

    def test_create_account_accepts_201(self, client, session):
        respond(session, FakeResponse(status_code=201, payload={
            "id": "acc-1", "address": "me@example.com",
        }))

        account = client.create_account("me@example.com", "secret")
        assert account.id == "acc-1"

    def test_delete_message_no_content(self, client, session):
        respond(session, FakeResponse(status_code=204))

        client.delete_message("m1")
        assert session.request.call_args.args == ("DELETE", "https://api.test/messages/m1")

    def test_mark_read_uses_merge_patch(self, client, session):
        respond(session, FakeResponse(payload=MESSAGE))

        client.mark_read("m1")

        args, kwargs = session.request.call_args
        assert args[0] == "PATCH"
        assert kwargs["json"] == {"seen": True}
        assert kwargs["headers"]["Content-Type"] == MERGE_PATCH

    def test_download_attachment_returns_bytes(self, client, session):
        respond(session, FakeResponse(content=b"%PDF-1.4"))

        data = client.download_attachment("m1", "a1")

        assert data == b"%PDF-1.4"
        assert session.request.call_args.args[1] == "https://api.test/messages/m1/attachment/a1"
