"""
Pytest fixtures for Burnmail tests.

This module provides common fixtures used across test modules.
"""

import os
import sys
import threading
from datetime import datetime, timedelta, timezone

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from client.services.retry import RetryPolicy  # noqa: E402
from client.ui.controller import SessionController  # noqa: E402
from common.exceptions import NotFoundError  # noqa: E402
from common.models import (  # noqa: E402
    Account,
    Attachment,
    Domain,
    MessageDetail,
    MessageSummary,
)

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
ADDRESS = "k3x9q2mw@example.com"


# =============================================================================
# Model factories
# =============================================================================


def make_message(
    message_id: str,
    sender: str = "alice@example.com",
    subject: str = "Hello",
    intro: str = "",
    seen: bool = False,
    has_attachments: bool = False,
    minutes_ago: int = 0,
) -> MessageSummary:
    """Build a message summary received ``minutes_ago`` before BASE_TIME."""
    return MessageSummary(
        id=message_id,
        from_={"address": sender, "name": ""},
        subject=subject,
        intro=intro,
        seen=seen,
        has_attachments=has_attachments,
        size=1024,
        created_at=BASE_TIME - timedelta(minutes=minutes_ago),
    )


def make_detail(
    message_id: str,
    text: str = "",
    html: tuple[str, ...] = (),
    attachments: tuple[Attachment, ...] = (),
    **summary_fields,
) -> MessageDetail:
    """Build a message detail on top of ``make_message``."""
    summary = make_message(message_id, **summary_fields)
    return MessageDetail(
        **summary.model_dump(),
        text=text,
        html=list(html),
        attachments=list(attachments),
    )


def make_attachment(attachment_id: str, filename: str, size: int = 2048) -> Attachment:
    return Attachment(
        id=attachment_id,
        filename=filename,
        content_type="application/pdf",
        size=size,
    )


@pytest.fixture
def inbox() -> list[MessageSummary]:
    """Three messages, newest first."""
    return [
        make_message("m1", sender="bob@shop.test", subject="Welcome aboard",
                     intro="Thanks for joining", minutes_ago=1),
        make_message("m2", sender="billing@shop.test", subject="Your invoice",
                     intro="Amount due", minutes_ago=2),
        make_message("m3", sender="carol@news.test", subject="Weekly digest",
                     intro="Top stories", minutes_ago=3, seen=True),
    ]


# =============================================================================
# Test doubles
# =============================================================================


class RecordingRunner:
    """Task runner that records work and timers instead of running them."""

    def __init__(self):
        self.submitted = []
        self.scheduled = []

    def submit(self, work):
        self.submitted.append(work)

    def schedule(self, delay, event):
        self.scheduled.append((delay, event))

    @property
    def requests(self):
        """Requests passed to the controller's ``perform`` callback."""
        return [work.args[0] for work in self.submitted]

    def run_pending(self, controller):
        """Run recorded work synchronously and feed the results back."""
        while self.submitted:
            work = self.submitted.pop(0)
            controller.handle(work())


class RecordingCache:
    """Message cache double keeping snapshots in memory."""

    def __init__(self, messages=None, fail=False):
        self._messages = messages
        self._fail = fail
        self.saved = []

    def load(self):
        return list(self._messages) if self._messages is not None else None

    def save(self, messages):
        if self._fail:
            raise RuntimeError("disk full")
        self.saved.append([message.id for message in messages])


class FakeMailbox:
    """In-memory stand-in for ``MailTMClient``."""

    def __init__(self, messages=(), details=None):
        self.messages = list(messages)
        self.details = dict(details or {})
        self.attachments = {}
        self.calls = []
        self.failures = {}
        self._lock = threading.Lock()
        self.token = None
        self.domains = [
            Domain(id="d0", domain="inactive.test", is_active=False),
            Domain(id="d1", domain="example.com", is_active=True),
        ]

    def fail(self, method, *errors):
        """Raise ``errors`` from the next calls to ``method``, in order."""
        self.failures.setdefault(method, []).extend(errors)

    def _record(self, method, *args):
        with self._lock:
            self.calls.append((method,) + args)
            pending = self.failures.get(method)
            error = pending.pop(0) if pending else None
        if error is not None:
            raise error

    def get_domains(self):
        self._record("get_domains")
        return list(self.domains)

    def create_account(self, address, password):
        self._record("create_account", address, password)
        return Account(id="acc-1", address=address)

    def login(self, address, password):
        self._record("login", address, password)
        self.token = "token-1"
        return self.token

    def delete_account(self, account_id):
        self._record("delete_account", account_id)

    def list_messages(self):
        self._record("list_messages")
        return list(self.messages)

    def get_message(self, message_id):
        self._record("get_message", message_id)
        if message_id not in self.details:
            raise NotFoundError("Failed to get message", 404)
        return self.details[message_id]

    def delete_message(self, message_id):
        self._record("delete_message", message_id)
        with self._lock:
            self.messages = [m for m in self.messages if m.id != message_id]

    def mark_read(self, message_id):
        self._record("mark_read", message_id)

    def download_attachment(self, message_id, attachment_id):
        self._record("download_attachment", message_id, attachment_id)
        return self.attachments.get(attachment_id, b"data")

    def close(self):
        self._record("close")


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def cache() -> RecordingCache:
    return RecordingCache()


@pytest.fixture
def no_wait_policy() -> RetryPolicy:
    """Retry policy that records delays instead of sleeping."""
    delays = []

    def wait(delay, cancel_event):
        delays.append(delay)
        return False

    policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, wait=wait)
    policy.delays = delays
    return policy


@pytest.fixture
def make_controller(runner, cache):
    """Factory for controllers wired to the recording runner and cache."""

    def factory(perform=None, **kwargs):
        kwargs.setdefault("cache", cache)
        return SessionController(
            ADDRESS,
            runner,
            perform or (lambda request: None),
            **kwargs,
        )

    return factory
