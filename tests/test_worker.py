"""
Tests for the background request worker.
"""

import threading

import pytest
from conftest import FakeMailbox, make_attachment, make_detail, make_message

from client.services.retry import RetryPolicy
from client.ui.events import (
    AttachmentSaved,
    BrowserOpened,
    BulkDelete,
    ClipboardCopied,
    CopyToClipboard,
    DeleteMessage,
    DownloadAttachment,
    LoadMessageDetail,
    LoadMessages,
    MessageDeleted,
    MessageDetailLoaded,
    MessagesBulkDeleted,
    MessagesLoaded,
    OpenInBrowser,
    RequestFailed,
)
from client.ui.worker import RequestWorker
from common.exceptions import (
    APIError,
    DesktopIntegrationError,
    OperationCancelledError,
    RateLimitError,
)


@pytest.fixture
def mailbox():
    return FakeMailbox(
        messages=[make_message("m1"), make_message("m2"), make_message("m3")],
        details={"m1": make_detail("m1", text="Body")},
    )


@pytest.fixture
def clipboard():
    return []


@pytest.fixture
def worker(mailbox, no_wait_policy, tmp_path, clipboard):
    return RequestWorker(
        mailbox,
        no_wait_policy,
        tmp_path,
        clipboard.append,
        lambda fragments: None,
    )


class TestRequestWorker:
    """Tests for request execution."""

    def test_load_messages(self, worker):
        event = worker.perform(LoadMessages())

        assert isinstance(event, MessagesLoaded)
        assert [m.id for m in event.messages] == ["m1", "m2", "m3"]

    def test_rate_limited_load_is_retried(self, worker, mailbox, no_wait_policy):
        mailbox.fail("list_messages", RateLimitError("get messages"))

        event = worker.perform(LoadMessages())

        assert isinstance(event, MessagesLoaded)
        assert no_wait_policy.delays == [1.0]

    def test_failure_becomes_event(self, worker, mailbox):
        error = APIError("Server error", 500)
        mailbox.fail("list_messages", error)

        event = worker.perform(LoadMessages())

        assert event == RequestFailed(LoadMessages(), error)

    def test_detail_marks_read_when_asked(self, worker, mailbox):
        event = worker.perform(LoadMessageDetail("m1", mark_read=True))

        assert isinstance(event, MessageDetailLoaded)
        assert ("mark_read", "m1") in mailbox.calls

    def test_mark_read_failure_is_ignored(self, worker, mailbox):
        mailbox.fail("mark_read", APIError("Server error", 500))

        event = worker.perform(LoadMessageDetail("m1", mark_read=True))
        assert isinstance(event, MessageDetailLoaded)

    def test_detail_without_mark_read(self, worker, mailbox):
        worker.perform(LoadMessageDetail("m1"))
        assert ("mark_read", "m1") not in mailbox.calls

    def test_delete_message(self, worker, mailbox):
        assert worker.perform(DeleteMessage("m2")) == MessageDeleted("m2")
        assert [m.id for m in mailbox.messages] == ["m1", "m3"]

    def test_bulk_delete_joins_all_calls(self, worker, mailbox):
        event = worker.perform(BulkDelete(("m1", "m3")))

        assert event == MessagesBulkDeleted(("m1", "m3"))
        assert [m.id for m in mailbox.messages] == ["m2"]

    def test_bulk_delete_partial_failure(self, worker, mailbox):
        mailbox.fail("delete_message", APIError("Server error", 500))

        event = worker.perform(BulkDelete(("m1", "m2", "m3")))

        assert isinstance(event, RequestFailed)
        deletes = [call for call in mailbox.calls if call[0] == "delete_message"]
        assert len(deletes) == 3

    def test_download_attachment(self, worker, mailbox, tmp_path):
        attachment = make_attachment("a1", "report.pdf")
        mailbox.attachments["a1"] = b"%PDF"

        event = worker.perform(DownloadAttachment("m1", attachment))

        assert event == AttachmentSaved("report.pdf", tmp_path / "report.pdf")
        assert (tmp_path / "report.pdf").read_bytes() == b"%PDF"

    def test_clipboard(self, worker, clipboard):
        assert worker.perform(CopyToClipboard("hi", "Email")) == ClipboardCopied("Email")
        assert clipboard == ["hi"]

    def test_clipboard_failure(self, mailbox, no_wait_policy, tmp_path):
        def copy(text):
            raise DesktopIntegrationError("No clipboard tool available")

        worker = RequestWorker(mailbox, no_wait_policy, tmp_path, copy, lambda f: None)
        event = worker.perform(CopyToClipboard("hi", "Email"))

        assert isinstance(event, RequestFailed)
        assert isinstance(event.error, DesktopIntegrationError)

    def test_open_in_browser(self, worker):
        assert worker.perform(OpenInBrowser(("<p>x</p>",))) == BrowserOpened()

    def test_cancelled_retry(self, mailbox, tmp_path):
        cancel = threading.Event()
        cancel.set()
        worker = RequestWorker(
            mailbox, RetryPolicy(), tmp_path, lambda t: None, lambda f: None,
            cancel_event=cancel,
        )

        event = worker.perform(LoadMessages())

        assert isinstance(event.error, OperationCancelledError)
        assert mailbox.calls == []
