"""
Background execution of controller requests.

``RequestWorker.perform`` runs on a worker thread, calls the mailbox
client through the retry policy and converts the outcome into exactly
one completion event. It never touches session state.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Sequence

from client.services.downloads import save_attachment
from client.services.mailbox_client import MailTMClient
from client.services.retry import RetryPolicy

from .events import (
    AttachmentSaved,
    BrowserOpened,
    BulkDelete,
    ClipboardCopied,
    CopyToClipboard,
    DeleteMessage,
    DownloadAttachment,
    Event,
    LoadMessageDetail,
    LoadMessages,
    MessageDeleted,
    MessageDetailLoaded,
    MessagesBulkDeleted,
    MessagesLoaded,
    OpenInBrowser,
    Request,
    RequestFailed,
)

logger = logging.getLogger(__name__)


class RequestWorker:
    """Performs requests on behalf of the controller."""

    def __init__(
        self,
        client: MailTMClient,
        policy: RetryPolicy,
        downloads_dir: Path,
        copy_text: Callable[[str], None],
        open_html: Callable[[Sequence[str]], object],
        cancel_event: Optional[threading.Event] = None,
        max_workers: int = 5,
    ) -> None:
        """
        Initialize the worker.

        Args:
            client: Authenticated mailbox client.
            policy: Retry policy wrapped around every API call.
            downloads_dir: Where attachments are saved.
            copy_text: Clipboard writer.
            open_html: Opens HTML fragments in a browser.
            cancel_event: Set on shutdown to abort retry waits.
            max_workers: Concurrency of bulk deletion.
        """
        self._client = client
        self._policy = policy
        self._downloads_dir = downloads_dir
        self._copy_text = copy_text
        self._open_html = open_html
        self._cancel_event = cancel_event or threading.Event()
        self._max_workers = max_workers

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def _call(self, operation: Callable):
        return self._policy.run(operation, self._cancel_event)

    def perform(self, request: Request) -> Event:
        """
        Execute ``request`` and report the outcome.

        Returns:
            The completion event, or ``RequestFailed`` carrying the error.
        """
        try:
            return self._dispatch(request)
        except Exception as e:
            logger.warning("%s failed: %s", type(request).__name__, e)
            return RequestFailed(request=request, error=e)

    def _dispatch(self, request: Request) -> Event:
        if isinstance(request, LoadMessages):
            messages = self._call(self._client.list_messages)
            return MessagesLoaded(messages=tuple(messages))

        if isinstance(request, LoadMessageDetail):
            detail = self._call(lambda: self._client.get_message(request.message_id))
            if request.mark_read:
                try:
                    self._client.mark_read(request.message_id)
                except Exception as e:
                    logger.debug("Failed to mark %s read: %s", request.message_id, e)
            return MessageDetailLoaded(detail=detail)

        if isinstance(request, DeleteMessage):
            self._call(lambda: self._client.delete_message(request.message_id))
            return MessageDeleted(message_id=request.message_id)

        if isinstance(request, BulkDelete):
            self._delete_all(request.message_ids)
            return MessagesBulkDeleted(message_ids=request.message_ids)

        if isinstance(request, DownloadAttachment):
            attachment = request.attachment
            data = self._call(
                lambda: self._client.download_attachment(
                    request.message_id, attachment.id
                )
            )
            path = save_attachment(self._downloads_dir, attachment.filename, data)
            return AttachmentSaved(filename=attachment.filename, path=path)

        if isinstance(request, CopyToClipboard):
            self._copy_text(request.text)
            return ClipboardCopied(label=request.label)

        if isinstance(request, OpenInBrowser):
            self._open_html(request.fragments)
            return BrowserOpened()

        raise TypeError(f"Unsupported request: {request!r}")

    def _delete_all(self, message_ids: Sequence[str]) -> None:
        """
        Delete messages concurrently and wait for every call.

        Raises:
            Exception: The first error in request order, after all calls ended.
        """
        if not message_ids:
            return

        workers = max(1, min(self._max_workers, len(message_ids)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(
                    self._call,
                    lambda message_id=message_id: self._client.delete_message(
                        message_id
                    ),
                )
                for message_id in message_ids
            ]

        errors = [f.exception() for f in futures if f.exception() is not None]
        if errors:
            logger.warning(
                "%d of %d deletions failed", len(errors), len(message_ids)
            )
            raise errors[0]
