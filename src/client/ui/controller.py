"""
Session controller for the interactive inbox browser.

The controller owns the ``SessionState`` and is its only writer. The
terminal loop feeds it one event at a time through ``handle``; network
and desktop work is handed to a ``TaskRunner`` and comes back later as
completion events. Nothing in here blocks.
"""

import logging
from functools import partial
from typing import Callable, Protocol

from client.services.cache_store import MessageCache
from client.services.html_text import fragments_to_text
from common.exceptions import OperationCancelledError
from common.models import MessageDetail

from .events import (
    EVENT_TYPES,
    AttachmentSaved,
    BrowserOpened,
    BulkDelete,
    ClipboardCopied,
    CopyToClipboard,
    DeleteMessage,
    DownloadAttachment,
    Event,
    KeyPressed,
    LoadMessageDetail,
    LoadMessages,
    MessageDeleted,
    MessageDetailLoaded,
    MessagesBulkDeleted,
    MessagesLoaded,
    OpenInBrowser,
    Request,
    RequestFailed,
    Resized,
    RetryDue,
    Tick,
)
from .render import (
    HtmlConverter,
    build_view,
    detail_body_text,
    format_detail,
    scroll_offset,
    truncate,
    wrap_lines,
)
from .state import ConfirmAction, PendingConfirmation, Screen, SessionState

logger = logging.getLogger(__name__)

QUIT_KEYS = ("q", "ctrl+c")
ATTACHMENT_KEYS = tuple("123456789")


class TaskRunner(Protocol):
    """Runs background work and timers for the controller."""

    def submit(self, work: Callable[[], Event]) -> None:
        """Run ``work`` off the loop and deliver the event it returns."""

    def schedule(self, delay: float, event: Event) -> None:
        """Deliver ``event`` after ``delay`` seconds."""


class SessionController:
    """Event-driven state machine behind the inbox browser."""

    def __init__(
        self,
        address: str,
        runner: TaskRunner,
        perform: Callable[[Request], Event],
        cache: MessageCache,
        html_converter: HtmlConverter = fragments_to_text,
        refresh_interval: float = 10.0,
        retry_delay: float = 1.0,
        max_retries: int = 3,
        auto_refresh: bool = True,
    ) -> None:
        """
        Initialize the controller.

        Args:
            address: Mailbox address shown in the title.
            runner: Executes background work and timers.
            perform: Turns a request into its completion event; called by
                the runner off the loop.
            cache: Message list snapshot store.
            html_converter: Converts HTML fragments to text.
            refresh_interval: Seconds between auto-refresh ticks.
            retry_delay: Base delay before re-issuing a failed load.
            max_retries: Failed loads tolerated before giving up.
            auto_refresh: Initial auto-refresh setting.
        """
        self._runner = runner
        self._perform = perform
        self._cache = cache
        self._html_converter = html_converter
        self._refresh_interval = refresh_interval
        self._retry_delay = retry_delay
        self._max_retries = max(1, max_retries)

        self.state = SessionState(address=address, auto_refresh=auto_refresh)
        cached = cache.load()
        if cached:
            logger.debug("Seeding inbox with %d cached messages", len(cached))
            self.state.messages = cached
        self._recompute()

        self._handlers: dict[type, Callable] = {
            KeyPressed: self._on_key,
            Resized: self._on_resized,
            Tick: self._on_tick,
            RetryDue: self._on_retry_due,
            MessagesLoaded: self._on_messages_loaded,
            MessageDetailLoaded: self._on_detail_loaded,
            MessageDeleted: self._on_message_deleted,
            MessagesBulkDeleted: self._on_bulk_deleted,
            RequestFailed: self._on_request_failed,
            AttachmentSaved: self._on_attachment_saved,
            ClipboardCopied: self._on_clipboard_copied,
            BrowserOpened: self._on_browser_opened,
        }
        missing = set(EVENT_TYPES) - set(self._handlers)
        if missing:
            raise TypeError(f"No handler for {sorted(t.__name__ for t in missing)}")

    @property
    def event_types(self) -> frozenset:
        """Event types this controller dispatches."""
        return frozenset(self._handlers)

    @property
    def running(self) -> bool:
        return self.state.running

    def start(self) -> None:
        """Issue the first load and arm the auto-refresh timer."""
        self._issue(LoadMessages())
        self._runner.schedule(self._refresh_interval, Tick())

    def handle(self, event: Event) -> None:
        """
        Apply one event to the session state.

        Handler errors are logged and shown on the status line; they never
        propagate to the loop.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("Ignoring unknown event %r", event)
            return
        try:
            handler(event)
        except Exception as e:
            logger.exception("Error handling %s", type(event).__name__)
            self.state.status = f"Error: {e}"

    # =========================================================================
    # Helpers
    # =========================================================================

    def _issue(self, request: Request) -> None:
        logger.debug("Issuing %r", request)
        self._runner.submit(partial(self._perform, request))

    def _recompute(self, clear_selection: bool = False) -> None:
        """Rebuild the view; keep the cursor and selection on the same messages."""
        state = self.state
        current = state.current
        current_id = current.id if current else None
        selected_ids = set() if clear_selection else set(state.selected_ids)

        state.view = build_view(state.messages, state.search_text, state.sort_mode)
        positions = {message.id: index for index, message in enumerate(state.view)}

        state.selection = {
            positions[message_id]
            for message_id in selected_ids
            if message_id in positions
        }

        if current_id in positions:
            state.cursor = positions[current_id]
        else:
            state.cursor = min(state.cursor, len(state.view) - 1)
        state.cursor = max(0, state.cursor)
        state.list_offset = scroll_offset(
            state.cursor, state.list_offset, state.viewport.body_height
        )

    def _move_cursor(self, position: int) -> None:
        state = self.state
        if not state.view:
            state.cursor = 0
            return
        state.cursor = max(0, min(position, len(state.view) - 1))
        state.list_offset = scroll_offset(
            state.cursor, state.list_offset, state.viewport.body_height
        )

    def _scroll_detail(self, offset: int) -> None:
        state = self.state
        limit = max(0, len(state.detail_lines) - state.viewport.body_height)
        state.detail_offset = max(0, min(offset, limit))

    def _layout_detail(self) -> None:
        state = self.state
        if state.open_detail is None:
            state.detail_lines = []
            return
        state.detail_lines = wrap_lines(
            format_detail(state.open_detail, self._html_converter),
            state.viewport.width - 2,
        )
        self._scroll_detail(state.detail_offset)

    def _show_detail(self, detail: MessageDetail) -> None:
        state = self.state
        state.open_detail = detail
        state.detail_offset = 0
        state.screen = Screen.DETAIL
        self._layout_detail()

    def _mark_seen(self, message_id: str) -> None:
        """Flip the read flag locally."""
        state = self.state
        for index, message in enumerate(state.messages):
            if message.id == message_id:
                if not message.seen:
                    state.messages[index] = message.with_seen(True)
                    self._cache.save(state.messages)
                    self._recompute()
                return

    def _remove_messages(self, message_ids: set[str]) -> None:
        state = self.state
        state.messages = [m for m in state.messages if m.id not in message_ids]
        for message_id in message_ids:
            state.details.pop(message_id, None)
        self._cache.save(state.messages)
        self._recompute(clear_selection=True)

        if state.open_detail is not None and state.open_detail.id in message_ids:
            state.open_detail = None
            state.detail_lines = []
            if state.screen == Screen.DETAIL:
                state.screen = Screen.LIST
            elif state.return_to == Screen.DETAIL:
                state.return_to = Screen.LIST

    def _ask(self, action: ConfirmAction, description: str) -> None:
        state = self.state
        state.return_to = state.screen
        state.screen = Screen.CONFIRM
        state.confirmation = PendingConfirmation(action, description)

    def _refresh(self) -> None:
        state = self.state
        state.retry_counts.pop(LoadMessages, None)
        state.last_error = None
        state.pending_retries.pop(LoadMessages, None)
        state.loading = True
        state.status = "Refreshing..."
        self._issue(LoadMessages())

    def _open_current(self) -> None:
        state = self.state
        message = state.current
        if message is None:
            return

        cached = state.details.get(message.id)
        if cached is not None:
            self._show_detail(cached)
            return

        state.loading = True
        state.pending_detail_id = message.id
        state.retry_counts.pop(LoadMessageDetail, None)
        state.pending_retries.pop(LoadMessageDetail, None)
        self._issue(LoadMessageDetail(message.id, mark_read=not message.seen))

    def _download(self, indices: range) -> None:
        detail = self.state.open_detail
        if detail is None:
            return
        attachments = [detail.attachments[i] for i in indices if i < len(detail.attachments)]
        if not attachments:
            return
        for attachment in attachments:
            self._issue(DownloadAttachment(detail.id, attachment))
        if len(attachments) == 1:
            self.state.status = f"Downloading {attachments[0].filename}..."
        else:
            self.state.status = f"Downloading {len(attachments)} attachments..."

    # =========================================================================
    # Keys
    # =========================================================================

    def _on_key(self, event: KeyPressed) -> None:
        state = self.state
        key = event.key

        if state.screen == Screen.CONFIRM:
            self._on_confirm_key(key)
            return

        if state.screen == Screen.HELP:
            if key in ("q", "esc", "?"):
                state.screen = state.return_to
            return

        if state.search_mode:
            self._on_search_key(key)
            return

        if key == "?":
            state.return_to = state.screen
            state.screen = Screen.HELP
        elif key in QUIT_KEYS:
            if state.screen == Screen.LIST:
                self._ask(ConfirmAction.QUIT, "quit the application")
            else:
                state.running = False
        elif state.screen == Screen.LIST:
            self._on_list_key(key)
        elif state.screen == Screen.DETAIL:
            self._on_detail_key(key)

    def _on_confirm_key(self, key: str) -> None:
        state = self.state
        if key in ("y", "Y"):
            pending = state.confirmation
            state.confirmation = None
            state.screen = state.return_to
            if pending is not None:
                self._execute(pending.action)
        elif key in ("n", "N", "esc", "q"):
            state.confirmation = None
            state.screen = state.return_to

    def _execute(self, action: ConfirmAction) -> None:
        state = self.state
        if action == ConfirmAction.QUIT:
            state.running = False
        elif action == ConfirmAction.DELETE_SINGLE:
            if state.open_detail is not None:
                state.loading = True
                state.status = "Deleting message..."
                self._issue(DeleteMessage(state.open_detail.id))
        elif action == ConfirmAction.DELETE_BULK:
            message_ids = state.selected_ids
            if message_ids:
                state.loading = True
                state.status = f"Deleting {len(message_ids)} messages..."
                self._issue(BulkDelete(message_ids))

    def _on_search_key(self, key: str) -> None:
        state = self.state
        if key == "esc":
            state.search_mode = False
            state.search_text = ""
        elif key == "enter":
            state.search_mode = False
            return
        elif key == "backspace":
            state.search_text = state.search_text[:-1]
        elif len(key) == 1 and key.isprintable():
            state.search_text += key
        else:
            return
        self._recompute()

    def _on_list_key(self, key: str) -> None:
        state = self.state
        page = state.viewport.body_height

        if key in ("j", "down"):
            self._move_cursor(state.cursor + 1)
        elif key in ("k", "up"):
            self._move_cursor(state.cursor - 1)
        elif key in ("g", "home"):
            self._move_cursor(0)
        elif key in ("G", "end"):
            self._move_cursor(len(state.view) - 1)
        elif key == "pgdown":
            self._move_cursor(state.cursor + page)
        elif key == "pgup":
            self._move_cursor(state.cursor - page)
        elif key == "enter":
            self._open_current()
        elif key == "/":
            state.search_mode = True
        elif key == "esc":
            if state.search_text:
                state.search_text = ""
                self._recompute()
        elif key == "s":
            state.sort_mode = state.sort_mode.next()
            state.status = f"Sorted by: {state.sort_mode.value}"
            self._recompute()
        elif key == "a":
            state.auto_refresh = not state.auto_refresh
            state.status = (
                "Auto-refresh enabled" if state.auto_refresh
                else "Auto-refresh disabled"
            )
        elif key == "v":
            state.bulk_mode = not state.bulk_mode
            if not state.bulk_mode:
                state.selection.clear()
            state.status = f"Bulk mode: {'on' if state.bulk_mode else 'off'}"
        elif key == " ":
            if state.bulk_mode and state.current is not None:
                state.selection ^= {state.cursor}
        elif key == "d":
            if state.bulk_mode and state.selection:
                self._ask(
                    ConfirmAction.DELETE_BULK,
                    f"delete {len(state.selection)} selected messages",
                )
        elif key == "c":
            if state.current is not None:
                self._issue(CopyToClipboard(state.current.sender, "Email"))
        elif key == "r":
            self._refresh()

    def _on_detail_key(self, key: str) -> None:
        state = self.state
        detail = state.open_detail
        page = state.viewport.body_height

        if key == "esc":
            state.screen = Screen.LIST
            state.open_detail = None
            state.detail_lines = []
        elif key in ("j", "down"):
            self._scroll_detail(state.detail_offset + 1)
        elif key in ("k", "up"):
            self._scroll_detail(state.detail_offset - 1)
        elif key == "pgdown":
            self._scroll_detail(state.detail_offset + page)
        elif key == "pgup":
            self._scroll_detail(state.detail_offset - page)
        elif key in ("g", "home"):
            self._scroll_detail(0)
        elif key in ("G", "end"):
            self._scroll_detail(len(state.detail_lines))
        elif detail is None:
            return
        elif key == "d":
            self._ask(
                ConfirmAction.DELETE_SINGLE,
                f"delete message '{truncate(detail.subject, 30)}'",
            )
        elif key == "c":
            text = detail_body_text(detail, self._html_converter)
            self._issue(CopyToClipboard(text, "Message"))
        elif key == "o":
            if detail.html:
                state.status = "Opening in browser..."
                self._issue(OpenInBrowser(tuple(detail.html)))
        elif key in ATTACHMENT_KEYS:
            index = int(key) - 1
            self._download(range(index, index + 1))
        elif key == "A":
            self._download(range(len(detail.attachments)))

    # =========================================================================
    # Timers and geometry
    # =========================================================================

    def _on_resized(self, event: Resized) -> None:
        state = self.state
        state.viewport.resize(event.width, event.height)
        state.list_offset = scroll_offset(
            state.cursor, state.list_offset, state.viewport.body_height
        )
        self._layout_detail()

    def _on_tick(self, event: Tick) -> None:
        state = self.state
        try:
            if (
                state.auto_refresh
                and state.screen == Screen.LIST
                and not state.loading
                and state.last_error is None
                and LoadMessages not in state.pending_retries
            ):
                state.loading = True
                self._issue(LoadMessages())
        finally:
            self._runner.schedule(self._refresh_interval, Tick())

    def _on_retry_due(self, event: RetryDue) -> None:
        state = self.state
        request = event.request
        if state.pending_retries.get(type(request)) is not request:
            logger.debug("Dropping stale retry of %r", request)
            return
        del state.pending_retries[type(request)]

        if isinstance(request, LoadMessageDetail) and (
            request.message_id != state.pending_detail_id
        ):
            return

        state.loading = True
        self._issue(request)

    # =========================================================================
    # Completions
    # =========================================================================

    def _on_messages_loaded(self, event: MessagesLoaded) -> None:
        state = self.state
        state.messages = list(event.messages)
        state.loading = False
        state.last_error = None
        state.retry_counts.pop(LoadMessages, None)
        state.pending_retries.pop(LoadMessages, None)
        if state.status == "Refreshing..." or state.status.startswith("Error"):
            state.status = ""
        self._cache.save(state.messages)
        self._recompute()
        logger.debug("Loaded %d messages", len(state.messages))

    def _on_detail_loaded(self, event: MessageDetailLoaded) -> None:
        state = self.state
        detail = event.detail
        state.details[detail.id] = detail

        expected = state.pending_detail_id == detail.id
        if expected:
            state.pending_detail_id = None
            state.loading = False
            state.retry_counts.pop(LoadMessageDetail, None)
            state.pending_retries.pop(LoadMessageDetail, None)
            if state.status.startswith("Error"):
                state.status = ""

        self._mark_seen(detail.id)

        if expected and state.screen == Screen.LIST:
            self._show_detail(detail)

    def _on_message_deleted(self, event: MessageDeleted) -> None:
        state = self.state
        state.loading = False
        state.status = "Message deleted"
        self._remove_messages({event.message_id})

    def _on_bulk_deleted(self, event: MessagesBulkDeleted) -> None:
        state = self.state
        state.loading = False
        state.bulk_mode = False
        state.status = f"{len(event.message_ids)} messages deleted"
        self._remove_messages(set(event.message_ids))

    def _on_request_failed(self, event: RequestFailed) -> None:
        state = self.state
        request, error = event.request, event.error

        if isinstance(error, OperationCancelledError):
            logger.debug("%r cancelled", request)
            state.loading = False
            return

        if isinstance(request, (LoadMessages, LoadMessageDetail)):
            self._retry_load(request, error)
        elif isinstance(request, DeleteMessage):
            state.loading = False
            state.status = f"Error: failed to delete message: {error}"
        elif isinstance(request, BulkDelete):
            state.status = f"Error: bulk delete failed: {error}"
            state.selection.clear()
            state.loading = True
            self._issue(LoadMessages())
        elif isinstance(request, DownloadAttachment):
            state.status = (
                f"Failed to download {request.attachment.filename}: {error}"
            )
        elif isinstance(request, CopyToClipboard):
            state.status = f"Failed to copy to clipboard: {error}"
        elif isinstance(request, OpenInBrowser):
            state.status = f"Failed to open browser: {error}"

    def _retry_load(self, request: Request, error: Exception) -> None:
        state = self.state
        if isinstance(request, LoadMessageDetail) and (
            request.message_id != state.pending_detail_id
        ):
            logger.debug("Ignoring failure of stale detail load %s", request)
            return

        kind = type(request)
        count = state.retry_counts.get(kind, 0) + 1
        state.retry_counts[kind] = count
        state.loading = False

        if count < self._max_retries:
            state.status = f"Error (retry {count}/{self._max_retries}): {error}"
            state.pending_retries[kind] = request
            self._runner.schedule(count * self._retry_delay, RetryDue(request))
            return

        state.last_error = f"Error after {self._max_retries} retries: {error}"
        state.status = state.last_error
        state.pending_retries.pop(kind, None)
        if kind is LoadMessageDetail:
            state.pending_detail_id = None
        logger.error("%s", state.last_error)

    def _on_attachment_saved(self, event: AttachmentSaved) -> None:
        self.state.status = f"Saved {event.filename} to {event.path}"

    def _on_clipboard_copied(self, event: ClipboardCopied) -> None:
        self.state.status = f"{event.label} copied to clipboard"

    def _on_browser_opened(self, event: BrowserOpened) -> None:
        self.state.status = "Opened in browser"

