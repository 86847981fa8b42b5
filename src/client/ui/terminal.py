"""
Full-screen curses surface for the inbox browser.

An asyncio loop owns the terminal: one task polls the keyboard, blocking
work runs in threads through ``AsyncTaskRunner``, and a single consumer
pops events off a queue, hands them to the controller and redraws.
"""

import asyncio
import curses
import logging
import os
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .controller import SessionController, TaskRunner
from .events import Event, KeyPressed, Resized
from .render import (
    DETAIL_HINTS,
    confirm_lines,
    footer_hints,
    format_header,
    format_row,
    help_lines,
    join_cells,
    title_line,
)
from .state import HEADER_HEIGHT, Screen, SessionState

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.02
SPINNER_INTERVAL = 0.1
SPINNER = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

SPECIAL_KEYS = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_PPAGE: "pgup",
    curses.KEY_NPAGE: "pgdown",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    curses.KEY_ENTER: "enter",
    curses.KEY_BACKSPACE: "backspace",
    curses.KEY_DC: "delete",
}

CONTROL_CHARS = {
    "\n": "enter",
    "\r": "enter",
    "\x1b": "esc",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x03": "ctrl+c",
    "\t": "tab",
}


def translate_key(key: Union[int, str]) -> Optional[str]:
    """
    Map a ``get_wch`` result to a key name.

    Returns:
        Names like ``"up"``, ``"enter"`` or ``"ctrl+c"``, the character
        itself for printable input, or None for keys the browser ignores.
    """
    if isinstance(key, int):
        return SPECIAL_KEYS.get(key)
    if key in CONTROL_CHARS:
        return CONTROL_CHARS[key]
    if len(key) == 1 and key.isprintable():
        return key
    return None


@dataclass(frozen=True)
class Palette:
    """Curses attributes used by the screens."""

    title: int = 0
    status: int = 0
    error: int = 0
    header: int = 0
    key: int = 0
    dim: int = 0
    unread: int = 0
    cursor: int = 0

    @classmethod
    def create(cls) -> "Palette":
        """Build the palette; needs an initialised screen."""
        bold = curses.A_BOLD
        if not curses.has_colors():
            return cls(
                title=bold, status=bold, error=bold, header=curses.A_UNDERLINE,
                key=bold, dim=curses.A_DIM, unread=bold, cursor=curses.A_REVERSE,
            )

        curses.start_color()
        try:
            curses.use_default_colors()
            background = -1
        except curses.error:
            background = curses.COLOR_BLACK

        curses.init_pair(1, curses.COLOR_MAGENTA, background)
        curses.init_pair(2, curses.COLOR_GREEN, background)
        curses.init_pair(3, curses.COLOR_RED, background)
        curses.init_pair(4, curses.COLOR_CYAN, background)

        return cls(
            title=curses.color_pair(1) | bold,
            status=curses.color_pair(2),
            error=curses.color_pair(3) | bold,
            header=curses.color_pair(4) | bold,
            key=curses.color_pair(4) | bold,
            dim=curses.A_DIM,
            unread=bold,
            cursor=curses.A_REVERSE,
        )


class AsyncTaskRunner:
    """Runs controller work in threads and timers on the event loop."""

    def __init__(
        self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue
    ) -> None:
        self._loop = loop
        self._queue = queue
        self._tasks: set[asyncio.Task] = set()
        self._timers: set[asyncio.TimerHandle] = set()

    def submit(self, work: Callable[[], Event]) -> None:
        task = self._loop.create_task(self._run(work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, work: Callable[[], Event]) -> None:
        try:
            event = await asyncio.to_thread(work)
        except Exception:
            logger.exception("Background work failed")
            return
        self._queue.put_nowait(event)

    def schedule(self, delay: float, event: Event) -> None:
        handle: asyncio.TimerHandle

        def fire() -> None:
            self._timers.discard(handle)
            self._queue.put_nowait(event)

        handle = self._loop.call_later(delay, fire)
        self._timers.add(handle)

    def close(self) -> None:
        """Cancel pending timers and tasks."""
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        for task in list(self._tasks):
            task.cancel()


class TerminalSurface:
    """Draws ``SessionState`` onto a curses window."""

    def __init__(self, stdscr, palette: Palette) -> None:
        self._stdscr = stdscr
        self._palette = palette
        self._frame = 0

    @staticmethod
    def _fit(text: str, width: int) -> str:
        if width <= 0:
            return ""
        text = text.replace("\t", "    ")
        if len(text) <= width:
            return text
        if width <= 3:
            return text[:width]
        return text[: width - 3] + "..."

    def _put(self, y: int, x: int, text: str, attr: int = 0) -> None:
        height, width = self._stdscr.getmaxyx()
        if y < 0 or y >= height or x >= width:
            return
        try:
            self._stdscr.addstr(y, x, self._fit(text, width - x - 1), attr)
        except curses.error:
            pass

    def draw(self, state: SessionState) -> None:
        self._frame += 1
        self._stdscr.erase()
        height, width = self._stdscr.getmaxyx()

        if state.screen == Screen.HELP:
            self._draw_help(height)
        elif state.screen == Screen.CONFIRM:
            self._draw_confirm(state, height, width)
        elif state.screen == Screen.DETAIL:
            self._draw_detail(state, height)
        elif state.last_error is not None:
            self._draw_error(state)
        elif state.loading and not state.messages:
            self._draw_loading()
        else:
            self._draw_list(state, height)

        self._stdscr.refresh()

    def _draw_title(self, state: SessionState) -> None:
        self._put(0, 1, title_line(state.address, len(state.messages)), self._palette.title)
        if state.status:
            attr = (
                self._palette.error if state.status.startswith(("Error", "Failed"))
                else self._palette.status
            )
            self._put(1, 2, f"▸ {state.status}", attr)

    def _draw_loading(self) -> None:
        spinner = SPINNER[self._frame % len(SPINNER)]
        self._put(0, 1, f"{spinner} Loading...", self._palette.title)

    def _draw_error(self, state: SessionState) -> None:
        self._put(0, 1, state.last_error or "Error", self._palette.error)
        self._put(2, 1, "Press r to retry or q to quit", self._palette.dim)

    def _draw_list(self, state: SessionState, height: int) -> None:
        palette = self._palette
        self._draw_title(state)

        prompt = " / "
        if state.search_mode or state.search_text:
            search = f"{prompt}{state.search_text}"
            if state.search_mode:
                search += "_"
        else:
            search = f"{prompt}Search messages (sender, subject, content)..."
        self._put(2, 1, search, palette.key if state.search_mode else palette.dim)

        columns = state.viewport.columns
        self._put(3, 1, format_header(columns), palette.header)

        body = state.viewport.body_height
        visible = state.view[state.list_offset:state.list_offset + body]
        for row, message in enumerate(visible):
            index = state.list_offset + row
            attr = 0 if message.seen else palette.unread
            if index == state.cursor:
                attr |= palette.cursor
            cells = format_row(message, columns, index in state.selection)
            self._put(HEADER_HEIGHT + row - 1, 1, join_cells(cells), attr)

        if not state.view:
            empty = "No messages match your search" if state.search_text else "Inbox is empty"
            self._put(HEADER_HEIGHT - 1, 2, empty, palette.dim)

        if state.loading:
            spinner = SPINNER[self._frame % len(SPINNER)]
            self._put(height - 3, 2, f"{spinner} Loading...", palette.dim)

        for offset, line in enumerate(
            footer_hints(state.sort_mode, state.auto_refresh, state.bulk_mode)
        ):
            self._put(height - 2 + offset, 2, line, palette.dim)

    def _draw_detail(self, state: SessionState, height: int) -> None:
        self._draw_title(state)
        body = state.viewport.body_height
        lines = state.detail_lines[state.detail_offset:state.detail_offset + body]
        for row, line in enumerate(lines):
            self._put(HEADER_HEIGHT - 2 + row, 2, line)
        self._put(height - 1, 2, DETAIL_HINTS, self._palette.dim)

    def _draw_help(self, height: int) -> None:
        for row, line in enumerate(help_lines()[:height]):
            attr = self._palette.header if line.startswith("▸") else 0
            if row == 0:
                attr = self._palette.title
            self._put(row, 1, line, attr)

    def _draw_confirm(self, state: SessionState, height: int, width: int) -> None:
        description = state.confirmation.description if state.confirmation else ""
        lines = confirm_lines(description)
        box_width = min(width - 2, max(50, max(len(line) for line in lines) + 6))
        top = max(0, (height - len(lines) - 4) // 2)
        left = max(0, (width - box_width) // 2)

        border = "+" + "-" * (box_width - 2) + "+"
        self._put(top, left, border, self._palette.title)
        for row, line in enumerate([""] + lines + [""], start=1):
            attr = self._palette.title if row == 2 else 0
            self._put(top + row, left, "|", self._palette.title)
            self._put(top + row, left + 2, line.ljust(box_width - 4), attr)
            self._put(top + row, left + box_width - 1, "|", self._palette.title)
        self._put(top + len(lines) + 3, left, border, self._palette.title)


async def poll_keys(stdscr, queue: asyncio.Queue) -> None:
    """Forward key presses and resizes to ``queue``."""
    while True:
        try:
            key = stdscr.get_wch()
        except curses.error:
            await asyncio.sleep(POLL_INTERVAL)
            continue

        if key == curses.KEY_RESIZE:
            curses.update_lines_cols()
            height, width = stdscr.getmaxyx()
            queue.put_nowait(Resized(width=width, height=height))
            continue

        name = translate_key(key)
        if name is not None:
            queue.put_nowait(KeyPressed(name))
        await asyncio.sleep(0)


async def pump_events(
    controller: SessionController,
    queue: asyncio.Queue,
    surface: TerminalSurface,
) -> None:
    """
    Apply queued events and redraw until the controller stops running.

    While a request is in flight the screen is also redrawn every
    ``SPINNER_INTERVAL`` seconds so the spinner keeps turning.
    """
    surface.draw(controller.state)
    while controller.running:
        timeout = SPINNER_INTERVAL if controller.state.loading else None
        try:
            event = await asyncio.wait_for(queue.get(), timeout)
        except asyncio.TimeoutError:
            surface.draw(controller.state)
            continue

        controller.handle(event)
        while controller.running and not queue.empty():
            controller.handle(queue.get_nowait())
        surface.draw(controller.state)


async def run_session(
    stdscr,
    build_controller: Callable[[TaskRunner], SessionController],
    cancel_event: threading.Event,
) -> None:
    """Drive one browser session until the controller stops running."""
    curses.raw()
    stdscr.nodelay(True)
    stdscr.keypad(True)
    try:
        curses.curs_set(0)
    except curses.error:
        pass

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    runner = AsyncTaskRunner(loop, queue)
    surface = TerminalSurface(stdscr, Palette.create())

    controller = build_controller(runner)
    height, width = stdscr.getmaxyx()
    controller.handle(Resized(width=width, height=height))
    controller.start()

    poller = asyncio.create_task(poll_keys(stdscr, queue))
    try:
        await pump_events(controller, queue, surface)
    finally:
        cancel_event.set()
        poller.cancel()
        runner.close()
        logger.debug("Session ended")


def run_tui(
    build_controller: Callable[[TaskRunner], SessionController],
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """
    Run the inbox browser in the alternate screen.

    Args:
        build_controller: Creates the controller once the task runner exists.
        cancel_event: Set when the session ends so worker threads stop waiting.
    """
    os.environ.setdefault("ESCDELAY", "25")
    cancel_event = cancel_event or threading.Event()
    curses.wrapper(
        lambda stdscr: asyncio.run(run_session(stdscr, build_controller, cancel_event))
    )
