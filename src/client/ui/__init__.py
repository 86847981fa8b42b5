"""
Burnmail interactive inbox browser.
"""

from .events import Event, Request
from .state import Screen, SessionState
from .render import SortMode
from .controller import SessionController, TaskRunner
from .worker import RequestWorker
from .terminal import AsyncTaskRunner, Palette, run_tui

__all__ = [
    "Event",
    "Request",
    "Screen",
    "SessionState",
    "SortMode",
    "SessionController",
    "TaskRunner",
    "RequestWorker",
    "AsyncTaskRunner",
    "Palette",
    "run_tui",
]
