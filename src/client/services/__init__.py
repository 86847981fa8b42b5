"""
Burnmail client services.

This module provides the collaborators of the interactive inbox browser:
the mail.tm API client, retry policy, message cache, attachment downloads,
HTML conversion, desktop integration and export.
"""

from .mailbox_client import MailTMClient
from .retry import RetryPolicy, is_rate_limited
from .cache_store import MessageCache
from .downloads import get_downloads_dir, save_attachment, unique_path
from .html_text import fragments_to_text, html_to_text
from .desktop import copy_to_clipboard, open_html_in_browser
from .export_service import (
    ExportService,
    ExportProgress,
    ExportResult,
    export_filename,
)

__all__ = [
    # API client
    "MailTMClient",
    # Retry policy
    "RetryPolicy",
    "is_rate_limited",
    # Message cache
    "MessageCache",
    # Downloads
    "get_downloads_dir",
    "save_attachment",
    "unique_path",
    # HTML conversion
    "fragments_to_text",
    "html_to_text",
    # Desktop integration
    "copy_to_clipboard",
    "open_html_in_browser",
    # Export service
    "ExportService",
    "ExportProgress",
    "ExportResult",
    "export_filename",
]
