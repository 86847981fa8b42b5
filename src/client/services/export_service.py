"""
Export service for Burnmail.

This module writes every message of the current inbox, with bodies and
attachment descriptors, to a single JSON file.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from common.exceptions import BurnmailError, StorageError
from common.models import AccountData

from .mailbox_client import MailTMClient
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

EXPORT_DATE_FORMAT = "%d/%m/%Y, %H:%M:%S"


@dataclass
class ExportProgress:
    """Progress information for export operation."""

    items_processed: int
    total_items: int
    percent_complete: float


@dataclass
class ExportResult:
    """Result of export operation."""

    path: Path
    exported: int
    skipped: int


def export_filename(address: str, when: datetime) -> str:
    """Name of the export file for ``address`` taken at ``when``."""
    return f"burnmail_export_{address.replace('@', '_')}_{int(when.timestamp())}.json"


class ExportService:
    """Service for exporting the inbox to JSON."""

    def __init__(self, client: MailTMClient, policy: RetryPolicy) -> None:
        """
        Initialize the export service.

        Args:
            client: Authenticated mailbox client.
            policy: Retry policy applied to each API call.
        """
        self._client = client
        self._policy = policy
        self._progress_callback: Optional[Callable[[ExportProgress], None]] = None

    def set_progress_callback(
        self, callback: Optional[Callable[[ExportProgress], None]]
    ) -> None:
        """Set callback for progress updates."""
        self._progress_callback = callback

    def _report_progress(self, processed: int, total: int) -> None:
        """Report progress to callback."""
        if self._progress_callback:
            percent = (processed / total * 100) if total > 0 else 0
            self._progress_callback(
                ExportProgress(
                    items_processed=processed,
                    total_items=total,
                    percent_complete=percent,
                )
            )

    def export(
        self,
        account: AccountData,
        output_dir: Optional[Path] = None,
        now: Optional[datetime] = None,
    ) -> ExportResult:
        """
        Export all messages of ``account``.

        Messages whose detail cannot be fetched are skipped.

        Args:
            account: The stored account being exported.
            output_dir: Destination directory, the current one by default.
            now: Export time, defaults to the current time.

        Returns:
            ExportResult with the file path and message counts.

        Raises:
            BurnmailError: If the message list cannot be fetched.
            StorageError: If the export file cannot be written.
        """
        now = now or datetime.now()
        summaries = self._policy.run(self._client.list_messages)
        total = len(summaries)
        logger.info("Exporting %d messages for %s", total, account.address)

        exported = []
        skipped = 0
        for index, summary in enumerate(summaries, start=1):
            try:
                detail = self._policy.run(
                    lambda message_id=summary.id: self._client.get_message(message_id)
                )
            except BurnmailError as e:
                logger.warning("Failed to fetch message %s: %s", summary.id, e)
                skipped += 1
            else:
                entry = detail.to_dict()
                entry["isIncluded"] = True
                exported.append(entry)
            self._report_progress(index, total)

        document = {
            "account": {
                "address": account.address,
                "accountId": account.account_id,
                "createdAt": account.created_at,
            },
            "messages": exported,
            "exportedAt": now.strftime(EXPORT_DATE_FORMAT),
        }

        path = Path(output_dir or Path.cwd()) / export_filename(account.address, now)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise StorageError(f"Failed to write export file: {e}", {"path": str(path)})

        logger.info("Exported %d messages to %s", len(exported), path)
        return ExportResult(path=path, exported=len(exported), skipped=skipped)
