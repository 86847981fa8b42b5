"""
Disk-backed message list cache for Burnmail.

The cache is one JSON file holding the last known message list and the
time it was written. It only seeds the first paint of the inbox, so every
problem with it (missing, unreadable, malformed, expired) simply means
there is no cache.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Sequence

from pydantic import ValidationError

from common.exceptions import CacheError
from common.models import CacheSnapshot, MessageSummary

logger = logging.getLogger(__name__)

SNAPSHOT_KEYS = frozenset({"messages", "timestamp"})
MESSAGE_KEYS = frozenset(
    field.alias or name for name, field in MessageSummary.model_fields.items()
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_schema(raw: object) -> None:
    """
    Require the exact snapshot layout.

    Raises:
        CacheError: If keys are missing or unexpected.
    """
    if not isinstance(raw, dict) or set(raw) != SNAPSHOT_KEYS:
        raise CacheError("Cache snapshot has unexpected layout")
    messages = raw["messages"]
    if not isinstance(messages, list):
        raise CacheError("Cache messages are not a list")
    for item in messages:
        if not isinstance(item, dict) or set(item) != MESSAGE_KEYS:
            raise CacheError("Cached message does not match the message schema")


class MessageCache:
    """Reads and writes the message list snapshot."""

    def __init__(
        self,
        path: Path,
        expiry: float = 300.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            path: Snapshot file location.
            expiry: Maximum snapshot age in seconds.
            clock: Source of the current time, replaceable for tests.
        """
        self._path = Path(path)
        self._expiry = expiry
        self._clock = clock or _utcnow

    @property
    def path(self) -> Path:
        """Snapshot file location."""
        return self._path

    def read_snapshot(self) -> CacheSnapshot:
        """
        Read and validate the snapshot regardless of its age.

        Raises:
            CacheError: If the file is missing, unreadable or malformed.
        """
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise CacheError("No cache snapshot", {"path": str(self._path)})
        except (OSError, ValueError) as e:
            raise CacheError(f"Unreadable cache snapshot: {e}")

        _check_schema(raw)

        try:
            return CacheSnapshot.model_validate(raw)
        except ValidationError as e:
            raise CacheError(f"Invalid cache snapshot: {e}")

    def load(self) -> Optional[list[MessageSummary]]:
        """
        Load cached messages.

        Returns:
            The cached list, or None when absent, corrupt or expired.
        """
        try:
            snapshot = self.read_snapshot()
        except CacheError as e:
            logger.debug("Ignoring message cache: %s", e)
            return None

        age = snapshot.age_seconds(self._clock())
        if age >= self._expiry:
            logger.debug("Ignoring message cache older than %.0f seconds", age)
            return None

        return list(snapshot.messages)

    def save(self, messages: Sequence[MessageSummary]) -> None:
        """Overwrite the snapshot with ``messages``; failures are ignored."""
        snapshot = {
            "messages": [message.to_dict() for message in messages],
            "timestamp": self._clock().isoformat(),
        }

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=".burnmail-cache-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.debug("Failed to write message cache: %s", e)
