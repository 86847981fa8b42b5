"""
Tests for the message list cache.
"""

import json
from datetime import timedelta

import pytest
from conftest import BASE_TIME

from client.services.cache_store import MessageCache
from common.exceptions import CacheError


@pytest.fixture
def clock():
    now = {"value": BASE_TIME}

    def current():
        return now["value"]

    current.now = now
    return current


@pytest.fixture
def cache_file(tmp_path):
    return tmp_path / "cache.json"


# =============================================================================
# Round Trip and Expiry
# =============================================================================

class TestMessageCache:
    """Tests for loading and saving snapshots."""

    def test_missing_file_is_no_cache(self, cache_file):
        assert MessageCache(cache_file).load() is None

    def test_save_then_load(self, cache_file, clock, inbox):
        cache = MessageCache(cache_file, clock=clock)
        cache.save(inbox)

        assert cache.load() == inbox

    def test_snapshot_layout(self, cache_file, clock, inbox):
        MessageCache(cache_file, clock=clock).save(inbox)
        raw = json.loads(cache_file.read_text())

        assert set(raw) == {"messages", "timestamp"}
        assert raw["messages"][0]["from"]["address"] == "bob@shop.test"
        assert raw["messages"][0]["hasAttachments"] is False

    def test_recent_snapshot_is_used(self, cache_file, clock, inbox):
        cache = MessageCache(cache_file, expiry=300.0, clock=clock)
        cache.save(inbox)
        clock.now["value"] = BASE_TIME + timedelta(minutes=4)

        assert cache.load() is not None

    def test_expired_snapshot_is_ignored(self, cache_file, clock, inbox):
        cache = MessageCache(cache_file, expiry=300.0, clock=clock)
        cache.save(inbox)
        clock.now["value"] = BASE_TIME + timedelta(minutes=6)

        assert cache.load() is None

    def test_save_overwrites(self, cache_file, clock, inbox):
        cache = MessageCache(cache_file, clock=clock)
        cache.save(inbox)
        cache.save(inbox[:1])

        assert [m.id for m in cache.load()] == ["m1"]


# =============================================================================
# Invalid Snapshots
# =============================================================================

class TestInvalidSnapshots:
    """Tests for corrupt and mismatched cache files."""

    def test_corrupt_json(self, cache_file):
        cache_file.write_text("{not json")
        assert MessageCache(cache_file).load() is None

    def test_unknown_top_level_key(self, cache_file, clock, inbox):
        cache = MessageCache(cache_file, clock=clock)
        cache.save(inbox)
        raw = json.loads(cache_file.read_text())
        raw["version"] = 2
        cache_file.write_text(json.dumps(raw))

        with pytest.raises(CacheError):
            cache.read_snapshot()
        assert cache.load() is None

    def test_missing_message_field(self, cache_file, clock, inbox):
        cache = MessageCache(cache_file, clock=clock)
        cache.save(inbox)
        raw = json.loads(cache_file.read_text())
        del raw["messages"][0]["subject"]
        cache_file.write_text(json.dumps(raw))

        assert cache.load() is None

    def test_unknown_message_field(self, cache_file, clock, inbox):
        cache = MessageCache(cache_file, clock=clock)
        cache.save(inbox)
        raw = json.loads(cache_file.read_text())
        raw["messages"][0]["color"] = "red"
        cache_file.write_text(json.dumps(raw))

        assert cache.load() is None

    def test_write_failure_is_ignored(self, tmp_path, inbox):
        blocker = tmp_path / "file"
        blocker.write_text("")
        cache = MessageCache(blocker / "cache.json")

        cache.save(inbox)
        assert cache.load() is None
