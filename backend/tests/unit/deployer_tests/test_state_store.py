"""
Unit tests for the persisted deployment state.

Tests verify:
- Missing file yields defaults
- Save/load keeps every field, including the on-disk key names
- Corrupt and partially valid files are recovered, never raised
- Atomic writes leave no temp files behind
"""

import json
import os
from unittest.mock import patch

import pytest

from deployer.state_store import (
    DeploymentState,
    HealthCheckConfig,
    HistoryEntry,
    StateStore,
    atomic_write_file,
)
from deployer.types import Colour


def _entry(colour=Colour.BLUE, revision="abc1234", archive=None):
    return HistoryEntry(
        tag=f"{colour.value}-{revision}",
        colour=colour,
        revision=revision,
        saved_archive_path=archive,
    )


class TestLoadDefaults:
    """Test defaults when nothing usable is on disk"""

    @pytest.mark.asyncio
    async def test_missing_file_returns_defaults(self, store):
        state = await store.load()

        assert state.active_colour is Colour.BLUE
        assert state.history == []
        assert state.health.base_address == "http://localhost"
        assert state.health.port == 4000
        assert state.health.path == "/health"
        assert state.health.interval_ms == 2000
        assert state.health.max_attempts == 15

    @pytest.mark.asyncio
    async def test_unparseable_file_returns_defaults(self, store, state_file):
        state_file.write_text("{not json")

        state = await store.load()

        assert state == DeploymentState()

    @pytest.mark.asyncio
    async def test_non_object_returns_defaults(self, store, state_file):
        state_file.write_text("[1, 2, 3]")

        state = await store.load()

        assert state == DeploymentState()

    def test_health_url(self):
        health = HealthCheckConfig(base_address="http://example.com/", port=8080, path="/ready")
        assert health.url == "http://example.com:8080/ready"


class TestRoundTrip:
    """Test save followed by load"""

    @pytest.mark.asyncio
    async def test_round_trip_preserves_state(self, store):
        state = DeploymentState(
            active_colour=Colour.GREEN,
            history=[_entry(Colour.BLUE, "abc1234", "/tmp/blue-1.tar.gz")],
            health=HealthCheckConfig(port=8080, path="/ready", interval_ms=500, max_attempts=4),
        )

        await store.save(state)
        loaded = await store.load()

        assert loaded == state

    @pytest.mark.asyncio
    async def test_saved_file_uses_documented_keys(self, store, state_file):
        state = DeploymentState(history=[_entry(archive="/tmp/a.tar.gz")])

        await store.save(state)
        raw = json.loads(state_file.read_text())

        assert raw["colour"] == "blue"
        assert raw["history"][0] == {
            "tag": "blue-abc1234",
            "colour": "blue",
            "commit": "abc1234",
            "savedImage": "/tmp/a.tar.gz",
        }
        assert set(raw["health"]) == {"baseURL", "port", "path", "intervalMs", "maxAttempts"}

    @pytest.mark.asyncio
    async def test_entry_without_archive_round_trips_as_null(self, store, state_file):
        await store.save(DeploymentState(history=[_entry()]))

        raw = json.loads(state_file.read_text())
        assert raw["history"][0]["savedImage"] is None
        assert (await store.load()).history[0].saved_archive_path is None

    @pytest.mark.asyncio
    async def test_save_creates_parent_directory(self, tmp_path):
        store = StateStore(str(tmp_path / "nested" / ".deployer" / "config.json"))

        await store.save(DeploymentState())

        assert (tmp_path / "nested" / ".deployer" / "config.json").exists()


class TestRecovery:
    """Test field-by-field recovery of partially valid files"""

    @pytest.mark.asyncio
    async def test_partial_file_merges_with_defaults(self, store, state_file):
        state_file.write_text(json.dumps({"colour": "green"}))

        state = await store.load()

        assert state.active_colour is Colour.GREEN
        assert state.history == []
        assert state.health == HealthCheckConfig()

    @pytest.mark.asyncio
    async def test_invalid_colour_falls_back_to_blue(self, store, state_file):
        state_file.write_text(json.dumps({
            "colour": "purple",
            "history": [_entry().model_dump(mode="json", by_alias=True)],
        }))

        state = await store.load()

        assert state.active_colour is Colour.BLUE
        assert len(state.history) == 1

    @pytest.mark.asyncio
    async def test_bad_history_entries_dropped_individually(self, store, state_file):
        good = _entry(Colour.GREEN, "fff0000").model_dump(mode="json", by_alias=True)
        state_file.write_text(json.dumps({
            "colour": "blue",
            "history": [good, {"tag": "x"}, "garbage", {**good, "colour": "red"}],
        }))

        state = await store.load()

        assert [e.revision for e in state.history] == ["fff0000"]

    @pytest.mark.asyncio
    async def test_bad_health_fields_default_individually(self, store, state_file):
        state_file.write_text(json.dumps({
            "colour": "green",
            "health": {"port": "not-a-port", "path": "/ready", "maxAttempts": 3},
        }))

        state = await store.load()

        assert state.active_colour is Colour.GREEN
        assert state.health.port == 4000
        assert state.health.path == "/ready"
        assert state.health.max_attempts == 3

    @pytest.mark.asyncio
    async def test_unknown_keys_are_ignored(self, store, state_file):
        state_file.write_text(json.dumps({"colour": "green", "extra": True}))

        state = await store.load()

        assert state.active_colour is Colour.GREEN


class TestAtomicWrite:
    """Test temp file + rename behaviour"""

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, tmp_path):
        target = tmp_path / "config.json"

        await atomic_write_file(target, "first")
        await atomic_write_file(target, "second")

        assert target.read_text() == "second"
        assert os.listdir(tmp_path) == ["config.json"]

    @pytest.mark.asyncio
    async def test_failed_rename_keeps_previous_content(self, tmp_path):
        target = tmp_path / "config.json"
        target.write_text("previous")

        with patch("deployer.state_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                await atomic_write_file(target, "new")

        assert target.read_text() == "previous"
        assert os.listdir(tmp_path) == ["config.json"]

    @pytest.mark.asyncio
    async def test_written_file_is_world_readable(self, tmp_path):
        target = tmp_path / "active_backend.conf"

        await atomic_write_file(target, "upstream")

        assert os.stat(target).st_mode & 0o777 == 0o644


class TestHealthConfigBounds:
    """Test attempt budget clamping"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attempts", [0, -3])
    async def test_non_positive_max_attempts_loads_as_one(self, store, state_file, attempts):
        state_file.write_text(json.dumps({"colour": "green", "health": {"maxAttempts": attempts}}))

        state = await store.load()

        assert state.active_colour is Colour.GREEN
        assert state.health.max_attempts == 1
