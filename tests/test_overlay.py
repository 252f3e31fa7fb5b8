"""Tests for overlay viewing of foreign snapshots."""

from __future__ import annotations

import asyncio
import json

import pytest

from appdata_sync.config import READ_ONLY_KEY, VIEWING_KEY, SyncConfig
from appdata_sync.events import EventBus, SyncEventType
from appdata_sync.exceptions import SnapshotParseError
from appdata_sync.overlay import OverlayViewer, ReadOnlyMode, SnapshotShape, ViewingSnapshot
from appdata_sync.overlay.snapshot import decode_json_field, parse_count
from appdata_sync.store.base import MemoryStore

from conftest import EventRecorder

EXPORT_SNAPSHOT = {
    "version": "1.0",
    "data": {
        "cardCounts": {"count_hBP01-001": "5", "count_hBP01-002": "1"},
        "deckData": {"main": ["hBP01-001"]},
        "binderCollection": [{"name": "Binder 1"}],
    },
}

LEGACY_SNAPSHOT = {
    "count_hBP01-001": "2",
    "deckData": '{"main": ["hBP01-003"]}',
    "binderCollection": "[]",
    "darkMode": "true",
}


@pytest.fixture
def persistent_store() -> MemoryStore:
    return MemoryStore({"count_hBP01-001": "7", "deckData": '{"main": ["local"]}'})


@pytest.fixture
def session_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def viewer(persistent_store, session_store, events) -> OverlayViewer:
    read_only = ReadOnlyMode(session_store, events)
    return OverlayViewer(
        persistent_store,
        session_store,
        read_only,
        events,
        SyncConfig(reload_delay_seconds=0.02),
    )


class TestParseCount:
    """Tests for lenient count parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("5", 5), ("12abc", 12), (" 3", 3), ("-2", -2), ("abc", 0), ("", 0), (None, 0), (4, 4)],
    )
    def test_parse(self, value, expected: int) -> None:
        assert parse_count(value) == expected


class TestViewingSnapshot:
    """Tests for decoding snapshot shapes."""

    def test_export_shape(self) -> None:
        snapshot = ViewingSnapshot.decode(EXPORT_SNAPSHOT)

        assert snapshot.shape is SnapshotShape.EXPORT
        assert snapshot.card_count("hBP01-001") == 5
        assert snapshot.all_card_counts() == {"hBP01-001": 5, "hBP01-002": 1}
        assert snapshot.deck_data == {"main": ["hBP01-001"]}
        assert snapshot.binder_collection == [{"name": "Binder 1"}]

    def test_legacy_shape(self) -> None:
        snapshot = ViewingSnapshot.decode(LEGACY_SNAPSHOT)

        assert snapshot.shape is SnapshotShape.LEGACY
        assert snapshot.card_count("hBP01-001") == 2
        assert snapshot.deck_data == {"main": ["hBP01-003"]}
        assert snapshot.binder_collection == []
        assert snapshot.all_card_counts() == {"hBP01-001": 2}

    def test_structured_location_wins(self) -> None:
        snapshot = ViewingSnapshot.decode(
            {
                "data": {"deckData": {"main": ["nested"]}},
                "deckData": '{"main": ["flat"]}',
                "binderCollection": '[{"name": "flat"}]',
            }
        )

        assert snapshot.deck_data == {"main": ["nested"]}
        assert snapshot.binder_collection == [{"name": "flat"}]

    def test_empty_nested_counts_shadow_flat(self) -> None:
        snapshot = ViewingSnapshot.decode({"data": {"cardCounts": {}}, "count_001": "4"})

        assert snapshot.card_count("001") == 0
        assert snapshot.all_card_counts() == {}

    def test_empty_nested_list_wins(self) -> None:
        snapshot = ViewingSnapshot.decode(
            {
                "data": {"binderCollection": [], "deckData": None},
                "binderCollection": '[{"name": "flat"}]',
                "deckData": "{}",
            }
        )

        assert snapshot.binder_collection == []
        assert snapshot.deck_data == {}

    def test_null_nested_counts_fall_back_to_flat(self) -> None:
        snapshot = ViewingSnapshot.decode({"data": {"cardCounts": None}, "count_001": "4"})

        assert snapshot.card_count("001") == 4

    def test_malformed_field_yields_none(self) -> None:
        snapshot = ViewingSnapshot.decode({"deckData": "{broken", "count_001": "1"})

        assert snapshot.deck_data is None
        assert snapshot.card_count("001") == 1

    def test_non_object_rejected(self) -> None:
        with pytest.raises(SnapshotParseError):
            ViewingSnapshot.decode(["not", "an", "object"])

    def test_decode_json_field_passthrough(self) -> None:
        assert decode_json_field("deckData", {"main": []}) == {"main": []}


class TestReadOnlyMode:
    """Tests for the read-only switch."""

    def test_toggle_and_event(self, events: EventBus, recorder: EventRecorder) -> None:
        store = MemoryStore()
        mode = ReadOnlyMode(store, events)

        assert not mode.is_enabled()
        assert mode.check_and_warn("saving")
        assert mode.toggle()
        assert store.get_item(READ_ONLY_KEY) == "true"
        assert not mode.check_and_warn("saving")
        assert not mode.toggle()

        changes = recorder.of(SyncEventType.READ_ONLY_CHANGED)
        assert [e.data["enabled"] for e in changes] == [True, False]


class TestOverlayViewer:
    """Tests for start/stop viewing and read redirection."""

    def test_local_reads_when_not_viewing(self, viewer: OverlayViewer) -> None:
        assert not viewer.is_viewing()
        assert viewer.get_card_count("hBP01-001") == 7
        assert viewer.get_card_count("unknown") == 0
        assert viewer.get_deck_data() == {"main": ["local"]}
        assert viewer.get_binder_collection() is None

    def test_reads_redirected_while_viewing(self, viewer: OverlayViewer) -> None:
        assert viewer.start_viewing(EXPORT_SNAPSHOT)

        assert viewer.is_viewing()
        assert viewer.get_card_count("hBP01-001") == 5
        assert viewer.get_card_count("hBP01-999") == 0
        assert viewer.get_all_card_counts() == {"hBP01-001": 5, "hBP01-002": 1}
        assert viewer.get_deck_data() == {"main": ["hBP01-001"]}
        assert viewer.get_viewing_data() == EXPORT_SNAPSHOT

    def test_start_forces_read_only_and_emits(
        self, viewer: OverlayViewer, recorder: EventRecorder
    ) -> None:
        viewer.start_viewing(LEGACY_SNAPSHOT)

        assert viewer.read_only.is_enabled()
        viewing = recorder.of(SyncEventType.VIEWING_CHANGED)
        assert [e.data["is_viewing"] for e in viewing] == [True]

    def test_persistent_store_untouched(
        self, viewer: OverlayViewer, persistent_store: MemoryStore
    ) -> None:
        before = persistent_store.snapshot()

        viewer.start_viewing(EXPORT_SNAPSHOT)
        viewer.get_all_card_counts()
        viewer.stop_viewing()

        assert persistent_store.snapshot() == before

    def test_start_replaces_previous_snapshot(self, viewer: OverlayViewer) -> None:
        viewer.start_viewing(EXPORT_SNAPSHOT)
        assert viewer.get_card_count("hBP01-001") == 5

        viewer.start_viewing(LEGACY_SNAPSHOT)

        assert viewer.get_card_count("hBP01-001") == 2

    def test_non_object_rejected(self, viewer: OverlayViewer, session_store: MemoryStore) -> None:
        assert not viewer.start_viewing("not a snapshot")
        assert not viewer.start_viewing([1, 2, 3])
        assert session_store.get_item(VIEWING_KEY) is None
        assert not viewer.read_only.is_enabled()

    @pytest.mark.asyncio
    async def test_stop_requests_reload(
        self, viewer: OverlayViewer, recorder: EventRecorder
    ) -> None:
        viewer.start_viewing(EXPORT_SNAPSHOT)

        assert viewer.stop_viewing()
        assert not viewer.is_viewing()
        assert recorder.of(SyncEventType.RELOAD_REQUESTED) == []

        await asyncio.sleep(0.1)

        reloads = recorder.of(SyncEventType.RELOAD_REQUESTED)
        assert [e.data["reason"] for e in reloads] == ["stopped_viewing"]

    def test_stop_when_not_viewing(self, viewer: OverlayViewer, recorder: EventRecorder) -> None:
        assert not viewer.stop_viewing()
        assert recorder.events == []

    def test_restore_forces_read_only(self, events: EventBus, session_store: MemoryStore) -> None:
        session_store.set_item(VIEWING_KEY, json.dumps(LEGACY_SNAPSHOT))
        read_only = ReadOnlyMode(session_store, events)
        viewer = OverlayViewer(MemoryStore(), session_store, read_only, events)

        viewer.restore()

        assert read_only.is_enabled()
        assert viewer.get_card_count("hBP01-001") == 2

    def test_unreadable_session_data(self, viewer: OverlayViewer, session_store: MemoryStore) -> None:
        session_store.set_item(VIEWING_KEY, "{broken")

        assert viewer.is_viewing()
        assert viewer.get_viewing_data() is None
        assert viewer.get_card_count("hBP01-001") == 0
        assert viewer.get_deck_data() is None
