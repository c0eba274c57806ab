"""Tests for the persisted fleet audit state."""

import json

from auditbot.store.state import STATE_VERSION, AuditState, StateStore


class TestAuditState:
    def test_mark_keeps_exclusion_unless_given(self):
        state = AuditState()
        state.mark("1", 100, excluded=True)
        state.mark("1", 200)

        assert state.get("1").processed == 200
        assert state.is_excluded("1") is True

    def test_last_processed(self):
        state = AuditState()
        assert state.last_processed() == 0
        state.mark("1", 100)
        state.mark("2", 300)
        assert state.last_processed() == 300


class TestStateStore:
    def test_missing_state_is_empty(self, tmp_path):
        assert StateStore(tmp_path).load("default").repositories == {}

    def test_save_and_load(self, tmp_path):
        store = StateStore(tmp_path)
        state = AuditState()
        state.mark("101", 1_600_000_000_000, excluded=False)
        state.mark("102", 1_600_000_000_500, excluded=True)
        store.save("default", state)

        loaded = store.load("default")
        assert loaded == state

    def test_state_is_scoped_by_name(self, tmp_path):
        store = StateStore(tmp_path)
        state = AuditState()
        state.mark("101", 1)
        store.save("first", state)

        assert store.load("second").repositories == {}

    def test_legacy_document_is_migrated(self, tmp_path):
        store = StateStore(tmp_path)
        path = store.path("default")
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps(
                {
                    "lastRun": 5,
                    "repositories": {"101": {"processed": 42, "excluded": True}},
                }
            )
        )

        state = store.load("default")

        assert state.get("101").processed == 42
        assert state.is_excluded("101")
        written = json.loads(path.read_text())
        assert written["version"] == STATE_VERSION
        assert "lastRun" not in written

    def test_reset(self, tmp_path):
        store = StateStore(tmp_path)
        state = AuditState()
        state.mark("101", 1)
        store.save("default", state)

        store.reset("default")
        store.reset("default")

        assert not store.path("default").exists()
