from __future__ import annotations

from datetime import datetime, timezone

from speechcoach.memory.practice_summaries import PracticeSummaryStore
from speechcoach.memory.session_store import SessionRecord, SessionStatus, SessionStore
from speechcoach.schemas.practice import PracticeSummary


def test_store_get_set_has_delete():
    store = SessionStore()
    record = SessionRecord.new(10)
    assert store.get(record.id) is None
    assert store.has(record.id) is False

    store.set(record.id, record)
    assert store.get(record.id) is record
    assert store.has(record.id)
    assert store.size() == 1

    assert store.delete(record.id) is True
    assert store.delete(record.id) is False
    assert store.size() == 0


def test_new_record_defaults():
    record = SessionRecord.new(6)
    assert record.status == SessionStatus.ACTIVE
    assert record.history == []
    assert record.plan is None
    assert record.error is None
    assert record.created_at.tzinfo is not None


def test_count_by_status():
    store = SessionStore()
    for status in (SessionStatus.ACTIVE, SessionStatus.ACTIVE, SessionStatus.ERROR):
        record = SessionRecord.new(4, status=status)
        store.set(record.id, record)
    counts = store.count_by_status()
    assert counts == {"active": 2, "finalizing": 0, "complete": 0, "error": 1}


def _summary(session_id: str, correct: int = 2, total: int = 3) -> PracticeSummary:
    return PracticeSummary(
        session_id=session_id,
        completed_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
        correct=correct,
        total=total,
        accuracy=correct / total,
        ended_early=False,
        blocks_completed=2,
    )


def test_practice_summaries_persist_newest_first(tmp_path):
    store = PracticeSummaryStore(tmp_path)
    assert store.list_recent() == []

    store.save(_summary("first"))
    store.save(_summary("second"))

    reopened = PracticeSummaryStore(tmp_path)
    recent = reopened.list_recent()
    assert [s.session_id for s in recent] == ["second", "first"]
    assert recent[0].completed_at == datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert [s.session_id for s in reopened.list_recent(limit=1)] == ["second"]


def test_practice_summaries_are_capped(tmp_path):
    store = PracticeSummaryStore(tmp_path, max_entries=3)
    for idx in range(5):
        store.save(_summary(f"s-{idx}"))
    assert [s.session_id for s in store.list_recent()] == ["s-4", "s-3", "s-2"]


def test_corrupt_summary_file_is_ignored(tmp_path):
    (tmp_path / "practice_summaries.json").write_text("{not json", encoding="utf-8")
    store = PracticeSummaryStore(tmp_path)
    assert store.list_recent() == []
    store.save(_summary("fresh"))
    assert [s.session_id for s in store.list_recent()] == ["fresh"]


def test_rerun_of_a_session_replaces_its_summary(tmp_path):
    store = PracticeSummaryStore(tmp_path)
    store.save(_summary("rerun", correct=1, total=3))
    store.save(_summary("other"))
    store.save(_summary("rerun", correct=3, total=3))

    recent = store.list_recent()
    assert [s.session_id for s in recent] == ["rerun", "other"]
    assert recent[0].correct == 3
