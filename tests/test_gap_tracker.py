"""
Tests for knowledge gap logging, lifecycle and duplicate merging
"""

from datetime import datetime, timezone

import pytest
from unittest.mock import Mock

from knowledge_service.core.exceptions import GapNotFoundError, InvalidStatusTransitionError
from knowledge_service.models import KnowledgeGap, GapStatus
from knowledge_service.services.gap_tracker import GapTracker, analyze_gap_categories


@pytest.fixture
def tracker(db_session):
    return GapTracker(db_session)


class TestLogGap:

    def test_creates_open_gap(self, tracker, db_session):
        gap = tracker.log_gap("xyzabc nonsense query")

        assert gap is not None
        assert gap.query == "xyzabc nonsense query"
        assert gap.frequency == 1
        assert gap.status == GapStatus.OPEN.value
        assert gap.needs_content is True
        assert db_session.query(KnowledgeGap).count() == 1

    def test_exact_repeat_increments(self, tracker, db_session):
        first = tracker.log_gap("jadwal vaksin anak")
        second = tracker.log_gap("jadwal vaksin anak")

        assert second.id == first.id
        assert second.frequency == 2
        assert db_session.query(KnowledgeGap).count() == 1

    def test_near_duplicate_increments_existing_gap(self, tracker, db_session, make_gap):
        existing = make_gap("apa itu demam berdarah")

        gap = tracker.log_gap("demam berdarah itu apa sih")

        assert gap.id == existing.id
        assert gap.frequency == 2
        assert db_session.query(KnowledgeGap).count() == 1

    def test_near_duplicate_picks_most_similar_gap(self, tracker, make_gap):
        make_gap("apa itu demam berdarah dengue", frequency=9)
        closest = make_gap("apa itu demam berdarah", frequency=1)

        gap = tracker.log_gap("demam berdarah itu apa sih")

        assert gap.id == closest.id

    def test_unrelated_query_creates_new_gap(self, tracker, db_session, make_gap):
        make_gap("apa itu demam berdarah")

        tracker.log_gap("harga obat batuk")

        assert db_session.query(KnowledgeGap).count() == 2

    def test_exact_repeat_of_resolved_gap_increments_it(self, tracker, db_session, make_gap):
        resolved = make_gap("apa itu demam berdarah", status=GapStatus.RESOLVED.value)

        gap = tracker.log_gap("apa itu demam berdarah")

        assert gap.id == resolved.id
        assert gap.frequency == 2
        assert gap.status == GapStatus.RESOLVED.value

    def test_near_duplicate_of_resolved_gap_creates_new_gap(self, tracker, db_session, make_gap):
        make_gap("apa itu demam berdarah", status=GapStatus.RESOLVED.value)

        gap = tracker.log_gap("demam berdarah itu apa sih")

        assert gap.status == GapStatus.OPEN.value
        assert db_session.query(KnowledgeGap).count() == 2

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_blank_query_is_ignored(self, tracker, db_session, query):
        assert tracker.log_gap(query) is None
        assert db_session.query(KnowledgeGap).count() == 0

    def test_database_failure_is_swallowed(self):
        db = Mock()
        db.query.side_effect = RuntimeError("connection lost")

        assert GapTracker(db).log_gap("obat demam") is None
        db.rollback.assert_called_once()


class TestUpdateStatus:

    def test_open_to_in_progress_assigns(self, tracker, make_gap):
        gap = make_gap("obat batuk anak")

        updated = tracker.update_status(gap.id, "IN_PROGRESS", assigned_to="dr.sari")

        assert updated.status == "IN_PROGRESS"
        assert updated.assigned_to == "dr.sari"
        assert updated.resolved_at is None

    def test_in_progress_to_resolved_stamps_resolution(self, tracker, make_gap):
        gap = make_gap("obat batuk anak", status="IN_PROGRESS", assigned_to="dr.sari")

        updated = tracker.update_status(gap.id, "RESOLVED")

        assert updated.status == "RESOLVED"
        assert updated.resolved_at is not None
        assert updated.resolved_by == "dr.sari"
        assert updated.needs_content is False

    def test_open_to_resolved_defaults_resolver(self, tracker, make_gap):
        gap = make_gap("obat batuk anak")

        updated = tracker.update_status(gap.id, "RESOLVED")

        assert updated.resolved_by == "admin"

    def test_resolved_to_open_reopens(self, tracker, make_gap):
        gap = make_gap(
            "obat batuk anak",
            status="RESOLVED",
            assigned_to="dr.sari",
            resolved_by="dr.sari",
            resolved_at=datetime.now(timezone.utc),
            needs_content=False
        )

        updated = tracker.update_status(gap.id, "OPEN")

        assert updated.status == "OPEN"
        assert updated.assigned_to is None
        assert updated.resolved_at is None
        assert updated.resolved_by is None
        assert updated.needs_content is True

    def test_same_status_reassigns(self, tracker, make_gap):
        gap = make_gap("obat batuk anak", status="IN_PROGRESS", assigned_to="dr.sari")

        updated = tracker.update_status(gap.id, "IN_PROGRESS", assigned_to="dr.budi")

        assert updated.assigned_to == "dr.budi"

    def test_resolving_resolved_gap_keeps_resolver(self, tracker, make_gap):
        gap = make_gap(
            "obat batuk anak",
            status="RESOLVED",
            assigned_to="dr.sari",
            resolved_by="dr.sari",
            resolved_at=datetime.now(timezone.utc),
            needs_content=False
        )
        resolved_at = gap.resolved_at

        updated = tracker.update_status(gap.id, "RESOLVED", assigned_to="dr.budi")

        assert updated.status == "RESOLVED"
        assert updated.assigned_to == "dr.sari"
        assert updated.resolved_by == "dr.sari"
        assert updated.resolved_at == resolved_at

    def test_null_status_is_treated_as_open(self, tracker, db_session, make_gap):
        gap = make_gap("obat batuk anak")
        gap.status = None
        db_session.commit()

        updated = tracker.update_status(gap.id, "IN_PROGRESS")

        assert updated.status == "IN_PROGRESS"

    @pytest.mark.parametrize("current,requested", [
        ("RESOLVED", "IN_PROGRESS"),
        ("IN_PROGRESS", "OPEN"),
    ])
    def test_invalid_transitions_rejected(self, tracker, make_gap, current, requested):
        gap = make_gap("obat batuk anak", status=current)

        with pytest.raises(InvalidStatusTransitionError):
            tracker.update_status(gap.id, requested)

    def test_unknown_gap(self, tracker):
        with pytest.raises(GapNotFoundError):
            tracker.update_status("missing", "RESOLVED")


class TestCheckSimilarity:

    def test_returns_similar_open_gaps(self, tracker, make_gap):
        gap = make_gap("apa itu demam berdarah", frequency=4)
        make_gap("harga obat batuk")
        make_gap("demam berdarah itu apa", status="RESOLVED")

        similar = tracker.check_similarity("demam berdarah itu apa sih")

        assert len(similar) == 1
        assert similar[0]["id"] == gap.id
        assert similar[0]["frequency"] == 4
        assert similar[0]["similarity"] >= 0.6

    def test_no_similar_gaps(self, tracker, make_gap):
        make_gap("harga obat batuk")

        assert tracker.check_similarity("jadwal vaksin anak") == []


class TestMergeDuplicateGaps:

    def test_frequency_conserved_and_duplicates_removed(self, tracker, db_session, make_gap):
        survivor = make_gap("demam berdarah itu apa sih", frequency=4)
        duplicate_1 = make_gap("apa itu demam berdarah", frequency=1)
        duplicate_2 = make_gap("Apa itu demam berdarah?", frequency=2)
        unrelated = make_gap("harga obat batuk", frequency=3)
        duplicate_ids = {duplicate_1.id, duplicate_2.id}

        result = tracker.merge_duplicate_gaps()

        assert result["merged_count"] == 2
        assert result["errors"] == []
        assert len(result["results"]) == 1
        assert result["results"][0]["gap_id"] == survivor.id
        assert result["results"][0]["new_frequency"] == 7

        db_session.expire_all()
        remaining = {gap.id: gap.frequency for gap in db_session.query(KnowledgeGap).all()}
        assert remaining == {survivor.id: 7, unrelated.id: 3}
        assert not duplicate_ids & set(remaining)

    def test_idempotent(self, tracker, make_gap):
        make_gap("apa itu demam berdarah", frequency=3)
        make_gap("demam berdarah itu apa sih", frequency=2)

        first = tracker.merge_duplicate_gaps()
        second = tracker.merge_duplicate_gaps()

        assert first["merged_count"] == 1
        assert second["merged_count"] == 0
        assert second["results"] == []

    def test_resolved_gaps_are_not_merged(self, tracker, db_session, make_gap):
        make_gap("apa itu demam berdarah", frequency=5, status="RESOLVED")
        make_gap("demam berdarah itu apa sih", frequency=1)

        result = tracker.merge_duplicate_gaps()

        assert result["merged_count"] == 0
        assert db_session.query(KnowledgeGap).count() == 2

    def test_failed_group_does_not_stop_the_run(self, tracker, db_session, make_gap, monkeypatch):
        first = make_gap("apa itu demam berdarah", frequency=3)
        make_gap("demam berdarah itu apa sih", frequency=2)
        second = make_gap("bagaimana cara menurunkan panas anak", frequency=2)
        make_gap("bagaimana cara menurunkan panas anak?", frequency=1)

        original_commit = db_session.commit
        calls = {"count": 0}

        def flaky_commit():
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("database is locked")
            original_commit()

        monkeypatch.setattr(db_session, "commit", flaky_commit)

        result = tracker.merge_duplicate_gaps()

        assert [error["gap_id"] for error in result["errors"]] == [first.id]
        assert [group["gap_id"] for group in result["results"]] == [second.id]
        assert result["merged_count"] == 1

        db_session.expire_all()
        assert db_session.query(KnowledgeGap).count() == 3


class TestListGaps:

    def test_open_filter_and_related_entries(self, tracker, make_gap, make_entry):
        fever = make_entry()
        open_gap = make_gap("saya sakit kepala dan demam", frequency=3)
        make_gap("jadwal vaksin anak", frequency=1)
        make_gap("obat batuk anak", status="IN_PROGRESS")
        make_gap("harga obat", needs_content=False)

        result = tracker.list_gaps(filter="open")

        assert result["pagination"]["total"] == 2
        first = result["gaps"][0]
        assert first["gap"].id == open_gap.id
        assert [entry["id"] for entry in first["related_entries"]] == [fever.id]
        assert result["gaps"][1]["related_entries"] == []

    def test_status_filters(self, tracker, make_gap):
        make_gap("jadwal vaksin anak")
        make_gap("obat batuk anak", status="IN_PROGRESS")
        make_gap("apa itu demam berdarah", status="RESOLVED")

        assert tracker.list_gaps(filter="in_progress")["pagination"]["total"] == 1
        assert tracker.list_gaps(filter="resolved")["pagination"]["total"] == 1
        assert tracker.list_gaps(filter="all")["pagination"]["total"] == 3

    def test_pagination(self, tracker, make_gap):
        for i in range(5):
            make_gap(f"pertanyaan nomor {i}", frequency=i + 1)

        result = tracker.list_gaps(filter="all", page=2, limit=2)

        assert result["pagination"] == {"page": 2, "limit": 2, "total": 5, "pages": 3}
        assert [item["gap"].frequency for item in result["gaps"]] == [3, 2]


class TestGapStats:

    def test_counts_and_categories(self, tracker, make_gap):
        make_gap("sakit kepala terus", frequency=4)
        make_gap("obat batuk anak", frequency=2)
        make_gap("apa itu darurat medis", status="RESOLVED", resolved_at=datetime.now(timezone.utc))
        make_gap("kondisi jantung lemah", status="IN_PROGRESS")
        make_gap("jadwal vaksin")

        stats = tracker.get_gap_stats()

        assert stats["total_gaps"] == 5
        assert stats["open_gaps"] == 3
        assert stats["in_progress_gaps"] == 1
        assert stats["resolved_gaps"] == 1
        assert stats["average_frequency"] == 2
        assert stats["top_queries"][0] == {"query": "sakit kepala terus", "frequency": 4, "status": "OPEN"}
        assert {item["category"] for item in stats["top_categories"]} == {
            "symptoms", "treatments", "emergency", "conditions", "general"
        }

    def test_resolution_time_ignores_local_timezone(self, tracker, make_gap, jakarta_timezone):
        gap = make_gap("obat batuk anak")

        tracker.update_status(gap.id, "RESOLVED")

        assert tracker.get_gap_stats()["average_resolution_time_hours"] == 0.0

    def test_empty(self, tracker):
        stats = tracker.get_gap_stats()

        assert stats["total_gaps"] == 0
        assert stats["average_frequency"] == 0
        assert stats["average_resolution_time_hours"] == 0.0
        assert stats["top_queries"] == []


def test_analyze_gap_categories():
    categories = analyze_gap_categories(["sakit kepala", "nyeri dada", "obat flu", "halo"])

    assert categories[0] == {"category": "symptoms", "count": 2}
    assert {"category": "treatments", "count": 1} in categories
    assert {"category": "general", "count": 1} in categories
