"""
Tests for automatic knowledge gap resolution
"""

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.exc import SQLAlchemyError

from knowledge_service.core.config import scoring_config
from knowledge_service.core.exceptions import GapNotFoundError
from knowledge_service.models import KnowledgeEntry, KnowledgeGap, GapStatus
from knowledge_service.services.gap_evaluation import GapEvaluationService, calculate_entry_relevance


@pytest.fixture
def service(db_session):
    return GapEvaluationService(db_session)


@pytest.fixture
def no_sleep():
    with patch("knowledge_service.services.gap_evaluation.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.fixture
def child_fever_entry(make_entry):
    return make_entry(
        title="Obat Demam Anak",
        content="Paracetamol sesuai dosis berat badan dapat menurunkan demam pada anak.",
        keywords=["obat demam", "demam", "anak"],
        confidence_level="HIGH"
    )


class TestEvaluateGap:

    @pytest.mark.asyncio
    async def test_resolves_gap_answered_by_reviewed_entry(self, service, make_gap, child_fever_entry):
        gap = make_gap("obat demam anak")

        result = await service.evaluate_gap(gap.id)

        assert result["resolved"] is True
        assert result["already_resolved"] is False
        assert result["best_match"]["id"] == child_fever_entry.id
        assert result["best_match"]["score"] > 0.7

        assert gap.status == GapStatus.RESOLVED.value
        assert gap.resolved_at is not None
        assert gap.resolved_by == "auto-system"
        assert gap.needs_content is False

    @pytest.mark.asyncio
    async def test_second_evaluation_is_noop(self, service, make_gap, child_fever_entry):
        gap = make_gap("obat demam anak")
        await service.evaluate_gap(gap.id)
        resolved_at = gap.resolved_at

        result = await service.evaluate_gap(gap.id)

        assert result["resolved"] is True
        assert result["already_resolved"] is True
        assert gap.resolved_at == resolved_at

    @pytest.mark.asyncio
    async def test_weak_match_leaves_gap_open(self, service, make_gap, make_entry):
        make_entry()
        gap = make_gap("saya sakit kepala dan demam")

        result = await service.evaluate_gap(gap.id)

        # 1/3 keyword overlap + HIGH boost stays below the 0.7 threshold
        assert result["resolved"] is False
        assert result["match_count"] == 1
        assert gap.status == GapStatus.OPEN.value
        assert gap.resolved_at is None

    @pytest.mark.asyncio
    async def test_unreviewed_entry_cannot_resolve(self, service, make_gap, make_entry):
        make_entry(title="Obat Demam Anak", keywords=["obat demam", "demam", "anak"], medical_reviewed=False)
        gap = make_gap("obat demam anak")

        result = await service.evaluate_gap(gap.id)

        assert result["resolved"] is False
        assert result["match_count"] == 0

    @pytest.mark.asyncio
    async def test_uses_runtime_threshold(self, service, make_gap, make_entry):
        make_entry()
        gap = make_gap("saya sakit kepala dan demam")
        scoring_config.update(resolution_threshold=0.5)

        result = await service.evaluate_gap(gap.id)

        assert result["resolved"] is True

    @pytest.mark.asyncio
    async def test_unknown_gap(self, service):
        with pytest.raises(GapNotFoundError):
            await service.evaluate_gap("missing")


class TestEvaluateAllOpenGaps:

    @pytest.mark.asyncio
    async def test_batches_and_throttles(self, service, make_gap, child_fever_entry, no_sleep):
        make_gap("obat demam anak", frequency=5)
        make_gap("jadwal vaksin anak", frequency=3)
        make_gap("harga obat batuk", frequency=1)
        make_gap("apa itu demam berdarah", status=GapStatus.RESOLVED.value)
        scoring_config.update(batch_size=2, item_delay_seconds=0.1, batch_delay_seconds=1.0)

        result = await service.evaluate_all_open_gaps()

        assert result["evaluated"] == 3
        assert result["resolved"] == 1
        assert [item["query"] for item in result["results"]] == [
            "obat demam anak", "jadwal vaksin anak", "harga obat batuk"
        ]

        delays = [call.args[0] for call in no_sleep.await_args_list]
        assert delays == [0.1, 0.1, 1.0, 0.1]

    @pytest.mark.asyncio
    async def test_failing_gap_does_not_stop_run(self, service, make_gap, no_sleep):
        make_gap("obat demam anak", frequency=2)
        make_gap("jadwal vaksin anak", frequency=1)

        with patch.object(service.retriever, "rank", side_effect=[RuntimeError("boom"), []]):
            result = await service.evaluate_all_open_gaps()

        assert result["evaluated"] == 2
        assert result["resolved"] == 0
        assert result["results"][0]["error"] == "boom"
        assert result["results"][1]["resolved"] is False

    @pytest.mark.asyncio
    async def test_datastore_failure_is_recorded_per_gap(self, service, make_gap, no_sleep):
        make_gap("obat demam anak", frequency=2)
        make_gap("jadwal vaksin anak", frequency=1)

        fetch = patch.object(
            service.retriever, "_reviewed_entries",
            side_effect=[SQLAlchemyError("connection lost"), []]
        )
        with fetch:
            result = await service.evaluate_all_open_gaps()

        assert "connection lost" in result["results"][0]["error"]
        assert result["results"][0]["resolved"] is False
        assert "error" not in result["results"][1]

    @pytest.mark.asyncio
    async def test_no_open_gaps(self, service, no_sleep):
        result = await service.evaluate_all_open_gaps()

        assert result == {"evaluated": 0, "resolved": 0, "results": []}
        no_sleep.assert_not_awaited()


class TestEvaluateGapsForNewEntry:

    @pytest.mark.asyncio
    async def test_resolves_covered_gaps(self, service, db_session, make_gap, make_entry):
        dengue = make_entry(
            title="Demam Berdarah Dengue",
            content="Demam berdarah disebabkan oleh virus dengue yang ditularkan nyamuk.",
            keywords=["dbd", "dengue"]
        )
        covered = make_gap("apa itu demam berdarah")
        uncovered = make_gap("harga obat batuk")

        result = await service.evaluate_gaps_for_new_entry(dengue.id)

        assert result["evaluated"] == 2
        assert result["resolved"] == 1
        details = {item["gap_id"]: item for item in result["details"]}
        assert details[covered.id]["resolved"] is True
        assert details[covered.id]["relevance"] == 1.0
        assert details[uncovered.id] == {
            "gap_id": uncovered.id,
            "query": "harga obat batuk",
            "resolved": False,
            "relevance": 0.0
        }

        db_session.expire_all()
        assert db_session.get(KnowledgeGap, covered.id).resolved_by == "auto-entry"
        assert db_session.get(KnowledgeGap, uncovered.id).status == GapStatus.OPEN.value

    @pytest.mark.asyncio
    async def test_unreviewed_entry_is_ignored(self, service, make_gap, make_entry):
        draft = make_entry(title="Demam Berdarah", medical_reviewed=False)
        make_gap("apa itu demam berdarah")

        result = await service.evaluate_gaps_for_new_entry(draft.id)

        assert result == {"evaluated": 0, "resolved": 0, "details": []}

    @pytest.mark.asyncio
    async def test_missing_entry(self, service):
        result = await service.evaluate_gaps_for_new_entry("missing")

        assert result == {"evaluated": 0, "resolved": 0, "details": []}


class TestEntryRelevance:

    def test_fraction_of_query_tokens_found(self):
        entry = KnowledgeEntry(title="Demam Berdarah", content="Disebabkan virus dengue.", keywords=["dbd"])

        # one of three tokens found, and it is in the title
        assert calculate_entry_relevance("demam tinggi malam", entry) == pytest.approx(1.3 / 3)
        assert calculate_entry_relevance("apa itu demam berdarah", entry) == 1.0

    def test_title_and_keyword_bonuses(self):
        entry = KnowledgeEntry(title="Vaksin", content="Jadwal imunisasi dasar.", keywords=["imunisasi"])

        assert calculate_entry_relevance("vaksin campak", entry) == pytest.approx(1.3 / 2)
        assert calculate_entry_relevance("jadwal imunisasi campak", entry) == pytest.approx(2.2 / 3)

    def test_no_tokens(self):
        entry = KnowledgeEntry(title="Demam Berdarah", content="Disebabkan virus dengue.", keywords=[])

        assert calculate_entry_relevance("apa itu?", entry) == 0.0

    def test_no_confidence_boost(self):
        low = KnowledgeEntry(title="Demam", content="", keywords=[], confidence_level="LOW")
        high = KnowledgeEntry(title="Demam", content="", keywords=[], confidence_level="HIGH")

        assert calculate_entry_relevance("demam tinggi", low) == calculate_entry_relevance("demam tinggi", high)


class TestEvaluationStats:

    def test_counts(self, service, make_gap):
        make_gap("jadwal vaksin anak")
        make_gap("obat demam anak", status="RESOLVED", resolved_by="auto-system")
        make_gap("apa itu demam berdarah", status="RESOLVED", resolved_by="auto-entry")
        make_gap("harga obat batuk", status="RESOLVED", resolved_by="dr.sari")

        stats = service.get_evaluation_stats()

        assert stats["total_gaps"] == 4
        assert stats["open_gaps"] == 1
        assert stats["resolved_gaps"] == 3
        assert stats["auto_resolved_gaps"] == 2
        assert stats["resolution_rate"] == 75.0

    @pytest.mark.asyncio
    async def test_resolution_time_ignores_local_timezone(self, service, make_gap, child_fever_entry, jakarta_timezone):
        gap = make_gap("obat demam anak")

        await service.evaluate_gap(gap.id)

        assert service.get_evaluation_stats()["average_resolution_time_hours"] == 0.0
