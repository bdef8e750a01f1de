"""Tests for the ensemble matcher with in-memory store and fake capabilities."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.matching.embedding_cache import EmbeddingCache
from app.core.matching.embedding_scorer import EmbeddingScorer
from app.core.matching.ensemble import (
    BASE_WEIGHTS,
    COUNTERFACTUAL_UNAVAILABLE_TEXT,
    EnsembleMatcher,
    determine_weights,
    score_summary,
)
from app.core.matching.rationale import RationaleGenerator
from app.core.schemas_matching import ExplainedMatch, ScoreOnlyMatch, VoirDireResponse
from tests.fakes.fake_matching_store import FakeMatchingStore

PERSONA_IDS = [f"p{i}" for i in range(7)]


# =============================================================================
# Weight selection
# =============================================================================


class TestDetermineWeights:
    def test_many_signals_without_narrative_favor_signals(self):
        weights = determine_weights(has_rich_narrative=False, signal_count=12)
        assert weights.signal_based > 0.35
        assert weights.embedding <= 0.30
        assert weights.total == pytest.approx(1.0)

    def test_rich_narrative_favors_embedding(self):
        weights = determine_weights(has_rich_narrative=True, signal_count=6)
        assert weights.embedding == pytest.approx(0.40)
        assert weights.signal_based == pytest.approx(0.30)
        assert weights.bayesian == pytest.approx(0.30)

    def test_sparse_evidence_favors_bayesian(self):
        weights = determine_weights(has_rich_narrative=False, signal_count=1)
        assert weights.bayesian == pytest.approx(0.45)
        assert weights.embedding == pytest.approx(0.20)

    def test_base_weights_in_between(self):
        weights = determine_weights(has_rich_narrative=False, signal_count=4)
        assert weights.signal_based == pytest.approx(BASE_WEIGHTS.signal_based)
        assert weights.embedding == pytest.approx(BASE_WEIGHTS.embedding)
        assert weights.bayesian == pytest.approx(BASE_WEIGHTS.bayesian)


def test_score_summary():
    assert score_summary(0.423) == "Score: 42% - details available on request"


# =============================================================================
# Matching
# =============================================================================


async def same_vector(text: str) -> list[float]:
    return [1.0, 0.0]


@pytest.fixture
def store():
    store = FakeMatchingStore()
    for persona_id in PERSONA_IDS:
        store.add_persona(persona_id)
    store.add_weight("p0", "S0", 0.9)
    store.add_weight("p1", "S1", 0.6)
    for persona_id in PERSONA_IDS[2:]:
        store.add_weight(persona_id, f"S_{persona_id}", 0.5)
    store.add_juror("j1", occupation="Teacher")
    store.observe("j1", "S0")
    store.observe("j1", "S1")
    return store


def _matcher(store, **overrides):
    kwargs = {
        "embedding_scorer": EmbeddingScorer(
            store, cache=EmbeddingCache(), embed=same_vector, embed_many=AsyncMock()
        ),
        "rationale_generator": RationaleGenerator(complete=AsyncMock(return_value="Because.")),
    }
    kwargs.update(overrides)
    return EnsembleMatcher(store, **kwargs)


class TestMatchJuror:
    @pytest.mark.asyncio
    async def test_ranked_and_split(self, store):
        matches = await _matcher(store).match_juror("j1", PERSONA_IDS)

        assert len(matches) == 7
        assert [m.persona_id for m in matches[:2]] == ["p0", "p1"]
        probabilities = [m.probability for m in matches]
        assert probabilities == sorted(probabilities, reverse=True)

        assert all(isinstance(m, ExplainedMatch) for m in matches[:5])
        assert all(isinstance(m, ScoreOnlyMatch) for m in matches[5:])
        assert matches[0].rationale == "Because."
        assert matches[6].summary == score_summary(matches[6].probability)

    @pytest.mark.asyncio
    async def test_combined_probability(self, store):
        matcher = _matcher(store)
        weights = await matcher.weights_for_juror("j1")
        top = (await matcher.match_juror("j1", PERSONA_IDS))[0]

        expected = (
            weights.signal_based * top.method_scores.signal_based
            + weights.embedding * top.method_scores.embedding
            + weights.bayesian * top.method_scores.bayesian
        )
        assert top.probability == pytest.approx(expected)
        assert top.method_scores.signal_based == pytest.approx(0.9)
        assert top.method_scores.embedding == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_failing_persona_skipped(self, store):
        store.failing_weight_personas.add("p3")
        matches = await _matcher(store).match_juror("j1", PERSONA_IDS)
        assert "p3" not in [m.persona_id for m in matches]
        assert len(matches) == 6

    @pytest.mark.asyncio
    async def test_bayesian_failure_uses_uniform(self, store):
        updater = MagicMock()
        updater.update_probabilities = AsyncMock(side_effect=RuntimeError("db down"))
        matches = await _matcher(store, bayesian_updater=updater).match_juror("j1", ["p0", "p1"])

        assert len(matches) == 2
        assert all(m.method_scores.bayesian == pytest.approx(0.5) for m in matches)

    @pytest.mark.asyncio
    async def test_counterfactual_failure_is_non_fatal(self, store):
        counterfactual = MagicMock()
        counterfactual.generate_counterfactual = AsyncMock(side_effect=RuntimeError("boom"))
        matches = await _matcher(store, counterfactual_generator=counterfactual).match_juror(
            "j1", ["p0"]
        )
        assert matches[0].counterfactual == COUNTERFACTUAL_UNAVAILABLE_TEXT

    @pytest.mark.asyncio
    async def test_rationale_fallback_without_generation(self, store):
        generator = RationaleGenerator(complete=AsyncMock(side_effect=RuntimeError("no key")))
        matches = await _matcher(store, rationale_generator=generator).match_juror("j1", ["p0"])
        assert matches[0].rationale.startswith("This juror matches with")

    @pytest.mark.asyncio
    async def test_juror_load_failure_uses_base_weights(self, store):
        matcher = _matcher(store)
        matcher.weights_for_juror = AsyncMock(side_effect=RuntimeError("bad row"))

        matches = await matcher.match_juror("j1", ["p0", "p1"])

        assert [m.persona_id for m in matches] == ["p0", "p1"]
        weights = BASE_WEIGHTS.normalized()
        top = matches[0]
        expected = (
            weights.signal_based * top.method_scores.signal_based
            + weights.embedding * top.method_scores.embedding
            + weights.bayesian * top.method_scores.bayesian
        )
        assert top.probability == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_empty_candidates(self, store):
        assert await _matcher(store).match_juror("j1", []) == []

    @pytest.mark.asyncio
    async def test_top_matches(self, store):
        matches = await _matcher(store).get_top_matches("j1", PERSONA_IDS)
        assert [m.persona_id for m in matches][:2] == ["p0", "p1"]
        assert len(matches) == 3


class TestWeightsForJuror:
    @pytest.mark.asyncio
    async def test_unknown_juror_gets_base_weights(self, store):
        weights = await _matcher(store).weights_for_juror("ghost")
        assert weights == BASE_WEIGHTS.normalized()

    @pytest.mark.asyncio
    async def test_rich_narrative_detected(self, store):
        store.jurors["j1"].voir_dire_responses = [
            VoirDireResponse(question_text="Q", yes_no_answer=True)
        ]
        for i in range(4):
            store.observe("j1", f"EXTRA_{i}")
        weights = await _matcher(store).weights_for_juror("j1")
        assert weights.embedding == pytest.approx(0.40)
