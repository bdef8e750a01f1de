"""Tests for signal-based scoring."""

import pytest

from app.core.matching.signal_scorer import SignalBasedScorer, compute_signal_score
from app.core.schemas_matching import JurorSignal, PersonaSignalWeight
from tests.fakes.fake_matching_store import FakeMatchingStore


def _weight(signal_id, weight, direction="POSITIVE"):
    return PersonaSignalWeight(
        persona_id="p1",
        signal_id=signal_id,
        signal_name=signal_id.title(),
        weight=weight,
        direction=direction,
    )


def _observed(signal_id, value=True):
    return JurorSignal(juror_id="j1", signal_id=signal_id, signal_name=signal_id.title(), value=value)


# =============================================================================
# compute_signal_score
# =============================================================================


class TestComputeSignalScore:
    def test_no_weights_scores_zero(self):
        result = compute_signal_score([], [_observed("S1")])
        assert result.score == 0.0
        assert result.confidence == 0.0

    def test_single_observed_signal(self):
        """Weight squared over weight: one 0.9 signal scores 0.9."""
        result = compute_signal_score([_weight("S1", 0.9)], [_observed("S1")])
        assert result.score == pytest.approx(0.9)
        assert result.confidence == pytest.approx(1.0)
        assert [s.signal_id for s in result.supporting_signals] == ["S1"]

    def test_unobserved_positive_is_missing(self):
        result = compute_signal_score([_weight("S1", 0.8), _weight("S2", 0.4)], [_observed("S2")])
        assert [m.signal_id for m in result.missing_signals] == ["S1"]
        assert result.score == pytest.approx(0.16 / 1.2)
        # half coverage, one missing high-weight signal
        assert result.confidence == pytest.approx(0.5 - 0.05)

    def test_negative_signal_contradicts(self):
        weights = [_weight("S1", 0.6), _weight("N1", 0.5, "NEGATIVE")]
        result = compute_signal_score(weights, [_observed("S1"), _observed("N1")])
        assert result.score == pytest.approx((0.36 - 0.25) / 1.1)
        assert [c.signal_id for c in result.contradicting_signals] == ["N1"]
        assert result.confidence == pytest.approx(1.0 - 0.1)

    def test_score_clamps_at_zero(self):
        result = compute_signal_score([_weight("N1", 0.9, "NEGATIVE")], [_observed("N1")])
        assert result.score == 0.0

    def test_absent_value_does_not_support(self):
        result = compute_signal_score([_weight("S1", 0.7)], [_observed("S1", value=False)])
        assert result.score == 0.0
        assert result.supporting_signals == []
        assert result.missing_signals == []


# =============================================================================
# SignalBasedScorer
# =============================================================================


@pytest.fixture
def store():
    store = FakeMatchingStore()
    store.add_weight("p1", "S1", 0.9)
    store.add_weight("p2", "S2", 0.5)
    store.observe("j1", "S1")
    return store


class TestSignalBasedScorer:
    @pytest.mark.asyncio
    async def test_scores_all_personas(self, store):
        scores = await SignalBasedScorer(store).score_juror_against_personas("j1", ["p1", "p2"])
        assert scores["p1"].score == pytest.approx(0.9)
        assert scores["p2"].score == 0.0

    @pytest.mark.asyncio
    async def test_failing_persona_is_omitted(self, store):
        store.failing_weight_personas.add("p2")
        scores = await SignalBasedScorer(store).score_juror_against_personas("j1", ["p1", "p2"])
        assert set(scores) == {"p1"}

    @pytest.mark.asyncio
    async def test_juror_signals_read_once(self, store):
        await SignalBasedScorer(store).score_juror_against_personas("j1", ["p1", "p2"])
        assert store.calls.count(("list_juror_signals", "j1")) == 1
