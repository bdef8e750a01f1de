"""Tests for Bayesian updating over candidate personas."""

import math

import pytest

from app.core.matching.bayesian import (
    BayesianUpdater,
    bayes_update,
    compute_posterior,
    likelihood,
    prior_from_mappings,
)
from app.core.schemas_matching import JurorPersonaMapping, PersonaSignalWeight
from tests.fakes.fake_matching_store import FakeMatchingStore


def _weight(persona_id, weight, direction="POSITIVE", signal_id="S1"):
    return PersonaSignalWeight(
        persona_id=persona_id,
        signal_id=signal_id,
        signal_name=signal_id,
        weight=weight,
        direction=direction,
    )


class TestLikelihood:
    def test_positive(self):
        assert likelihood(_weight("p1", 0.8), present=True) == 0.8
        assert likelihood(_weight("p1", 0.8), present=False) == pytest.approx(0.2)

    def test_negative_is_inverted(self):
        assert likelihood(_weight("p1", 0.8, "NEGATIVE"), present=True) == pytest.approx(0.2)
        assert likelihood(_weight("p1", 0.8, "NEGATIVE"), present=False) == 0.8

    def test_unweighted_is_neutral(self):
        assert likelihood(None, present=True) == 0.5


class TestBayesUpdate:
    def test_zero_marginal_returns_none(self):
        assert bayes_update({"a": 0.5, "b": 0.5}, {"a": 0.0, "b": 0.0}) is None

    def test_update_sums_to_one(self):
        result = bayes_update({"a": 0.5, "b": 0.5}, {"a": 0.9, "b": 0.5})
        assert result["a"] == pytest.approx(0.45 / 0.7)
        assert sum(result.values()) == pytest.approx(1.0)


class TestPriorFromMappings:
    def test_uniform_without_mappings(self):
        assert prior_from_mappings(["a", "b"], []) == {"a": 0.5, "b": 0.5}

    def test_mapped_persona_dominates(self):
        mappings = [JurorPersonaMapping(id="m1", juror_id="j1", persona_id="a", confidence=0.6)]
        prior = prior_from_mappings(["a", "b", "c"], mappings)

        assert prior["a"] == pytest.approx(1.0 / 1.4)
        assert prior["b"] == pytest.approx(0.2 / 1.4)
        assert sum(prior.values()) == pytest.approx(1.0)

    def test_unmapped_floor(self):
        mappings = [JurorPersonaMapping(id="m1", juror_id="j1", persona_id="a", confidence=1.0)]
        prior = prior_from_mappings(["a", "b"], mappings)
        assert prior["b"] == pytest.approx(0.01 / 1.01)

    def test_mappings_outside_candidates_ignored(self):
        mappings = [JurorPersonaMapping(id="m1", juror_id="j1", persona_id="z", confidence=0.9)]
        assert prior_from_mappings(["a", "b"], mappings) == {"a": 0.5, "b": 0.5}


class TestComputePosterior:
    def test_no_signals_keeps_uniform(self):
        posterior = compute_posterior({"a": 1 / 3, "b": 1 / 3, "c": 1 / 3}, [], {})
        assert posterior.posteriors == pytest.approx({"a": 1 / 3, "b": 1 / 3, "c": 1 / 3})
        assert posterior.entropy == pytest.approx(math.log2(3))
        assert posterior.confidence == pytest.approx(0.0, abs=1e-9)


@pytest.fixture
def store():
    store = FakeMatchingStore()
    store.add_weight("a", "S1", 0.9)
    store.add_weight("b", "S2", 0.7)
    return store


class TestBayesianUpdater:
    @pytest.mark.asyncio
    async def test_observed_signal_moves_posterior(self, store):
        store.observe("j1", "S1")
        posterior = await BayesianUpdater(store).update_probabilities("j1", ["a", "b"])

        assert posterior.posteriors["a"] == pytest.approx(0.45 / 0.7)
        assert sum(posterior.posteriors.values()) == pytest.approx(1.0)
        assert 0.0 < posterior.confidence < 1.0

    @pytest.mark.asyncio
    async def test_zero_marginal_signal_skipped(self, store):
        store.add_weight("a", "S3", 1.0)
        store.add_weight("b", "S3", 1.0)
        store.observe("j1", "S3", value=False)

        posterior = await BayesianUpdater(store).update_probabilities("j1", ["a", "b"])

        assert posterior.posteriors == pytest.approx({"a": 0.5, "b": 0.5})

    @pytest.mark.asyncio
    async def test_restricted_to_new_signals(self, store):
        store.observe("j1", "S1")
        store.observe("j1", "S2")

        posterior = await BayesianUpdater(store).update_probabilities(
            "j1", ["a", "b"], new_signal_ids=["j1:S2"]
        )

        assert posterior.posteriors["b"] == pytest.approx(0.35 / 0.6)

    @pytest.mark.asyncio
    async def test_empty_candidates(self, store):
        posterior = await BayesianUpdater(store).update_probabilities("j1", [])
        assert posterior.posteriors == {}
        assert posterior.confidence == 0.0

    @pytest.mark.asyncio
    async def test_single_candidate_is_certain(self, store):
        posterior = await BayesianUpdater(store).update_probabilities("j1", ["a"])
        assert posterior.posteriors == {"a": 1.0}
        assert posterior.confidence == 1.0
