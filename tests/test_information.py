"""Tests for entropy, normalization and discrimination helpers."""

import math

import pytest

from app.core.matching.information import (
    binary_entropy,
    clamp01,
    discrimination_power,
    entropy_confidence,
    normalize,
    rank_discriminating_signals,
    shannon_entropy,
    uniform,
)
from app.core.schemas_matching import PersonaSignalWeight, WeightDirection


def _weight(persona_id, signal_id, weight, direction="POSITIVE"):
    return PersonaSignalWeight(
        persona_id=persona_id,
        signal_id=signal_id,
        signal_name=signal_id.title(),
        weight=weight,
        direction=direction,
    )


class TestDistributionHelpers:
    def test_clamp(self):
        assert clamp01(-0.2) == 0.0
        assert clamp01(1.7) == 1.0
        assert clamp01(float("nan")) == 0.0

    def test_normalize_sums_to_one(self):
        result = normalize({"a": 2.0, "b": 6.0})
        assert result == pytest.approx({"a": 0.25, "b": 0.75})

    def test_normalize_zero_mass_falls_back_to_uniform(self):
        assert normalize({"a": 0.0, "b": 0.0}) == {"a": 0.5, "b": 0.5}

    def test_uniform_empty(self):
        assert uniform([]) == {}

    def test_entropy_of_uniform(self):
        assert shannon_entropy(uniform(["a", "b", "c"])) == pytest.approx(math.log2(3))

    def test_entropy_ignores_zero_terms(self):
        assert shannon_entropy([1.0, 0.0]) == 0.0

    def test_entropy_confidence_bounds(self):
        assert entropy_confidence(math.log2(4), 4) == pytest.approx(0.0)
        assert entropy_confidence(0.0, 4) == 1.0
        assert entropy_confidence(0.0, 1) == 1.0

    def test_binary_entropy_normalizes_pair(self):
        assert binary_entropy(0.3, 0.3) == pytest.approx(1.0)
        assert binary_entropy(0.0, 0.0) == 0.0


class TestDiscriminationPower:
    def test_both_weighted(self):
        power, weight, direction = discrimination_power(
            _weight("a", "S", 0.8), _weight("b", "S", 0.3)
        )
        assert power == pytest.approx(0.5)
        assert weight == 0.8
        assert direction is WeightDirection.POSITIVE

    def test_symmetric(self):
        a, b = _weight("a", "S", 0.8), _weight("b", "S", 0.3)
        assert discrimination_power(a, b)[0] == pytest.approx(discrimination_power(b, a)[0])

    def test_only_b_flips_direction(self):
        power, weight, direction = discrimination_power(None, _weight("b", "S", 0.6))
        assert power == 0.6
        assert weight == 0.6
        assert direction is WeightDirection.NEGATIVE

    def test_neither(self):
        assert discrimination_power(None, None) == (0.0, 0.0, WeightDirection.POSITIVE)


class TestRankDiscriminatingSignals:
    def test_filters_threshold_and_observed(self):
        weights_a = [_weight("a", "S1", 0.9), _weight("a", "S2", 0.5), _weight("a", "S3", 0.7)]
        weights_b = [_weight("b", "S2", 0.4), _weight("b", "S4", 0.6)]

        ranked = rank_discriminating_signals(
            "a", weights_a, "b", weights_b, observed_signal_ids={"S3"}
        )

        assert [s.signal_id for s in ranked] == ["S1", "S4"]
        assert ranked[0].information_gain == pytest.approx(0.9)
        assert ranked[1].direction is WeightDirection.NEGATIVE

    def test_limit_and_names(self):
        weights_a = [_weight("a", f"S{i}", 0.4 + i * 0.1) for i in range(5)]
        ranked = rank_discriminating_signals(
            "a", weights_a, "b", [], set(), limit=2, persona_a_name="Alpha"
        )
        assert len(ranked) == 2
        assert ranked[0].persona_a_name == "Alpha"
        assert ranked[0].persona_b_name == "b"
