"""Shared probability and discrimination math.

Pure functions only: entropy, normalization, clamping and the
discrimination power of a signal between two personas. Used by the
Bayesian updater, the counterfactual generator and the question generator.
"""

import math
from typing import Mapping, Sequence

from app.core.schemas_matching import (
    DiscriminatingSignal,
    PersonaSignalWeight,
    WeightDirection,
)

# A signal must move a persona pair at least this much to be worth asking about
DISCRIMINATION_THRESHOLD = 0.3


def clamp01(value: float) -> float:
    """Clamp to [0, 1]; NaN collapses to 0."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def normalize(probabilities: Mapping[str, float]) -> dict[str, float]:
    """
    Normalize a distribution to sum to 1.

    All-zero (or negative-total) mass falls back to uniform over the same keys.
    """
    if not probabilities:
        return {}
    total = sum(probabilities.values())
    if total <= 0:
        uniform = 1.0 / len(probabilities)
        return {key: uniform for key in probabilities}
    return {key: prob / total for key, prob in probabilities.items()}


def uniform(keys: Sequence[str]) -> dict[str, float]:
    """Uniform distribution over keys (empty for no keys)."""
    if not keys:
        return {}
    share = 1.0 / len(keys)
    return {key: share for key in keys}


def shannon_entropy(probabilities: Sequence[float] | Mapping[str, float]) -> float:
    """H = -sum(p * log2 p); zero-probability terms contribute 0."""
    values = probabilities.values() if isinstance(probabilities, Mapping) else probabilities
    entropy = 0.0
    for prob in values:
        if prob > 0:
            entropy -= prob * math.log2(prob)
    return entropy


def entropy_confidence(entropy: float, outcome_count: int) -> float:
    """
    1 - H / log2(N), clamped to [0, 1].

    A single candidate has no uncertainty, so its confidence is 1.
    """
    if outcome_count <= 1:
        return 1.0
    max_entropy = math.log2(outcome_count)
    return clamp01(1.0 - entropy / max_entropy)


def binary_entropy(prob_a: float, prob_b: float) -> float:
    """Entropy of two probabilities after normalizing them to a pair."""
    total = prob_a + prob_b
    if total <= 0:
        return 0.0
    return shannon_entropy([prob_a / total, prob_b / total])


def discrimination_power(
    weight_a: PersonaSignalWeight | None,
    weight_b: PersonaSignalWeight | None,
) -> tuple[float, float, WeightDirection]:
    """
    How much knowing a signal would separate persona A from persona B.

    Returns (power, weight, direction) where direction is expressed from
    persona A's point of view:
    - both weighted: power = |wA - wB|, weight = max(wA, wB), A's direction
    - only A weighted: power = wA, A's direction
    - only B weighted: power = wB, B's direction flipped
    - neither: (0, 0, POSITIVE)

    The power is symmetric in A and B.
    """
    if weight_a is not None and weight_b is not None:
        return (
            abs(weight_a.weight - weight_b.weight),
            max(weight_a.weight, weight_b.weight),
            weight_a.direction,
        )
    if weight_a is not None:
        return weight_a.weight, weight_a.weight, weight_a.direction
    if weight_b is not None:
        return weight_b.weight, weight_b.weight, weight_b.direction.flipped()
    return 0.0, 0.0, WeightDirection.POSITIVE


def rank_discriminating_signals(
    persona_a_id: str,
    weights_a: list[PersonaSignalWeight],
    persona_b_id: str,
    weights_b: list[PersonaSignalWeight],
    observed_signal_ids: set[str],
    limit: int | None = None,
    persona_a_name: str | None = None,
    persona_b_name: str | None = None,
) -> list[DiscriminatingSignal]:
    """
    Unobserved signals that separate persona A from persona B, strongest first.

    Only signals with power above DISCRIMINATION_THRESHOLD are kept. Signals
    already observed for the juror are never proposed.
    """
    by_signal_a = {w.signal_id: w for w in weights_a}
    by_signal_b = {w.signal_id: w for w in weights_b}

    candidates: list[DiscriminatingSignal] = []
    for signal_id in dict.fromkeys([*by_signal_a, *by_signal_b]):
        if signal_id in observed_signal_ids:
            continue

        weight_a = by_signal_a.get(signal_id)
        weight_b = by_signal_b.get(signal_id)
        power, weight, direction = discrimination_power(weight_a, weight_b)
        if power <= DISCRIMINATION_THRESHOLD:
            continue

        source = weight_a if weight_a is not None else weight_b
        candidates.append(
            DiscriminatingSignal(
                signal_id=signal_id,
                signal_name=source.signal_name,
                signal_category=source.signal_category,
                weight=weight,
                direction=direction,
                information_gain=power,
                persona_a_id=persona_a_id,
                persona_a_name=persona_a_name or persona_a_id,
                persona_b_id=persona_b_id,
                persona_b_name=persona_b_name or persona_b_id,
            )
        )

    candidates.sort(key=lambda s: s.information_gain, reverse=True)
    return candidates[:limit] if limit is not None else candidates
