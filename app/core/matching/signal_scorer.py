"""Signal-based scoring.

Explainable weighted-evidence matching: every contribution to the score
is traceable to a named signal, so the supporting/contradicting lists
double as the audit trail shown to the attorney.
"""

import asyncio

from app.core.logging import get_logger
from app.core.matching.information import clamp01
from app.core.schemas_matching import (
    JurorSignal,
    PersonaSignalWeight,
    SignalBasedScore,
    SignalEvidence,
    WeightDirection,
)
from app.db.matching_store import MatchingStore

logger = get_logger(__name__)

CONTRADICTION_PENALTY_PER_SIGNAL = 0.1
CONTRADICTION_PENALTY_CAP = 0.3
MISSING_PENALTY_PER_SIGNAL = 0.05
MISSING_PENALTY_CAP = 0.2
HIGH_WEIGHT_THRESHOLD = 0.5


def compute_signal_score(
    weights: list[PersonaSignalWeight],
    juror_signals: list[JurorSignal],
) -> SignalBasedScore:
    """
    Score one persona from its weight table and the juror's observed signals.

    Positive signals observed present add weight**2; negative signals
    observed present subtract weight**2. Every weight adds its weight to the
    maximum possible score whether observed or not, so the result is
    raw / max clamped to [0, 1]. Unobserved positive signals are listed as
    missing.

    Confidence is observed/expected coverage minus a contradiction penalty
    (0.1 each, capped at 0.3) and a penalty for missing high-weight
    signals (0.05 each above weight 0.5, capped at 0.2).
    """
    observed = {js.signal_id: js for js in juror_signals}

    raw_score = 0.0
    max_possible_score = 0.0
    supporting: list[SignalEvidence] = []
    contradicting: list[SignalEvidence] = []
    missing: list[SignalEvidence] = []

    for weight in weights:
        if weight.direction is not WeightDirection.POSITIVE:
            continue
        max_possible_score += weight.weight
        juror_signal = observed.get(weight.signal_id)
        if juror_signal is None:
            missing.append(
                SignalEvidence(
                    signal_id=weight.signal_id,
                    signal_name=weight.signal_name,
                    weight=weight.weight,
                )
            )
        elif juror_signal.present:
            raw_score += weight.weight * weight.weight
            supporting.append(
                SignalEvidence(
                    signal_id=weight.signal_id,
                    signal_name=weight.signal_name,
                    weight=weight.weight,
                    value=juror_signal.value,
                )
            )

    for weight in weights:
        if weight.direction is not WeightDirection.NEGATIVE:
            continue
        max_possible_score += weight.weight
        juror_signal = observed.get(weight.signal_id)
        if juror_signal is not None and juror_signal.present:
            raw_score -= weight.weight * weight.weight
            contradicting.append(
                SignalEvidence(
                    signal_id=weight.signal_id,
                    signal_name=weight.signal_name,
                    weight=weight.weight,
                    value=juror_signal.value,
                )
            )

    score = clamp01(raw_score / max_possible_score) if max_possible_score > 0 else 0.0

    observed_count = len(supporting) + len(contradicting)
    expected_count = len(weights)
    base_confidence = observed_count / expected_count if expected_count > 0 else 0.0

    contradiction_penalty = min(
        CONTRADICTION_PENALTY_CAP, len(contradicting) * CONTRADICTION_PENALTY_PER_SIGNAL
    )
    missing_penalty = min(
        MISSING_PENALTY_CAP,
        sum(1 for m in missing if m.weight > HIGH_WEIGHT_THRESHOLD) * MISSING_PENALTY_PER_SIGNAL,
    )
    confidence = clamp01(base_confidence - contradiction_penalty - missing_penalty)

    return SignalBasedScore(
        score=score,
        confidence=confidence,
        supporting_signals=supporting,
        contradicting_signals=contradicting,
        missing_signals=missing,
    )


class SignalBasedScorer:
    """Scores a juror against personas from directly observed signals."""

    def __init__(self, store: MatchingStore):
        self.store = store

    async def score_juror(self, juror_id: str, persona_id: str) -> SignalBasedScore:
        juror_signals, weights = await asyncio.gather(
            self.store.list_juror_signals(juror_id),
            self.store.list_persona_weights(persona_id),
        )
        return compute_signal_score(weights, juror_signals)

    async def score_juror_against_personas(
        self, juror_id: str, persona_ids: list[str]
    ) -> dict[str, SignalBasedScore]:
        """
        Score every candidate persona.

        Juror signals are read once. A persona whose weights cannot be read
        is logged and left out of the result.
        """
        juror_signals = await self.store.list_juror_signals(juror_id)

        async def _score_one(persona_id: str) -> SignalBasedScore:
            weights = await self.store.list_persona_weights(persona_id)
            return compute_signal_score(weights, juror_signals)

        results = await asyncio.gather(
            *(_score_one(persona_id) for persona_id in persona_ids),
            return_exceptions=True,
        )

        scores: dict[str, SignalBasedScore] = {}
        for persona_id, result in zip(persona_ids, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Signal-based scoring failed for persona {persona_id}: {result}",
                    extra={"juror_id": juror_id, "persona_id": persona_id},
                )
                continue
            scores[persona_id] = result

        return scores
