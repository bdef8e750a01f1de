"""Counterfactual explanations for top matches.

Names the unobserved signals that would most change confidence in a match
when compared against the best-ranked alternative persona.
"""

import asyncio

from app.core.logging import get_logger
from app.core.matching.information import rank_discriminating_signals
from app.core.schemas_matching import DiscriminatingSignal, SignalBasedScore, WeightDirection
from app.db.matching_store import MatchingStore

logger = get_logger(__name__)

MAX_DECISION_SIGNALS = 3

NO_ALTERNATIVE_TEXT = "No alternative personas available for comparison."
DECISIVE_EVIDENCE_TEXT = (
    "Current evidence strongly supports this match. "
    "Additional signals would provide minimal information gain."
)


def format_counterfactual(decision_signals: list[DiscriminatingSignal]) -> str:
    """Fixed template listing each signal and which way it would move confidence."""
    lines = [
        "The confidence in this persona match would change significantly if the juror exhibited:"
    ]
    for signal in decision_signals:
        effect = "increase" if signal.direction is WeightDirection.POSITIVE else "decrease"
        lines.append(f"- {signal.signal_name} (would {effect} confidence if present)")
    lines.append("\nThese signals would help distinguish this persona from alternative matches.")
    return "\n".join(lines)


class CounterfactualGenerator:
    """What-would-change-the-answer text for a single match."""

    def __init__(self, store: MatchingStore):
        self.store = store

    async def generate_counterfactual(
        self,
        juror_id: str,
        persona_id: str,
        signal_score: SignalBasedScore | None,
        ranked_persona_ids: list[str],
    ) -> str:
        """
        Compare persona_id with the best-ranked other persona.

        Args:
            juror_id: Juror UUID
            persona_id: The matched persona
            signal_score: The match's signal-based score (kept for callers that log it)
            ranked_persona_ids: Candidate personas, best first

        Returns:
            Counterfactual text
        """
        alternatives = [pid for pid in ranked_persona_ids if pid != persona_id]
        if not alternatives:
            return NO_ALTERNATIVE_TEXT

        decision_signals = await self.identify_decision_signals(
            juror_id, persona_id, alternatives[0]
        )
        if not decision_signals:
            return DECISIVE_EVIDENCE_TEXT

        return format_counterfactual(decision_signals)

    async def identify_decision_signals(
        self, juror_id: str, persona_id: str, alternative_persona_id: str
    ) -> list[DiscriminatingSignal]:
        """Top 3 unobserved signals with discrimination power above 0.3."""
        persona_weights, alternative_weights, juror_signals = await asyncio.gather(
            self.store.list_persona_weights(persona_id),
            self.store.list_persona_weights(alternative_persona_id),
            self.store.list_juror_signals(juror_id),
        )
        observed = {js.signal_id for js in juror_signals}

        signals = rank_discriminating_signals(
            persona_id,
            persona_weights,
            alternative_persona_id,
            alternative_weights,
            observed,
            limit=MAX_DECISION_SIGNALS,
        )
        logger.debug(
            f"{len(signals)} decision signals vs {alternative_persona_id}",
            extra={"juror_id": juror_id, "persona_id": persona_id},
        )
        return signals
