"""Human-readable rationales for top persona matches.

Phrasing comes from the text-generation capability; any failure falls
back to a deterministic rationale built from the method scores.
"""

from app.core.config import get_settings
from app.core.llm import TextCompleter, complete_text
from app.core.logging import get_logger
from app.core.schemas_matching import EmbeddingScore, SignalBasedScore

logger = get_logger(__name__)

MAX_SUPPORTING_IN_PROMPT = 5
MAX_CONTRADICTING_IN_PROMPT = 3
STRONG_METHOD_SCORE = 0.6


def _pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def build_rationale_prompt(
    juror_id: str,
    persona_label: str,
    signal_score: SignalBasedScore,
    embedding_score: EmbeddingScore,
    bayesian_probability: float,
    combined_probability: float,
) -> str:
    parts = [
        f"Generate a 2-3 sentence explanation for why Juror {juror_id} matches "
        f"Persona {persona_label} with {_pct(combined_probability)} confidence."
    ]

    if signal_score.supporting_signals:
        parts.append("\nSupporting Evidence:")
        for evidence in signal_score.supporting_signals[:MAX_SUPPORTING_IN_PROMPT]:
            parts.append(f"- {evidence.signal_name} (weight: {evidence.weight:.2f})")
    if signal_score.contradicting_signals:
        parts.append("\nContradicting Evidence:")
        for evidence in signal_score.contradicting_signals[:MAX_CONTRADICTING_IN_PROMPT]:
            parts.append(f"- {evidence.signal_name} (weight: {evidence.weight:.2f})")

    parts.append("\nMethod Scores:")
    parts.append(f"- Signal-based: {_pct(signal_score.score)}")
    parts.append(f"- Embedding similarity: {_pct(embedding_score.score)}")
    parts.append(f"- Bayesian probability: {_pct(bayesian_probability)}")

    parts.append(
        "\nBe specific about which evidence is most compelling. "
        "Focus on concrete signals and behavioral indicators."
    )
    return "\n".join(parts)


def fallback_rationale(
    signal_score: float,
    embedding_score: float,
    bayesian_probability: float,
    combined_probability: float,
) -> str:
    """Deterministic rationale used when text generation is unavailable."""
    parts = [
        f"This juror matches with {_pct(combined_probability)} confidence "
        "based on multiple matching algorithms."
    ]
    if signal_score > STRONG_METHOD_SCORE:
        parts.append("Strong signal-based evidence supports this match.")
    if embedding_score > STRONG_METHOD_SCORE:
        parts.append("Semantic similarity analysis indicates alignment.")
    if bayesian_probability > STRONG_METHOD_SCORE:
        parts.append("Probabilistic analysis confirms high likelihood.")
    return " ".join(parts)


class RationaleGenerator:
    """Explains a match, citing the signals behind it."""

    def __init__(self, complete: TextCompleter = complete_text):
        self._complete = complete

    async def generate_rationale(
        self,
        juror_id: str,
        persona_id: str,
        signal_score: SignalBasedScore,
        embedding_score: EmbeddingScore,
        bayesian_probability: float,
        combined_probability: float,
        persona_name: str | None = None,
    ) -> str:
        prompt = build_rationale_prompt(
            juror_id,
            persona_name or persona_id,
            signal_score,
            embedding_score,
            bayesian_probability,
            combined_probability,
        )
        settings = get_settings()

        try:
            text = await self._complete(
                prompt,
                max_tokens=settings.RATIONALE_MAX_TOKENS,
                temperature=settings.RATIONALE_TEMPERATURE,
            )
        except Exception as e:
            logger.warning(
                f"Rationale generation failed (non-fatal), using fallback: {e}",
                extra={"juror_id": juror_id, "persona_id": persona_id},
            )
            text = ""

        text = text.strip()
        if text:
            return text

        return fallback_rationale(
            signal_score.score,
            embedding_score.score,
            bayesian_probability,
            combined_probability,
        )
