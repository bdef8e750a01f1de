"""Ensemble matcher.

Combines the signal-based, embedding and Bayesian methods with weights
chosen from how much evidence the juror has:

- rich narrative and more than 5 signals: favor embedding
- fewer than 3 signals and no narrative: favor Bayesian
- more than 10 signals: favor signal-based

Only the top 5 matches get generated rationale and counterfactual text;
the rest carry a deterministic score summary.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass

from app.core.logging import get_logger, log_with_context
from app.core.matching.bayesian import BayesianUpdater
from app.core.matching.counterfactual import CounterfactualGenerator
from app.core.matching.embedding_scorer import EmbeddingScorer
from app.core.matching.information import (
    clamp01,
    entropy_confidence,
    shannon_entropy,
    uniform,
)
from app.core.matching.rationale import RationaleGenerator, fallback_rationale
from app.core.matching.signal_scorer import SignalBasedScorer
from app.core.schemas_matching import (
    BayesianPosterior,
    EmbeddingScore,
    EnsembleMatch,
    EnsembleWeights,
    ExplainedMatch,
    MethodBreakdown,
    ScoreOnlyMatch,
    SignalBasedScore,
)
from app.db.matching_store import MatchingStore

logger = get_logger(__name__)

BASE_WEIGHTS = EnsembleWeights(signal_based=0.35, embedding=0.30, bayesian=0.35)

RICH_NARRATIVE_MIN_SIGNALS = 5
SPARSE_MAX_SIGNALS = 3
MANY_SIGNALS = 10

TOP_EXPLAINED = 5
COUNTERFACTUAL_UNAVAILABLE_TEXT = "Counterfactual analysis unavailable."


def determine_weights(has_rich_narrative: bool, signal_count: int) -> EnsembleWeights:
    """Adjust the base weights for evidence availability, then renormalize."""
    signal_based = BASE_WEIGHTS.signal_based
    embedding = BASE_WEIGHTS.embedding
    bayesian = BASE_WEIGHTS.bayesian

    if has_rich_narrative and signal_count > RICH_NARRATIVE_MIN_SIGNALS:
        embedding += 0.10
        signal_based -= 0.05
        bayesian -= 0.05

    # Sparse evidence favors the method that degrades to priors
    if signal_count < SPARSE_MAX_SIGNALS and not has_rich_narrative:
        bayesian += 0.10
        embedding -= 0.10

    if signal_count > MANY_SIGNALS:
        signal_based += 0.05
        bayesian -= 0.05

    return EnsembleWeights(
        signal_based=signal_based, embedding=embedding, bayesian=bayesian
    ).normalized()


def score_summary(probability: float) -> str:
    return f"Score: {probability * 100:.0f}% - details available on request"


@dataclass
class _Combined:
    """Per-persona combination before rationale generation."""

    persona_id: str
    probability: float
    confidence: float
    signal_score: SignalBasedScore
    embedding_score: EmbeddingScore
    bayesian_probability: float
    bayesian_confidence: float

    def fields(self) -> dict:
        return {
            "persona_id": self.persona_id,
            "probability": self.probability,
            "confidence": self.confidence,
            "method_scores": MethodBreakdown(
                signal_based=self.signal_score.score,
                embedding=self.embedding_score.score,
                bayesian=self.bayesian_probability,
            ),
            "method_confidences": MethodBreakdown(
                signal_based=self.signal_score.confidence,
                embedding=self.embedding_score.confidence,
                bayesian=self.bayesian_confidence,
            ),
            "supporting_signals": self.signal_score.supporting_signals,
            "contradicting_signals": self.signal_score.contradicting_signals,
        }


class EnsembleMatcher:
    """Ranks candidate personas for a juror using all three methods."""

    def __init__(
        self,
        store: MatchingStore,
        signal_scorer: SignalBasedScorer | None = None,
        embedding_scorer: EmbeddingScorer | None = None,
        bayesian_updater: BayesianUpdater | None = None,
        rationale_generator: RationaleGenerator | None = None,
        counterfactual_generator: CounterfactualGenerator | None = None,
    ):
        self.store = store
        self.signal_scorer = signal_scorer or SignalBasedScorer(store)
        self.embedding_scorer = embedding_scorer or EmbeddingScorer(store)
        self.bayesian_updater = bayesian_updater or BayesianUpdater(store)
        self.rationale_generator = rationale_generator or RationaleGenerator()
        self.counterfactual_generator = counterfactual_generator or CounterfactualGenerator(store)

    async def weights_for_juror(self, juror_id: str) -> EnsembleWeights:
        """Evidence-based weights; base weights when the juror is unknown."""
        juror, juror_signals = await asyncio.gather(
            self.store.get_juror(juror_id),
            self.store.list_juror_signals(juror_id),
        )
        if juror is None:
            logger.warning("Juror not found, using base weights", extra={"juror_id": juror_id})
            return BASE_WEIGHTS.normalized()
        return determine_weights(juror.has_rich_narrative, len(juror_signals))

    async def match_juror(self, juror_id: str, persona_ids: list[str]) -> list[EnsembleMatch]:
        """
        Score every candidate persona and rank by combined probability.

        A persona missing from the signal-based or embedding results is
        skipped. The list is sorted by descending probability; ties keep
        candidate order.

        Args:
            juror_id: Juror UUID
            persona_ids: Candidate persona UUIDs

        Returns:
            ExplainedMatch for the top 5, ScoreOnlyMatch for the rest
        """
        run_id = str(uuid.uuid4())
        persona_ids = list(dict.fromkeys(persona_ids))
        if not persona_ids:
            return []

        try:
            weights = await self.weights_for_juror(juror_id)
        except Exception as e:
            logger.warning(
                f"Weight selection failed, using base weights: {e}",
                extra={"juror_id": juror_id, "run_id": run_id},
            )
            weights = BASE_WEIGHTS.normalized()

        signal_scores, embedding_scores, posterior = await asyncio.gather(
            self.signal_scorer.score_juror_against_personas(juror_id, persona_ids),
            self.embedding_scorer.score_juror_against_personas(juror_id, persona_ids),
            self.bayesian_updater.update_probabilities(juror_id, persona_ids),
            return_exceptions=True,
        )
        if isinstance(signal_scores, BaseException):
            logger.error(
                f"Signal-based scoring failed: {signal_scores}",
                extra={"run_id": run_id, "juror_id": juror_id},
            )
            signal_scores = {}
        if isinstance(embedding_scores, BaseException):
            logger.error(
                f"Embedding scoring failed: {embedding_scores}",
                extra={"run_id": run_id, "juror_id": juror_id},
            )
            embedding_scores = {}
        if isinstance(posterior, BaseException):
            logger.warning(
                f"Bayesian update failed, using uniform prior: {posterior}",
                extra={"run_id": run_id, "juror_id": juror_id},
            )
            prior = uniform(persona_ids)
            posterior = BayesianPosterior(
                posteriors=prior,
                confidence=entropy_confidence(shannon_entropy(prior), len(prior)),
                entropy=shannon_entropy(prior),
            )

        combined: list[_Combined] = []
        for persona_id in persona_ids:
            signal_score = signal_scores.get(persona_id)
            embedding_score = embedding_scores.get(persona_id)
            if signal_score is None or embedding_score is None:
                continue

            bayesian_probability = posterior.posteriors.get(persona_id, 0.0)
            probability = (
                weights.signal_based * signal_score.score
                + weights.embedding * embedding_score.score
                + weights.bayesian * bayesian_probability
            )
            confidence = (
                weights.signal_based * signal_score.confidence
                + weights.embedding * embedding_score.confidence
                + weights.bayesian * posterior.confidence
            )
            combined.append(
                _Combined(
                    persona_id=persona_id,
                    probability=clamp01(probability),
                    confidence=clamp01(confidence),
                    signal_score=signal_score,
                    embedding_score=embedding_score,
                    bayesian_probability=bayesian_probability,
                    bayesian_confidence=posterior.confidence,
                )
            )

        combined.sort(key=lambda c: c.probability, reverse=True)
        ranked_ids = [c.persona_id for c in combined]

        top = combined[:TOP_EXPLAINED]
        persona_names = await self._persona_names([c.persona_id for c in top])
        explained = await asyncio.gather(
            *(self._explain(juror_id, c, ranked_ids, persona_names) for c in top)
        )
        rest = [
            ScoreOnlyMatch(summary=score_summary(c.probability), **c.fields())
            for c in combined[TOP_EXPLAINED:]
        ]

        skipped = len(persona_ids) - len(combined)
        log_with_context(
            logger,
            logging.INFO,
            f"Matched juror against {len(persona_ids)} personas: {len(combined)} ranked, {skipped} skipped",
            run_id=run_id,
            juror_id=juror_id,
            weight_signal_based=round(weights.signal_based, 3),
            weight_embedding=round(weights.embedding, 3),
            weight_bayesian=round(weights.bayesian, 3),
            top_persona_id=ranked_ids[0] if ranked_ids else None,
        )
        return [*explained, *rest]

    async def get_top_matches(
        self, juror_id: str, persona_ids: list[str], top_n: int = 3
    ) -> list[EnsembleMatch]:
        matches = await self.match_juror(juror_id, persona_ids)
        return matches[:top_n]

    async def _persona_names(self, persona_ids: list[str]) -> dict[str, str]:
        if not persona_ids:
            return {}
        try:
            personas = await self.store.get_personas(persona_ids)
        except Exception as e:
            logger.warning(f"Could not load persona names: {e}")
            return {}
        return {pid: persona.name for pid, persona in personas.items()}

    async def _explain(
        self,
        juror_id: str,
        match: _Combined,
        ranked_ids: list[str],
        persona_names: dict[str, str],
    ) -> ExplainedMatch:
        rationale, counterfactual = await asyncio.gather(
            self.rationale_generator.generate_rationale(
                juror_id,
                match.persona_id,
                match.signal_score,
                match.embedding_score,
                match.bayesian_probability,
                match.probability,
                persona_name=persona_names.get(match.persona_id),
            ),
            self.counterfactual_generator.generate_counterfactual(
                juror_id, match.persona_id, match.signal_score, ranked_ids
            ),
            return_exceptions=True,
        )

        if isinstance(rationale, BaseException):
            logger.warning(
                f"Rationale failed: {rationale}",
                extra={"juror_id": juror_id, "persona_id": match.persona_id},
            )
            rationale = fallback_rationale(
                match.signal_score.score,
                match.embedding_score.score,
                match.bayesian_probability,
                match.probability,
            )
        if isinstance(counterfactual, BaseException):
            logger.warning(
                f"Counterfactual failed: {counterfactual}",
                extra={"juror_id": juror_id, "persona_id": match.persona_id},
            )
            counterfactual = COUNTERFACTUAL_UNAVAILABLE_TEXT

        return ExplainedMatch(rationale=rationale, counterfactual=counterfactual, **match.fields())
