"""Bayesian updating over a closed set of candidate personas.

Starts from a prior (existing primary mappings, or uniform) and applies
Bayes' rule once per observed juror signal across the whole candidate
set. Posteriors always sum to 1; confidence is 1 - H / log2(N).
"""

from app.core.logging import get_logger
from app.core.matching.information import (
    entropy_confidence,
    normalize,
    shannon_entropy,
    uniform,
)
from app.core.schemas_matching import (
    BayesianPosterior,
    JurorPersonaMapping,
    JurorSignal,
    PersonaSignalWeight,
    WeightDirection,
)
from app.db.matching_store import MatchingStore

logger = get_logger(__name__)

NEUTRAL_LIKELIHOOD = 0.5
PRIOR_FLOOR = 0.01


def likelihood(weight: PersonaSignalWeight | None, present: bool) -> float:
    """
    P(signal observation | persona).

    POSITIVE weight w: w when present, 1 - w otherwise. NEGATIVE weight is
    inverted. No weight means the signal says nothing about the persona.
    """
    if weight is None:
        return NEUTRAL_LIKELIHOOD
    if weight.direction is WeightDirection.POSITIVE:
        return weight.weight if present else 1.0 - weight.weight
    return 1.0 - weight.weight if present else weight.weight


def bayes_update(
    priors: dict[str, float],
    likelihoods: dict[str, float],
) -> dict[str, float] | None:
    """
    One application of Bayes' rule over every persona at once.

    Returns None when the marginal is 0, meaning the observation is
    uninformative for the whole set and the caller keeps its priors.
    """
    marginal = sum(likelihoods[pid] * prior for pid, prior in priors.items())
    if marginal <= 0:
        return None
    return {pid: likelihoods[pid] * prior / marginal for pid, prior in priors.items()}


def prior_from_mappings(
    persona_ids: list[str],
    mappings: list[JurorPersonaMapping],
) -> dict[str, float]:
    """
    Prior from persisted primary mappings, uniform when there are none.

    Mapped personas take their normalized confidence. Unmapped personas
    share what confidence the mappings left over, floored at 0.01, and the
    whole prior is renormalized.
    """
    candidate_set = set(persona_ids)
    mapped = {m.persona_id: m.confidence for m in mappings if m.persona_id in candidate_set}
    if not mapped:
        return uniform(persona_ids)

    total_confidence = sum(mapped.values())
    priors = normalize(mapped) if total_confidence > 0 else dict(mapped)

    unmapped = [pid for pid in persona_ids if pid not in priors]
    if unmapped:
        remaining = (1.0 - total_confidence) / len(unmapped)
        for persona_id in unmapped:
            priors[persona_id] = max(PRIOR_FLOOR, remaining)

    return normalize({pid: priors[pid] for pid in persona_ids})


def compute_posterior(
    priors: dict[str, float],
    juror_signals: list[JurorSignal],
    weights_by_persona: dict[str, dict[str, PersonaSignalWeight]],
) -> BayesianPosterior:
    """Apply every observed signal to the priors and summarize the result."""
    posteriors = dict(priors)
    skipped = 0

    for juror_signal in juror_signals:
        present = juror_signal.present
        likelihoods = {
            pid: likelihood(weights_by_persona.get(pid, {}).get(juror_signal.signal_id), present)
            for pid in posteriors
        }
        updated = bayes_update(posteriors, likelihoods)
        if updated is None:
            skipped += 1
            continue
        posteriors = updated

    if skipped:
        logger.debug(f"Skipped {skipped} signals with zero marginal probability")

    posteriors = normalize(posteriors)
    entropy = shannon_entropy(posteriors)
    return BayesianPosterior(
        posteriors=posteriors,
        confidence=entropy_confidence(entropy, len(posteriors)),
        entropy=entropy,
    )


class BayesianUpdater:
    """Posterior over candidate personas given a juror's observed signals."""

    def __init__(self, store: MatchingStore):
        self.store = store

    async def update_probabilities(
        self,
        juror_id: str,
        persona_ids: list[str],
        new_signal_ids: list[str] | None = None,
    ) -> BayesianPosterior:
        """
        Compute the posterior for the juror over persona_ids.

        Args:
            juror_id: Juror UUID
            persona_ids: Closed candidate set
            new_signal_ids: Restrict the update to these juror-signal rows

        Returns:
            BayesianPosterior with normalized posteriors, entropy and confidence
        """
        if not persona_ids:
            return BayesianPosterior(posteriors={}, confidence=0.0, entropy=0.0)

        persona_ids = list(dict.fromkeys(persona_ids))
        mappings = await self.store.list_primary_mappings(juror_id, persona_ids)
        priors = prior_from_mappings(persona_ids, mappings)

        juror_signals = await self.store.list_juror_signals(juror_id, new_signal_ids)
        weights = await self.store.list_weights_for_personas(persona_ids)

        weights_by_persona: dict[str, dict[str, PersonaSignalWeight]] = {}
        for weight in weights:
            weights_by_persona.setdefault(weight.persona_id, {})[weight.signal_id] = weight

        posterior = compute_posterior(priors, juror_signals, weights_by_persona)

        logger.info(
            f"Bayesian update: {len(juror_signals)} signals over {len(persona_ids)} personas, "
            f"entropy={posterior.entropy:.3f}, confidence={posterior.confidence:.3f}",
            extra={"juror_id": juror_id},
        )
        return posterior
