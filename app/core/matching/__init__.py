"""Juror-persona matching engine.

Three complementary methods score a juror against candidate personas:
- Signal-based: weighted evidence from directly observed signals
- Embedding: semantic similarity of juror narrative and persona description
- Bayesian: posterior over the candidate set given observed signals

The ensemble combines them with evidence-dependent weights, explains the
top matches, and the question generator proposes voir dire questions
that separate personas the ensemble cannot tell apart.

Usage:
    from app.core.matching import get_ensemble_matcher

    matches = await get_ensemble_matcher().match_juror(juror_id, persona_ids)
"""

from app.core.matching.bayesian import BayesianUpdater
from app.core.matching.counterfactual import CounterfactualGenerator
from app.core.matching.embedding_cache import EmbeddingCache
from app.core.matching.embedding_scorer import EmbeddingScorer
from app.core.matching.ensemble import BASE_WEIGHTS, EnsembleMatcher, determine_weights
from app.core.matching.factory import (
    get_embedding_scorer,
    get_ensemble_matcher,
    get_matching_store,
    get_question_generator,
)
from app.core.matching.narrative import JurorNarrativeBuilder, build_persona_description
from app.core.matching.questions import DiscriminativeQuestionGenerator, identify_ambiguous_pairs
from app.core.matching.rationale import RationaleGenerator
from app.core.matching.signal_scorer import SignalBasedScorer, compute_signal_score

__all__ = [
    "BayesianUpdater",
    "CounterfactualGenerator",
    "EmbeddingCache",
    "EmbeddingScorer",
    "EnsembleMatcher",
    "DiscriminativeQuestionGenerator",
    "JurorNarrativeBuilder",
    "RationaleGenerator",
    "SignalBasedScorer",
    "BASE_WEIGHTS",
    "build_persona_description",
    "compute_signal_score",
    "determine_weights",
    "identify_ambiguous_pairs",
    "get_embedding_scorer",
    "get_ensemble_matcher",
    "get_matching_store",
    "get_question_generator",
]
