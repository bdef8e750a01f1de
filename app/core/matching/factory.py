"""Process-wide engine instances for the API and scripts.

The embedding cache lives on the EmbeddingScorer built here, so every
request served by one process shares it.
"""

from functools import lru_cache

from app.core.config import get_settings
from app.core.matching.embedding_cache import EmbeddingCache
from app.core.matching.embedding_scorer import EmbeddingScorer
from app.core.matching.ensemble import EnsembleMatcher
from app.core.matching.questions import DiscriminativeQuestionGenerator
from app.db.matching_store import SupabaseMatchingStore


@lru_cache
def get_matching_store() -> SupabaseMatchingStore:
    return SupabaseMatchingStore()


@lru_cache
def get_embedding_scorer() -> EmbeddingScorer:
    settings = get_settings()
    cache = EmbeddingCache(narrative_ttl_seconds=settings.NARRATIVE_CACHE_TTL_SECONDS)
    return EmbeddingScorer(get_matching_store(), cache=cache)


@lru_cache
def get_ensemble_matcher() -> EnsembleMatcher:
    return EnsembleMatcher(get_matching_store(), embedding_scorer=get_embedding_scorer())


@lru_cache
def get_question_generator() -> DiscriminativeQuestionGenerator:
    return DiscriminativeQuestionGenerator(get_matching_store(), get_ensemble_matcher())
