"""Embedding similarity scoring.

Compares the juror narrative with each persona description through the
text-embedding capability. Similarity in [-1, 1] maps to a score in
[0, 1] via (sim + 1) / 2. Confidence depends only on how rich the juror
narrative is, never on the similarity value.
"""

import asyncio
from typing import Awaitable, Callable

import numpy as np

from app.core.config import get_settings
from app.core.embeddings import embed_text_async, embed_texts_async
from app.core.errors import CapabilityError, PersonaNotFoundError
from app.core.logging import get_logger
from app.core.matching.embedding_cache import EmbeddingCache
from app.core.matching.information import clamp01
from app.core.matching.narrative import JurorNarrativeBuilder, build_persona_description
from app.core.schemas_matching import EmbeddingScore
from app.db.matching_store import MatchingStore

logger = get_logger(__name__)

TextEmbedder = Callable[[str], Awaitable[list[float]]]
BatchTextEmbedder = Callable[[list[str]], Awaitable[list[list[float]]]]

MIN_RICH_NARRATIVE_CHARS = 200
MIN_RICH_NARRATIVE_WORDS = 30
FULL_CONFIDENCE_CHARS = 2000


def cosine_similarity(vec_a: list[float], vec_b: list[float]) -> float:
    """Cosine similarity; 0 when either vector has zero magnitude."""
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Vectors must have the same length ({a.shape} vs {b.shape})")

    magnitude_a = float(np.linalg.norm(a))
    magnitude_b = float(np.linalg.norm(b))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return float(np.dot(a, b) / (magnitude_a * magnitude_b))


def narrative_confidence(narrative: str) -> float:
    """
    Confidence from narrative richness.

    Under 200 chars or 30 words: scales linearly up to 0.5.
    Otherwise: 0.5 rising to 1.0 as length approaches 2000 chars.
    """
    length = len(narrative)
    word_count = len(narrative.split())

    if length < MIN_RICH_NARRATIVE_CHARS or word_count < MIN_RICH_NARRATIVE_WORDS:
        return min(0.5, (length / (2 * MIN_RICH_NARRATIVE_CHARS)) * 0.5)

    richness = min(1.0, length / FULL_CONFIDENCE_CHARS)
    return 0.5 + richness * 0.5


def similarity_to_score(similarity: float) -> float:
    return clamp01((similarity + 1) / 2)


class EmbeddingScorer:
    """Semantic-similarity scorer with an explicit, injectable cache."""

    def __init__(
        self,
        store: MatchingStore,
        cache: EmbeddingCache | None = None,
        narrative_builder: JurorNarrativeBuilder | None = None,
        embed: TextEmbedder = embed_text_async,
        embed_many: BatchTextEmbedder = embed_texts_async,
    ):
        self.store = store
        if cache is None:
            cache = EmbeddingCache(narrative_ttl_seconds=get_settings().NARRATIVE_CACHE_TTL_SECONDS)
        self.cache = cache
        self.narrative_builder = narrative_builder or JurorNarrativeBuilder()
        self._embed = embed
        self._embed_many = embed_many

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def score_juror(self, juror_id: str, persona_id: str) -> EmbeddingScore:
        scores = await self.score_juror_against_personas(juror_id, [persona_id])
        if persona_id not in scores:
            raise PersonaNotFoundError(persona_id)
        return scores[persona_id]

    async def score_juror_against_personas(
        self, juror_id: str, persona_ids: list[str]
    ) -> dict[str, EmbeddingScore]:
        """
        Score the juror against every candidate persona.

        The narrative is built (or read from cache) once. An embedding
        capability failure yields degraded zero scores instead of raising;
        a persona that cannot be loaded is left out of the result.
        """
        narrative = await self.get_juror_narrative(juror_id)
        confidence = narrative_confidence(narrative)
        narrative_length = len(narrative)

        try:
            juror_embedding = await self._get_juror_embedding(juror_id, narrative)
        except CapabilityError as e:
            logger.warning(
                f"Juror embedding unavailable, degrading all personas: {e}",
                extra={"juror_id": juror_id},
            )
            return {
                persona_id: self._degraded(narrative_length) for persona_id in persona_ids
            }

        hits = sum(1 for pid in persona_ids if self.cache.has_persona_embedding(pid))
        results = await asyncio.gather(
            *(self.get_persona_embedding(pid) for pid in persona_ids),
            return_exceptions=True,
        )

        scores: dict[str, EmbeddingScore] = {}
        for persona_id, result in zip(persona_ids, results):
            if isinstance(result, CapabilityError):
                logger.warning(
                    f"Persona embedding unavailable: {result}",
                    extra={"juror_id": juror_id, "persona_id": persona_id},
                )
                scores[persona_id] = self._degraded(narrative_length)
                continue
            if isinstance(result, BaseException):
                logger.warning(
                    f"Embedding scoring failed for persona {persona_id}: {result}",
                    extra={"juror_id": juror_id, "persona_id": persona_id},
                )
                continue

            try:
                similarity = (
                    0.0 if juror_embedding is None else cosine_similarity(juror_embedding, result)
                )
            except ValueError as e:
                # Stale vector from a previous embedding model; re-embedded on next call
                logger.warning(
                    f"Dropping mismatched persona embedding: {e}",
                    extra={"juror_id": juror_id, "persona_id": persona_id},
                )
                self.cache.invalidate_persona(persona_id)
                scores[persona_id] = self._degraded(narrative_length)
                continue

            scores[persona_id] = EmbeddingScore(
                score=similarity_to_score(similarity),
                confidence=confidence,
                narrative_length=narrative_length,
            )

        logger.debug(
            f"Embedding batch: {len(persona_ids)} personas, "
            f"cache={hits} hit/{len(persona_ids) - hits} miss, narrative={narrative_length} chars",
            extra={"juror_id": juror_id},
        )
        return scores

    @staticmethod
    def _degraded(narrative_length: int) -> EmbeddingScore:
        return EmbeddingScore(
            score=0.0, confidence=0.0, narrative_length=narrative_length, degraded=True
        )

    # ------------------------------------------------------------------
    # Narrative and embeddings
    # ------------------------------------------------------------------

    async def get_juror_narrative(self, juror_id: str) -> str:
        """Cached narrative, rebuilt after the TTL. Unknown jurors give ''."""
        cached = self.cache.get_narrative(juror_id)
        if cached is not None:
            return cached

        juror, juror_signals = await asyncio.gather(
            self.store.get_juror(juror_id),
            self.store.list_juror_signals(juror_id),
        )
        if juror is None:
            logger.warning("Juror not found, using empty narrative", extra={"juror_id": juror_id})
            return ""

        narrative = self.narrative_builder.build_narrative(juror, juror_signals)
        self.cache.set_narrative(juror_id, narrative)
        return narrative

    async def _get_juror_embedding(self, juror_id: str, narrative: str) -> list[float] | None:
        if not narrative.strip():
            return None

        entry = self.cache.get_narrative_entry(juror_id)
        if entry is not None and entry.narrative == narrative and entry.embedding is not None:
            return entry.embedding

        embedding = await self._embed_or_raise(narrative)
        if entry is not None and entry.narrative == narrative:
            entry.embedding = embedding
        return embedding

    async def get_persona_embedding(self, persona_id: str) -> list[float]:
        cached = self.cache.get_persona_embedding(persona_id)
        if cached is not None:
            return cached

        persona = await self.store.get_persona(persona_id)
        if persona is None:
            raise PersonaNotFoundError(persona_id)

        logger.debug(
            f"Embedding persona {persona.name} (cache miss)", extra={"persona_id": persona_id}
        )
        embedding = await self._embed_or_raise(build_persona_description(persona))
        self.cache.set_persona_embedding(persona_id, embedding)
        return embedding

    async def _embed_or_raise(self, text: str) -> list[float]:
        try:
            return await self._embed(text)
        except CapabilityError:
            raise
        except Exception as e:
            raise CapabilityError(f"Embedding failed: {e}") from e

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    async def preload_persona_embeddings(
        self,
        persona_ids: list[str] | None = None,
        batch_size: int | None = None,
    ) -> int:
        """
        Warm the persona cache in batches.

        Already-cached personas are skipped. A failed batch is logged and
        the remaining batches still run; those personas load on demand later.

        Returns:
            Number of persona embeddings added to the cache
        """
        if persona_ids is None:
            persona_ids = await self.store.list_active_persona_ids()
        batch_size = batch_size or get_settings().PERSONA_PRELOAD_BATCH_SIZE

        uncached = [pid for pid in persona_ids if not self.cache.has_persona_embedding(pid)]
        logger.info(
            f"Preloading persona embeddings: {len(persona_ids)} personas, "
            f"{len(persona_ids) - len(uncached)} already cached"
        )
        if not uncached:
            return 0

        personas = await self.store.get_personas(uncached)
        ordered = [personas[pid] for pid in uncached if pid in personas]

        loaded = 0
        failed_batches = 0
        for start in range(0, len(ordered), batch_size):
            batch = ordered[start : start + batch_size]
            try:
                vectors = await self._embed_many([build_persona_description(p) for p in batch])
            except Exception as e:
                failed_batches += 1
                logger.warning(f"Preload batch {start // batch_size + 1} failed: {e}")
                continue

            for persona, vector in zip(batch, vectors):
                self.cache.set_persona_embedding(persona.id, vector)
                loaded += 1

        logger.info(
            f"Preloaded {loaded}/{len(uncached)} persona embeddings ({failed_batches} failed batches)"
        )
        return loaded

    def invalidate_persona(self, persona_id: str | None = None) -> None:
        self.cache.invalidate_persona(persona_id)

    def invalidate_juror(self, juror_id: str | None = None) -> None:
        self.cache.invalidate_narrative(juror_id)

    def cache_stats(self) -> dict[str, int]:
        return self.cache.stats()
