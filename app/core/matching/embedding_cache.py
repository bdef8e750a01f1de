"""Caches owned by the embedding scorer.

Persona embeddings never expire; personas are near-static, so whoever
edits a persona must call ``invalidate_persona``. Juror narratives (and
the vector computed from them) live for a fixed TTL, which keeps one voir
dire session from rebuilding the same narrative over and over.
"""

import time
from dataclasses import dataclass
from typing import Callable

DEFAULT_NARRATIVE_TTL_SECONDS = 60 * 60


@dataclass
class NarrativeEntry:
    narrative: str
    stored_at: float
    embedding: list[float] | None = None


class EmbeddingCache:
    """Persona-embedding cache plus TTL-bound juror-narrative cache."""

    def __init__(
        self,
        narrative_ttl_seconds: float = DEFAULT_NARRATIVE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.narrative_ttl_seconds = narrative_ttl_seconds
        self._clock = clock
        self._persona_embeddings: dict[str, list[float]] = {}
        self._narratives: dict[str, NarrativeEntry] = {}

    # Persona embeddings

    def get_persona_embedding(self, persona_id: str) -> list[float] | None:
        return self._persona_embeddings.get(persona_id)

    def has_persona_embedding(self, persona_id: str) -> bool:
        return persona_id in self._persona_embeddings

    def set_persona_embedding(self, persona_id: str, embedding: list[float]) -> None:
        self._persona_embeddings[persona_id] = embedding

    def invalidate_persona(self, persona_id: str | None = None) -> None:
        """Drop one persona's embedding, or all of them when persona_id is None."""
        if persona_id is None:
            self._persona_embeddings.clear()
        else:
            self._persona_embeddings.pop(persona_id, None)

    # Juror narratives

    def get_narrative_entry(self, juror_id: str) -> NarrativeEntry | None:
        """Live entry for the juror, evicting it if the TTL has passed."""
        entry = self._narratives.get(juror_id)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.narrative_ttl_seconds:
            del self._narratives[juror_id]
            return None
        return entry

    def get_narrative(self, juror_id: str) -> str | None:
        entry = self.get_narrative_entry(juror_id)
        return entry.narrative if entry else None

    def set_narrative(self, juror_id: str, narrative: str) -> NarrativeEntry:
        entry = NarrativeEntry(narrative=narrative, stored_at=self._clock())
        self._narratives[juror_id] = entry
        return entry

    def invalidate_narrative(self, juror_id: str | None = None) -> None:
        """Drop one juror's narrative, or all of them when juror_id is None."""
        if juror_id is None:
            self._narratives.clear()
        else:
            self._narratives.pop(juror_id, None)

    def clear(self) -> None:
        self._persona_embeddings.clear()
        self._narratives.clear()

    def stats(self) -> dict[str, int]:
        return {
            "persona_embeddings_cached": len(self._persona_embeddings),
            "juror_narratives_cached": len(self._narratives),
        }
