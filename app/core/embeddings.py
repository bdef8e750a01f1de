"""Text-embedding capability backed by the OpenAI embeddings API.

The embedding scorer relies on identical text mapping to the identical
vector, which holds for a fixed model. Every vector is checked against
EMBEDDING_DIM so a model swap cannot silently mix dimensions in the cache.
"""

import asyncio
from functools import lru_cache

from openai import OpenAI

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# OpenAI accepts at most 2048 inputs per embeddings request
MAX_INPUTS_PER_REQUEST = 2048


@lru_cache(maxsize=1)
def _get_client() -> OpenAI:
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def _check_dimensions(vectors: list[list[float]], expected: int, offset: int) -> None:
    for i, vector in enumerate(vectors):
        if len(vector) != expected:
            raise ValueError(
                f"Embedding dimension mismatch for text {offset + i}: "
                f"expected {expected}, got {len(vector)}"
            )


def embed_texts(texts: list[str]) -> list[list[float]]:
    """
    Embed texts with the configured model, in input order.

    Args:
        texts: Texts to embed

    Returns:
        One vector per text

    Raises:
        ValueError: If a vector has the wrong dimension or the count is off
        Exception: If the OpenAI API call fails
    """
    if not texts:
        return []

    settings = get_settings()
    client = _get_client()
    vectors: list[list[float]] = []

    try:
        for start in range(0, len(texts), MAX_INPUTS_PER_REQUEST):
            chunk = texts[start : start + MAX_INPUTS_PER_REQUEST]
            response = client.embeddings.create(model=settings.EMBEDDING_MODEL, input=chunk)

            chunk_vectors = [item.embedding for item in response.data]
            if len(chunk_vectors) != len(chunk):
                raise ValueError(
                    f"Expected {len(chunk)} embeddings, got {len(chunk_vectors)}"
                )
            _check_dimensions(chunk_vectors, settings.EMBEDDING_DIM, start)
            vectors.extend(chunk_vectors)

    except Exception as e:
        logger.error(f"Failed to generate embeddings: {e}")
        raise

    logger.debug(
        f"Embedded {len(vectors)} texts with {settings.EMBEDDING_MODEL}",
        extra={"model": settings.EMBEDDING_MODEL, "count": len(vectors)},
    )
    return vectors


async def embed_texts_async(texts: list[str]) -> list[list[float]]:
    """Async wrapper around embed_texts using thread pool."""
    return await asyncio.to_thread(embed_texts, texts)


async def embed_text_async(text: str) -> list[float]:
    """Embed one text."""
    vectors = await embed_texts_async([text])
    return vectors[0]
