"""Tests for the text-embedding capability with a mocked OpenAI client."""

from unittest.mock import MagicMock, patch

import pytest

from app.core.embeddings import embed_text_async, embed_texts


def _embeddings_response(count: int, dimension: int = 1536):
    response = MagicMock()
    response.data = [MagicMock(embedding=[0.1] * dimension) for _ in range(count)]
    return response


@pytest.fixture
def mock_client():
    with patch("app.core.embeddings._get_client") as mock_get_client:
        client = MagicMock()
        mock_get_client.return_value = client
        yield client


def test_embeds_in_input_order(mock_client):
    mock_client.embeddings.create.return_value = _embeddings_response(2)

    vectors = embed_texts(["Juror narrative", "Persona description"])

    assert len(vectors) == 2
    assert all(len(v) == 1536 for v in vectors)
    kwargs = mock_client.embeddings.create.call_args.kwargs
    assert kwargs["input"] == ["Juror narrative", "Persona description"]


def test_empty_input_makes_no_request(mock_client):
    assert embed_texts([]) == []
    mock_client.embeddings.create.assert_not_called()


def test_dimension_mismatch_rejected(mock_client):
    mock_client.embeddings.create.return_value = _embeddings_response(1, dimension=512)

    with pytest.raises(ValueError, match="Embedding dimension mismatch for text 0"):
        embed_texts(["Persona: Analyst"])


def test_count_mismatch_rejected(mock_client):
    mock_client.embeddings.create.return_value = _embeddings_response(1)

    with pytest.raises(ValueError, match="Expected 2 embeddings"):
        embed_texts(["a", "b"])


def test_large_batches_are_chunked(mock_client):
    mock_client.embeddings.create.side_effect = lambda model, input: _embeddings_response(len(input))

    with patch("app.core.embeddings.MAX_INPUTS_PER_REQUEST", 2):
        vectors = embed_texts(["a", "b", "c", "d", "e"])

    assert len(vectors) == 5
    assert mock_client.embeddings.create.call_count == 3


def test_api_failure_propagates(mock_client):
    mock_client.embeddings.create.side_effect = Exception("API Error")

    with pytest.raises(Exception, match="API Error"):
        embed_texts(["Test text"])


@pytest.mark.asyncio
async def test_embed_text_async_returns_single_vector(mock_client):
    mock_client.embeddings.create.return_value = _embeddings_response(1)

    vector = await embed_text_async("Persona: Analyst")

    assert len(vector) == 1536
