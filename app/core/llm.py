"""Text-generation client and LLM output parsing helpers.

Generation is only used to phrase rationales and voir dire questions.
Nothing in the scoring path depends on it: callers catch failures and
fall back to deterministic templates.
"""

import json
import re
import time
from typing import Awaitable, Callable

from app.core.config import get_settings
from app.core.errors import CapabilityError
from app.core.logging import get_logger

logger = get_logger(__name__)

# complete(prompt, max_tokens=..., temperature=...) -> text
TextCompleter = Callable[..., Awaitable[str]]


async def complete_text(
    prompt: str,
    max_tokens: int = 500,
    temperature: float = 0.3,
    model: str | None = None,
) -> str:
    """
    Run a single-turn completion against Anthropic.

    Args:
        prompt: User prompt
        max_tokens: Output token limit
        temperature: Sampling temperature
        model: Model override (defaults to MATCHING_LLM_MODEL)

    Returns:
        Stripped completion text

    Raises:
        CapabilityError: If no API key is configured or the call fails
    """
    settings = get_settings()
    if not settings.ANTHROPIC_API_KEY:
        raise CapabilityError("Text generation is not configured (ANTHROPIC_API_KEY unset)")

    from anthropic import AsyncAnthropic

    client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
    model_name = model or settings.MATCHING_LLM_MODEL

    try:
        start = time.time()
        response = await client.messages.create(
            model=model_name,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        duration_ms = int((time.time() - start) * 1000)
    except Exception as e:
        raise CapabilityError(f"Text generation failed: {e}") from e

    usage = getattr(response, "usage", None)
    logger.debug(
        f"Completion from {model_name} in {duration_ms}ms",
        extra={
            "model": model_name,
            "tokens_input": getattr(usage, "input_tokens", 0),
            "tokens_output": getattr(usage, "output_tokens", 0),
        },
    )

    if not response.content:
        raise CapabilityError("Text generation returned no content")
    return response.content[0].text.strip()


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict | list:
    """
    Parse LLM output as JSON, returning the raw decoded value.

    Some models double-encode JSON as a string; that case is unwrapped once.

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
    """
    cleaned = _strip_llm_fences(raw_output)
    parsed = json.loads(cleaned)
    if isinstance(parsed, str):
        parsed = json.loads(parsed)
    return parsed
