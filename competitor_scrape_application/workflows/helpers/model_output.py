from __future__ import annotations

import logging
from typing import Any, Optional

from ..exceptions import ConfigurationError, ExtractionError, GenerationError
from .text_extract import DEFAULT_EXPECT, Expect, extract_json

logger = logging.getLogger("competitor_scrape.llm")

# Errors a use case absorbs into its rule-based fallback.
MODEL_FALLBACK_ERRORS = (ConfigurationError, GenerationError, ExtractionError)


async def generate_text(llm: Any, prompt: str, **options: Any) -> str:
    if llm is None:
        raise ConfigurationError("GEMINI_API_KEY environment variable is not set")
    return await llm.generate(prompt, **options)


async def generate_json(
    llm: Any,
    prompt: str,
    *,
    expect: Expect = DEFAULT_EXPECT,
    model_name: Optional[str] = None,
    temperature: Optional[float] = None,
    max_output_tokens: Optional[int] = None,
) -> Any:
    """Ask the model for a JSON payload and extract it from the response text."""

    text = await generate_text(
        llm,
        prompt,
        model_name=model_name,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
    )
    return extract_json(text, expect)


def string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(entry).strip() for entry in value if entry is not None and str(entry).strip()]


def log_model_fallback(operation: str, exc: Exception) -> None:
    logger.warning("llm.fallback operation=%s error_type=%s error=%s", operation, type(exc).__name__, exc)
