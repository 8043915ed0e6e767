from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import google.generativeai as genai

from ..workflows.exceptions import ConfigurationError, GenerationError

logger = logging.getLogger("competitor_scrape.llm")


class GeminiClient:
    """Thin async wrapper over the Gemini SDK returning plain response text."""

    def __init__(self, api_key: Optional[str], model_name: str = "gemini-1.5-pro") -> None:
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY environment variable is not set")
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self._models: Dict[str, Any] = {}

    def _model(self, model_name: str) -> Any:
        model = self._models.get(model_name)
        if model is None:
            model = genai.GenerativeModel(model_name)
            self._models[model_name] = model
        return model

    async def generate(
        self,
        prompt: str,
        *,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        name = model_name or self.model_name
        config: Dict[str, Any] = {}
        if temperature is not None:
            config["temperature"] = temperature
        if max_output_tokens is not None:
            config["max_output_tokens"] = max_output_tokens

        logger.info("gemini.request model=%s prompt_chars=%s", name, len(prompt))
        try:
            response = await self._model(name).generate_content_async(
                prompt,
                generation_config=genai.GenerationConfig(**config) if config else None,
            )
            text = response.text
        except Exception as exc:
            logger.error("gemini.failed model=%s error=%s", name, exc)
            raise GenerationError(f"Gemini request failed: {exc}") from exc

        preview = (text or "")[:100].replace("\n", "\\n")
        logger.debug("gemini.response model=%s preview=%s", name, preview)
        return text or ""
