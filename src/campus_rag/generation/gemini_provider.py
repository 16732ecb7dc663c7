"""Google Gemini LLM provider using the google-genai SDK."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

from google import genai
from google.genai import types

from campus_rag.config.settings import Settings
from campus_rag.exceptions import GenerationError
from campus_rag.generation.prompt_templates import (
    ANSWER_RULES,
    build_system_prompt,
    resolve_prompt,
)
from campus_rag.observability.logger import get_logger

logger = get_logger("gemini")

_ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiProvider:
    def __init__(self, settings: Settings) -> None:
        self._client = genai.Client(api_key=settings.google_api_key)
        self._model = settings.gemini_model
        self._settings = settings

    async def generate_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = 256,
    ) -> str:
        try:
            config = types.GenerateContentConfig(
                temperature=self._settings.gemini_temperature,
                top_p=self._settings.gemini_top_p,
                max_output_tokens=max_tokens or self._settings.gemini_max_tokens,
            )
            if system_prompt:
                config.system_instruction = system_prompt

            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=user_prompt,
                config=config,
            )
            return response.text or ""
        except Exception as e:
            raise GenerationError(f"Gemini completion failed: {e}") from e

    async def stream_response(
        self,
        query: str,
        reference_text: str,
        history: list[dict[str, str]],
    ) -> AsyncIterator[str]:
        system = build_system_prompt(
            rules=resolve_prompt(self._settings.answer_rules, ANSWER_RULES),
            reference_text=reference_text,
            reference_start=self._settings.reference_start,
            reference_end=self._settings.reference_end,
        )
        config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=self._settings.gemini_temperature,
            top_p=self._settings.gemini_top_p,
            max_output_tokens=self._settings.gemini_max_tokens,
        )
        contents = [
            types.Content(role=_ROLE_MAP.get(m["role"], "user"), parts=[types.Part(text=m["content"])])
            for m in history
            if m.get("content")
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=query)]))

        logger.info(
            "stream_started",
            model=self._model,
            reference_len=len(reference_text),
            history=len(history),
        )
        try:
            stream = await self._client.aio.models.generate_content_stream(
                model=self._model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            raise GenerationError(f"Gemini streaming failed: {e}") from e

        async with aclosing(stream):
            try:
                async for chunk in stream:
                    if chunk.text:
                        yield chunk.text
            except Exception as e:
                raise GenerationError(f"Gemini stream interrupted: {e}") from e
