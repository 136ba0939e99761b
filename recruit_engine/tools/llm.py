"""
Language-model collaborator.

The model only phrases replies. It never sees raw store or vacancy ids
beyond what the prompt lists, and it never decides state transitions.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from openai import APIConnectionError, APIError, APITimeoutError, AsyncOpenAI, RateLimitError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recruit_engine.config import ModelConfig, settings
from recruit_engine.errors import LanguageModelError
from recruit_engine.schemas.conversation_schema import Message

logger = logging.getLogger(__name__)


class LanguageModel(ABC):
    @abstractmethod
    async def generate(self, system_prompt: str, history: list[Message], user_message: str) -> str:
        messages = build_chat_messages(system_prompt, history, user_message)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._config.llm_max_retries + 1),
                wait=wait_exponential(multiplier=1, min=1, max=8),
                retry=retry_if_exception_type((APIConnectionError, APITimeoutError, RateLimitError)),
                reraise=True,
            ):
                with attempt:
                    return await self._complete(messages)
        except APIError as exc:
            logger.error("Language model call failed: %s", exc)
            raise LanguageModelError("Language model call failed") from exc

    async def _complete(self, messages: list[dict[str, str]]) -> str:
        response = await self._client.chat.completions.create(
            model=self._config.llm_model,
            messages=messages,
            temperature=self._config.llm_temperature,
        )
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise LanguageModelError("Language model returned an empty reply")
        if response.usage is not None:
            logger.debug(
                "LLM usage: prompt=%d completion=%d",
                response.usage.prompt_tokens, response.usage.completion_tokens,
            )
        return content.strip()
