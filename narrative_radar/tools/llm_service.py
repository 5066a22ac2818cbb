"""
LLM Service — pydantic-ai backed structured generation.

Two tracks:
  Track A: typed structured output (pydantic-ai validates against the model)
  Track B: plain text → json_repair → model_validate, for providers that
           reject forced tool calls or return fenced/truncated JSON

Callers (synthesis, idea generation) only use generate_model(); it tries
Track A and falls through to Track B on any failure.
"""

import logging
import time
from typing import Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic_ai import Agent
from pydantic_ai.settings import ModelSettings

from ..config import Settings, get_settings
from . import json_repair
from .provider_manager import ProviderManager

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_JSON_INSTRUCTION = "\nYou must respond with valid JSON only. No markdown, no explanation."


class LLMService:
    """High-level LLM access with agent caching and provider cooldowns."""

    # Cache agents by (output_type, system_prompt_hash, retries, cooldown state)
    _agent_cache: Dict[tuple, Agent] = {}

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.provider_manager = ProviderManager(settings=self.settings)
        self.last_provider: Optional[str] = None

    def _get_or_create_agent(self, output_type: type, system_prompt: str, retries: int) -> Agent:
        """Cached Agent; the key includes cooldown state so a cooled-down
        provider drops out of the FallbackModel chain."""
        now = time.time()
        cooldown_key = frozenset(
            name for name, until in ProviderManager._cooldown_until.items() if until > now
        )
        key = (output_type, hash(system_prompt), retries, cooldown_key)
        if key not in self._agent_cache:
            model = self.provider_manager.get_model()
            self._agent_cache[key] = Agent(
                model,
                output_type=output_type,
                system_prompt=system_prompt,
                retries=retries,
            )
        return self._agent_cache[key]

    # ── Track A: typed structured output ────────────────────────────

    async def run_structured(
        self,
        prompt: str,
        system_prompt: str = "",
        output_type: Type[T] = str,  # type: ignore[assignment]
        retries: Optional[int] = None,
        temperature: float = 0.3,
    ) -> T:
        """Generate output validated by pydantic-ai.

        Raises:
            RuntimeError: every provider in the chain failed.
        """
        retries = self.settings.llm_json_max_retries if retries is None else retries
        agent = self._get_or_create_agent(output_type, system_prompt, retries)
        try:
            result = await agent.run(
                prompt,
                model_settings=ModelSettings(temperature=temperature),
            )
        except ExceptionGroup as eg:  # FallbackExceptionGroup
            self._process_failures(eg)
            raise RuntimeError(f"All LLM providers failed: {eg}") from eg
        except Exception as e:
            self._process_failures(e)
            raise
        self.last_provider = self._extract_provider_name(result)
        return result.output

    # ── Track A → Track B ────────────────────────────────────────────

    async def generate_model(
        self,
        prompt: str,
        output_type: Type[T],
        system_prompt: str = "",
        temperature: float = 0.3,
    ) -> T:
        """Structured output with a text + JSON repair fallback.

        Raises:
            RuntimeError / json_repair.LLMJSONError / ValidationError when
            both tracks fail; callers treat any of these as a synthesis failure.
        """
        try:
            return await self.run_structured(
                prompt=prompt,
                system_prompt=system_prompt,
                output_type=output_type,
                temperature=temperature,
            )
        except Exception as e:
            logger.warning(f"Track A failed for {output_type.__name__}, falling through to Track B: {e}")

        text = await self.run_structured(
            prompt=prompt,
            system_prompt=system_prompt + _JSON_INSTRUCTION,
            output_type=str,
            temperature=temperature,
        )
        data = json_repair.parse_json_object(text)
        try:
            return output_type.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Track B output failed {output_type.__name__} validation: {e.error_count()} errors")
            raise

    # ── Internal helpers ─────────────────────────────────────────────

    def _process_failures(self, error: BaseException) -> None:
        """Record cooldowns for every provider that failed."""
        exceptions = getattr(error, "exceptions", [error])
        for exc in exceptions:
            provider_name = self.provider_manager.infer_provider(exc)
            logger.warning(f"  {provider_name}: {str(exc)[:150]}")
            self.provider_manager.record_failure(provider_name, exc)

    def _extract_provider_name(self, result) -> str:
        for msg in reversed(result.all_messages()):
            model_name = getattr(msg, "model_name", None)
            if model_name:
                return model_name
        names = self.provider_manager.get_provider_names()
        return names[0] if names else "unknown"

    @classmethod
    def clear_cache(cls) -> None:
        """Clear agent cache. Useful for testing or config changes."""
        cls._agent_cache.clear()
