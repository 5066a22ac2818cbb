"""
LLM Provider Manager with cooldown-aware failover.

Builds pydantic-ai model instances for the configured provider and manages
provider health. Class-level cooldown state is shared across all instances,
so a rate-limited provider is skipped by every caller for the cooldown.

LLM_PROVIDER selects one of: gemini | groq | glm | fallback (every provider
with credentials, in that order, behind a FallbackModel).
"""

import logging
import threading
import time
from typing import Dict, List, Tuple

from pydantic_ai.models import Model
from pydantic_ai.models.fallback import FallbackModel
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.groq import GroqModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.groq import GroqProvider
from pydantic_ai.providers.openai import OpenAIProvider

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

PROVIDER_ORDER = ["gemini", "groq", "glm"]


class ProviderManager:
    """Manages LLM provider lifecycle with cooldown-based failover."""

    _cooldown_until: Dict[str, float] = {}
    _failure_counts: Dict[str, int] = {}  # For exponential backoff
    _RATELIMIT_COOLDOWN = 30.0  # Base 429 cooldown — actual = 30 * 2^(n-1), capped
    _RATELIMIT_MAX = 300.0
    _AUTH_COOLDOWN = 3600.0     # 401/402/403: effectively disabled for the run
    _lock = threading.Lock()

    def __init__(self, settings: Settings = None):
        self.settings = settings or get_settings()
        self._provider_order: List[str] = []

    # ── Model construction ───────────────────────────────────────────

    def _credentials(self) -> Dict[str, str]:
        return {
            "gemini": self.settings.gemini_api_key,
            "groq": self.settings.groq_api_key,
            "glm": self.settings.glm_api_key,
        }

    def _build(self, name: str) -> Model:
        if name == "gemini":
            return GoogleModel(
                self.settings.gemini_model,
                provider=GoogleProvider(api_key=self.settings.gemini_api_key),
            )
        if name == "groq":
            return GroqModel(
                self.settings.groq_model,
                provider=GroqProvider(api_key=self.settings.groq_api_key),
            )
        if name == "glm":
            # Modal-hosted GLM speaks the OpenAI chat completions protocol
            return OpenAIChatModel(
                self.settings.glm_model,
                provider=OpenAIProvider(
                    base_url=self.settings.glm_base_url,
                    api_key=self.settings.glm_api_key,
                ),
            )
        raise ValueError(f"Unknown LLM provider: {name}")

    def _get_available_providers(self) -> List[Tuple[str, Model]]:
        """Ordered (name, model) list, skipping unconfigured and cooled-down providers."""
        selected = self.settings.llm_provider.lower()
        names = PROVIDER_ORDER if selected == "fallback" else [selected]
        creds = self._credentials()
        now = time.time()

        providers = []
        for name in names:
            if not creds.get(name):
                continue
            if self._is_cooling_down(name, now):
                logger.debug(f"{name}: in cooldown, skipping")
                continue
            providers.append((name, self._build(name)))
        self._provider_order = [name for name, _ in providers]
        return providers

    def get_model(self) -> Model:
        """Current model: a single provider, or a FallbackModel chain."""
        available = self._get_available_providers()
        if not available:
            raise RuntimeError("No LLM providers available (all in cooldown or unconfigured)")
        if len(available) == 1:
            return available[0][1]
        models = [m for _, m in available]
        return FallbackModel(models[0], *models[1:])

    def get_provider_names(self) -> List[str]:
        """Provider order of the last get_model() call."""
        return list(self._provider_order)

    # ── Health tracking ──────────────────────────────────────────────

    def _is_cooling_down(self, name: str, now: float) -> bool:
        return self._cooldown_until.get(name, 0.0) > now

    def record_failure(self, provider_name: str, error: BaseException) -> None:
        """Record a provider failure with the matching cooldown."""
        error_str = str(error)
        with self._lock:
            now = time.time()
            if any(code in error_str for code in ("401", "402", "403")):
                logger.warning(f"{provider_name}: auth/billing failure — disabled for this run")
                self._cooldown_until[provider_name] = now + self._AUTH_COOLDOWN
            elif "429" in error_str or "RESOURCE_EXHAUSTED" in error_str:
                count = self._failure_counts.get(provider_name, 0) + 1
                self._failure_counts[provider_name] = count
                cooldown = min(self._RATELIMIT_COOLDOWN * (2 ** (count - 1)), self._RATELIMIT_MAX)
                logger.info(f"{provider_name}: Rate limited — {int(cooldown)}s cooldown (#{count})")
                self._cooldown_until[provider_name] = now + cooldown
            else:
                logger.debug(f"{provider_name}: transient failure ({error_str[:120]})")

    def infer_provider(self, error: BaseException) -> str:
        """Best-effort mapping of an exception back to a provider name."""
        text = f"{type(error).__module__} {error}".lower()
        for name in self._provider_order:
            if name in text:
                return name
        return self._provider_order[0] if self._provider_order else "unknown"

    @classmethod
    def reset(cls) -> None:
        """Clear all cooldowns. Useful for testing or config changes."""
        with cls._lock:
            cls._cooldown_until.clear()
            cls._failure_counts.clear()
