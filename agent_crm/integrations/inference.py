"""Generative inference integration via the CrewAI LLM wrapper."""

import asyncio
import logging
from typing import Dict, List, Optional

from crewai import LLM

from agent_crm.core.config import get_settings
from agent_crm.core.exceptions import InferenceError

logger = logging.getLogger(__name__)


class InferenceService:
    """
    Black-box text generation: generate(system, user, temperature, max_tokens) -> text.

    The CrewAI LLM call is blocking, so it runs in a worker thread with
    asyncio.to_thread() and is bounded by LLM_TIMEOUT_SECONDS.
    Every failure mode (network, non-2xx, empty candidates, timeout)
    surfaces as InferenceError.
    """

    def __init__(self):
        """Initialize service with lazy-loaded settings."""
        self._settings = None

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def is_available(self) -> bool:
        """Check if inference is configured."""
        return bool(self.settings.GEMINI_API_KEY)

    def _build_llm(self, temperature: float, max_tokens: int) -> LLM:
        return LLM(
            model=self.settings.LLM_MODEL,
            api_key=self.settings.GEMINI_API_KEY,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self.settings.LLM_TIMEOUT_SECONDS,
        )

    def _call(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        temperature: float,
        max_tokens: int
    ) -> str:
        """Blocking model call (runs in a worker thread)."""
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        llm = self._build_llm(temperature, max_tokens)
        return llm.call(messages)

    async def generate(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1024
    ) -> str:
        """
        Generate free text for a prompt.

        Args:
            system_prompt: Optional instruction framing the model's role
            user_prompt: The request itself
            temperature: Sampling temperature
            max_tokens: Output token budget

        Returns:
            Stripped model output, never empty

        Raises:
            InferenceError: on any upstream failure or an empty response
        """
        if not self.is_available():
            raise InferenceError("GEMINI_API_KEY not configured")

        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(
                    self._call,
                    system_prompt,
                    user_prompt,
                    temperature,
                    max_tokens
                ),
                timeout=self.settings.LLM_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError as e:
            logger.error("Inference call timed out")
            raise InferenceError(
                "Inference call timed out",
                details={"timeout_seconds": self.settings.LLM_TIMEOUT_SECONDS}
            ) from e
        except Exception as e:
            logger.error(f"Inference call failed: {e}")
            raise InferenceError("Inference call failed", details={"cause": str(e)}) from e

        if not text or not str(text).strip():
            logger.error("Inference returned no candidate text")
            raise InferenceError("Inference returned no candidate text")

        return str(text).strip()


# Singleton instance
inference_service = InferenceService()
