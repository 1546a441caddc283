"""
NoteKeeper Backend: Google Gemini Completion Service
======================================================

What:  CompletionService backed by Google Gemini through google-generativeai.
How:   Sends [instruction, note text] to `GenerativeModel.generate_content_async`.

Failure classification:
    SDK raises (network, quota, auth, timeout)   → CompletionTransportError
    response.text unreadable (blocked, no parts) → CompletionResponseError

Selected with COMPLETION_PROVIDER=gemini; COMPLETION_MODEL then names a
Gemini model (for example gemini-1.5-flash).
"""

import logging

import google.generativeai as genai

from notekeeper.exceptions import CompletionResponseError, CompletionTransportError
from notekeeper.services.llm_base import CompletionService

logger = logging.getLogger(__name__)


class GeminiCompletionService(CompletionService):
    """Gemini text completion. One generate_content_async call per request."""

    provider_name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        timeout: float = 30.0,
        temperature: float = 0.5,
        max_tokens: int = 50,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
    ):
        super().__init__(failure_threshold=failure_threshold, recovery_timeout=recovery_timeout)
        # The SDK keeps credentials in module-level state
        if api_key:
            genai.configure(api_key=api_key)

        self.model_name = model
        self.timeout = timeout
        self.model = genai.GenerativeModel(model)
        self.generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
        }

        logger.info(
            "GeminiCompletionService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            model,
            failure_threshold,
            recovery_timeout,
        )

    async def _request_completion(self, instruction: str, text: str) -> str:
        try:
            response = await self.model.generate_content_async(
                [instruction, text],
                generation_config=self.generation_config,
                request_options={"timeout": self.timeout},
            )
        except Exception as e:
            # google.api_core raises a wide family of exception types
            raise CompletionTransportError(
                message=f"Gemini request failed: {type(e).__name__}",
                context={"error": str(e)},
            ) from e

        try:
            content = response.text
        except (ValueError, AttributeError, IndexError) as e:
            raise CompletionResponseError(
                message="Gemini response has no readable text",
                context={"error": str(e)},
            ) from e

        return content or ""

    async def health_check(self) -> bool:
        """Lists models (no token cost) to verify key and connectivity."""
        try:
            models = genai.list_models()
            names = [m.name for m in models]
            target = f"models/{self.model_name}"
            if target not in names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
