"""
NoteKeeper Backend: OpenAI-Compatible Completion Service
==========================================================

What:  CompletionService backed by a chat-completions HTTP endpoint
       (OpenAI, Azure OpenAI, or any compatible gateway).
How:   One POST per call through a shared httpx.AsyncClient. The response
       is classified in two steps:

           transport   httpx.HTTPError or non-2xx status → CompletionTransportError
           envelope    body must be JSON with choices[0].message.content
                       as a string (or null) → otherwise CompletionResponseError

Request body:
    {
        "model": "<completion_model>",
        "messages": [
            {"role": "system", "content": <instruction>},
            {"role": "user",   "content": <note text>}
        ],
        "temperature": 0.5,
        "max_tokens": 50
    }

The credential is sent as both `api-key` (Azure) and `Authorization: Bearer`
(OpenAI); each service ignores the header it does not use.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from notekeeper.exceptions import CompletionResponseError, CompletionTransportError
from notekeeper.services.llm_base import CompletionService

logger = logging.getLogger(__name__)


class OpenAICompletionService(CompletionService):
    """Chat-completions client. Owns its httpx client unless one is injected."""

    provider_name = "openai"

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        temperature: float = 0.5,
        max_tokens: int = 50,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(failure_threshold=failure_threshold, recovery_timeout=recovery_timeout)
        self.endpoint = endpoint
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

        logger.info(
            "OpenAICompletionService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            model,
            failure_threshold,
            recovery_timeout,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "api-key": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    def _payload(self, instruction: str, text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": instruction},
                {"role": "user", "content": text},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def _request_completion(self, instruction: str, text: str) -> str:
        if not self.endpoint:
            raise CompletionTransportError(message="Completion endpoint is not configured")

        try:
            response = await self._client.post(
                self.endpoint,
                json=self._payload(instruction, text),
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise CompletionTransportError(
                message=f"Completion request failed: {type(e).__name__}",
                context={"error": str(e)},
            ) from e

        if not response.is_success:
            raise CompletionTransportError(
                message=f"Completion service responded with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        return self._extract_content(response)

    @staticmethod
    def _extract_content(response: httpx.Response) -> str:
        """Pull choices[0].message.content out of the envelope."""
        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionResponseError(
                message="Completion response did not match the chat-completions envelope",
                context={"error_type": type(e).__name__},
            ) from e

        if content is None:
            return ""
        if not isinstance(content, str):
            raise CompletionResponseError(
                message="Completion message content is not text",
                context={"content_type": type(content).__name__},
            )
        return content

    async def health_check(self) -> bool:
        """
        Configuration-level check.

        Chat-completions endpoints have no free health call, so this only reports
        whether a request could be attempted at all.
        """
        return bool(self.endpoint and self.api_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
