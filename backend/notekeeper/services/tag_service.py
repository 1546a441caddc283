"""
NoteKeeper Backend: Tag Generation
====================================

What:  Turns note details into a list of tag names via the completion service.
How:   One completion call with a fixed instruction, then a strict parse of the
       returned text. `TagGenerator.generate()` never raises: every failure is
       converted into a one-element sentinel list so note persistence always
       proceeds.

Outcome Table:
    transport failure / circuit open            → ["ErrorFetchingTags"]
    unreadable envelope, bad JSON, non-strings  → ["ErrorParsingTags"]
    empty content, or not wrapped in [...]      → ["InvalidTagsFormat"]
    []                                          → ["NoTagsGenerated"]
    ["a", "b", ...]                             → returned unmodified

Markdown fences (```json ... ```) around the array are stripped first; models
add them even when told not to.
"""

import json
import logging
import re
from typing import List

from notekeeper.exceptions import (
    CircuitBreakerOpenError,
    CompletionResponseError,
    CompletionTransportError,
)
from notekeeper.services.llm_base import CircuitBreaker, CompletionService

logger = logging.getLogger(__name__)

TAG_INSTRUCTION = (
    "Generate 3-5 relevant one-word tags for the given note details. "
    "Always return a valid JSON array of strings and nothing else."
)

# ── Sentinel Tags ─────────────────────────────────────────────────────────
ERROR_FETCHING_TAGS = "ErrorFetchingTags"
ERROR_PARSING_TAGS = "ErrorParsingTags"
INVALID_TAGS_FORMAT = "InvalidTagsFormat"
NO_TAGS_GENERATED = "NoTagsGenerated"

SENTINEL_TAGS = frozenset(
    {ERROR_FETCHING_TAGS, ERROR_PARSING_TAGS, INVALID_TAGS_FORMAT, NO_TAGS_GENERATED}
)


# Opening fence with any language word (```json, ```JSON, ```javascript), or the closing fence
_FENCE_PATTERN = re.compile(r"^```[\w+-]*\s*|\s*```$")


def strip_code_fences(content: str) -> str:
    return _FENCE_PATTERN.sub("", content.strip()).strip()


def parse_tag_content(content: str) -> List[str]:
    """
    Parse the model's message content into tag names.

    Never raises. Returns either the model's list unmodified or a single
    sentinel describing why it could not be used.
    """
    cleaned = strip_code_fences(content or "")
    if not cleaned or not (cleaned.startswith("[") and cleaned.endswith("]")):
        return [INVALID_TAGS_FORMAT]

    try:
        parsed = json.loads(cleaned)
    except ValueError:
        return [ERROR_PARSING_TAGS]

    if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
        return [ERROR_PARSING_TAGS]
    if not parsed:
        return [NO_TAGS_GENERATED]
    return parsed


class TagGenerator:
    """
    Generates tags for note text.

    Usage:
        generator = TagGenerator(OpenAICompletionService(...))
        tags = await generator.generate("Buy milk and eggs on the way home")
    """

    def __init__(self, completion_service: CompletionService, instruction: str = TAG_INSTRUCTION):
        self.completion_service = completion_service
        self.instruction = instruction

    async def generate(self, text: str) -> List[str]:
        try:
            content = await self.completion_service.complete(self.instruction, text)
        except CircuitBreakerOpenError as e:
            logger.warning("Tag generation skipped: %s", e.message)
            return [ERROR_FETCHING_TAGS]
        except CompletionTransportError as e:
            logger.warning("Tag generation failed to reach the completion service: %s", e.message)
            return [ERROR_FETCHING_TAGS]
        except CompletionResponseError as e:
            logger.warning("Tag generation could not read the completion response: %s", e.message)
            return [ERROR_PARSING_TAGS]
        except Exception as e:
            logger.error("Unexpected error during tag generation: %s", str(e), exc_info=True)
            return [ERROR_FETCHING_TAGS]

        tags = parse_tag_content(content)
        if len(tags) == 1 and tags[0] in SENTINEL_TAGS:
            logger.warning("Tag generation produced sentinel %s", tags[0])
        else:
            logger.info("Generated %d tags", len(tags))
        return tags

    async def health_check(self) -> str:
        """available, unavailable or circuit_open (for GET /health)."""
        if self.completion_service.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        try:
            healthy = await self.completion_service.health_check()
        except Exception as e:
            logger.warning("Completion health check raised: %s", str(e))
            healthy = False
        return "available" if healthy else "unavailable"

    async def aclose(self) -> None:
        await self.completion_service.aclose()


def build_completion_service(settings) -> CompletionService:
    """Construct the configured provider from settings."""
    if settings.completion_provider == "gemini":
        from notekeeper.services.gemini_service import GeminiCompletionService

        return GeminiCompletionService(
            api_key=settings.completion_api_key,
            model=settings.completion_model,
            timeout=settings.completion_timeout,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    from notekeeper.services.openai_service import OpenAICompletionService

    return OpenAICompletionService(
        endpoint=settings.completion_endpoint,
        api_key=settings.completion_api_key,
        model=settings.completion_model,
        timeout=settings.completion_timeout,
        temperature=settings.completion_temperature,
        max_tokens=settings.completion_max_tokens,
        failure_threshold=settings.cb_failure_threshold,
        recovery_timeout=settings.cb_recovery_timeout,
    )
