"""
NoteKeeper Backend: Tag Generation Tests
==========================================

What we test:
    ✅ parse_tag_content maps every malformed shape to the right sentinel
    ✅ Markdown fences are stripped before parsing
    ✅ TagGenerator.generate never raises, whatever the completion service does
    ✅ An open circuit short-circuits without calling the service
    ✅ health_check reports available / unavailable / circuit_open
"""

import pytest

from conftest import StubCompletionService
from notekeeper.exceptions import CompletionResponseError, CompletionTransportError
from notekeeper.services.tag_service import (
    ERROR_FETCHING_TAGS,
    ERROR_PARSING_TAGS,
    INVALID_TAGS_FORMAT,
    NO_TAGS_GENERATED,
    TAG_INSTRUCTION,
    TagGenerator,
    parse_tag_content,
)


class TestParseTagContent:
    """The content → tags table, one row per case."""

    def test_plain_array_returned_unmodified(self):
        assert parse_tag_content('["Groceries", "milk", "Eggs"]') == ["Groceries", "milk", "Eggs"]

    def test_json_fence_is_stripped(self):
        content = '```json\n["shopping", "food"]\n```'
        assert parse_tag_content(content) == ["shopping", "food"]

    def test_bare_fence_is_stripped(self):
        assert parse_tag_content('```["a"]```') == ["a"]

    @pytest.mark.parametrize(
        "content",
        [
            '```JSON\n["a", "b"]\n```',
            '```javascript\n["a", "b"]\n```',
            '```json5 ["a", "b"]```',
            '  ```\n["a", "b"]\n```  ',
        ],
    )
    def test_any_fence_language_is_stripped(self, content):
        assert parse_tag_content(content) == ["a", "b"]

    def test_surrounding_whitespace_ignored(self):
        assert parse_tag_content('  \n["a", "b"]\n ') == ["a", "b"]

    @pytest.mark.parametrize("content", ["", "   ", None, "```json\n```"])
    def test_empty_content_is_invalid_format(self, content):
        assert parse_tag_content(content) == [INVALID_TAGS_FORMAT]

    @pytest.mark.parametrize(
        "content",
        [
            "shopping, food, errands",
            '{"tags": ["a"]}',
            'Here are your tags: ["a", "b"]',
            '["a", "b"] hope this helps',
        ],
    )
    def test_unbracketed_content_is_invalid_format(self, content):
        assert parse_tag_content(content) == [INVALID_TAGS_FORMAT]

    def test_empty_array_is_no_tags(self):
        assert parse_tag_content("[]") == [NO_TAGS_GENERATED]
        assert parse_tag_content("```json\n[ ]\n```") == [NO_TAGS_GENERATED]

    def test_bracketed_invalid_json_is_parsing_error(self):
        assert parse_tag_content("[shopping, food]") == [ERROR_PARSING_TAGS]

    def test_non_string_items_are_parsing_error(self):
        assert parse_tag_content('["a", 1, null]') == [ERROR_PARSING_TAGS]
        assert parse_tag_content('[["nested"]]') == [ERROR_PARSING_TAGS]

    def test_duplicates_and_case_preserved(self):
        assert parse_tag_content('["Tag", "tag", "Tag"]') == ["Tag", "tag", "Tag"]


class TestTagGenerator:
    """Failure absorption around the completion service."""

    @pytest.mark.asyncio
    async def test_sends_fixed_instruction_and_text(self):
        service = StubCompletionService(default='["milk"]')
        generator = TagGenerator(service)

        tags = await generator.generate("Milk, Eggs, Oranges")

        assert tags == ["milk"]
        assert service.calls == [(TAG_INSTRUCTION, "Milk, Eggs, Oranges")]

    @pytest.mark.asyncio
    async def test_transport_failure_yields_error_fetching(self):
        service = StubCompletionService(default=CompletionTransportError(status_code=503))
        tags = await TagGenerator(service).generate("text")
        assert tags == [ERROR_FETCHING_TAGS]

    @pytest.mark.asyncio
    async def test_envelope_failure_yields_error_parsing(self):
        service = StubCompletionService(default=CompletionResponseError())
        tags = await TagGenerator(service).generate("text")
        assert tags == [ERROR_PARSING_TAGS]

    @pytest.mark.asyncio
    async def test_unexpected_exception_yields_error_fetching(self):
        service = StubCompletionService(default=RuntimeError("provider bug"))
        tags = await TagGenerator(service).generate("text")
        assert tags == [ERROR_FETCHING_TAGS]

    @pytest.mark.asyncio
    async def test_unbracketed_reply_yields_invalid_format(self):
        service = StubCompletionService(default="milk, eggs")
        tags = await TagGenerator(service).generate("text")
        assert tags == [INVALID_TAGS_FORMAT]

    @pytest.mark.asyncio
    async def test_open_circuit_skips_the_call(self):
        service = StubCompletionService(
            default=CompletionTransportError(),
            failure_threshold=2,
            recovery_timeout=60,
        )
        generator = TagGenerator(service)

        assert await generator.generate("one") == [ERROR_FETCHING_TAGS]
        assert await generator.generate("two") == [ERROR_FETCHING_TAGS]
        assert service.circuit_breaker.state == "open"

        assert await generator.generate("three") == [ERROR_FETCHING_TAGS]
        assert len(service.calls) == 2

    @pytest.mark.asyncio
    async def test_envelope_failures_do_not_open_circuit(self):
        service = StubCompletionService(default=CompletionResponseError(), failure_threshold=1)
        generator = TagGenerator(service)

        for _ in range(3):
            assert await generator.generate("text") == [ERROR_PARSING_TAGS]

        assert service.circuit_breaker.state == "closed"
        assert len(service.calls) == 3


class TestTagGeneratorHealth:

    @pytest.mark.asyncio
    async def test_available(self):
        assert await TagGenerator(StubCompletionService()).health_check() == "available"

    @pytest.mark.asyncio
    async def test_unavailable(self):
        service = StubCompletionService()
        service.healthy = False
        assert await TagGenerator(service).health_check() == "unavailable"

    @pytest.mark.asyncio
    async def test_circuit_open(self):
        service = StubCompletionService(failure_threshold=1)
        service.circuit_breaker.record_failure()
        assert await TagGenerator(service).health_check() == "circuit_open"
