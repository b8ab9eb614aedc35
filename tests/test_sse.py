import pytest

from parley.providers.events import ReasoningDelta, StreamError, TextDelta
from parley.providers.sse import EventStreamParser, decode_payload, extract_events
from parley.utilities.errors import DecodeError


async def chunk_source(*chunks, consumed=None):
    for chunk in chunks:
        if consumed is not None:
            consumed.append(chunk)
        yield chunk


# ========== LINE FRAMING ==========
class TestFeed:
    def test_line_split_across_chunks(self):
        parser = EventStreamParser()

        first = parser.feed('data: {"choices":[{"delta":{"content":"H')
        second = parser.feed('i"}}]}\n')
        third = parser.feed("data: [DONE]\n")

        assert first == []
        assert second == [TextDelta("Hi")]
        assert third == []
        assert parser.done

    def test_comments_and_blank_lines_are_ignored(self):
        parser = EventStreamParser()

        events = parser.feed(
            ": OPENROUTER PROCESSING\n\n"
            'data: {"choices":[{"delta":{"content":"a"}}]}\n\n'
            "event: message\n"
            'data: {"choices":[{"delta":{"content":"b"}}]}\n'
        )

        assert events == [TextDelta("a"), TextDelta("b")]

    def test_crlf_line_endings(self):
        parser = EventStreamParser()

        events = parser.feed('data: {"choices":[{"delta":{"content":"x"}}]}\r\n\r\n')

        assert events == [TextDelta("x")]

    def test_malformed_payload_is_skipped(self):
        parser = EventStreamParser()

        events = parser.feed(
            "data: {not json\n"
            'data: {"choices":[{"delta":{"content":"ok"}}]}\n'
        )

        assert events == [TextDelta("ok")]

    def test_nothing_after_done(self):
        parser = EventStreamParser()

        events = parser.feed(
            'data: [DONE]\ndata: {"choices":[{"delta":{"content":"late"}}]}\n'
        )

        assert events == []
        assert parser.feed('data: {"choices":[{"delta":{"content":"later"}}]}\n') == []

    def test_multibyte_character_split_between_byte_chunks(self):
        parser = EventStreamParser()
        encoded = 'data: {"choices":[{"delta":{"content":"héllo"}}]}\n'.encode()
        split = encoded.index("é".encode()) + 1

        events = parser.feed(encoded[:split]) + parser.feed(encoded[split:])

        assert events == [TextDelta("héllo")]

    def test_flush_parses_unterminated_final_line(self):
        parser = EventStreamParser()

        assert parser.feed('data: {"choices":[{"delta":{"content":"tail"}}]}') == []
        assert parser.flush() == [TextDelta("tail")]


# ========== ASYNC PARSING ==========
class TestParse:
    async def test_split_chunks_yield_single_delta(self):
        parser = EventStreamParser()
        chunks = chunk_source(
            'data: {"choices":[{"delta":{"content":"H',
            'i"}}]}\n',
            "data: [DONE]\n",
        )

        events = [event async for event in parser.parse(chunks)]

        assert events == [TextDelta("Hi")]
        assert parser.done

    async def test_whole_lines_in_separate_arrivals(self):
        parser = EventStreamParser()
        chunks = chunk_source(
            'data: {"choices":[{"delta":{"content":"Hi"}}]}\n',
            "data: [DONE]\n",
        )

        events = [event async for event in parser.parse(chunks)]

        assert events == [TextDelta("Hi")]

    async def test_stops_reading_after_done(self):
        consumed = []
        parser = EventStreamParser()
        chunks = chunk_source(
            'data: {"choices":[{"delta":{"content":"a"}}]}\ndata: [DONE]\n',
            'data: {"choices":[{"delta":{"content":"b"}}]}\n',
            consumed=consumed,
        )

        events = [event async for event in parser.parse(chunks)]

        assert events == [TextDelta("a")]
        assert len(consumed) == 1

    async def test_close_without_done_flushes_buffer(self):
        parser = EventStreamParser()
        chunks = chunk_source('data: {"choices":[{"delta":{"content":"end"}}]}')

        events = [event async for event in parser.parse(chunks)]

        assert events == [TextDelta("end")]
        assert not parser.done


# ========== RECORD DECODING ==========
class TestExtractEvents:
    def test_reasoning_precedes_content(self):
        record = {"choices": [{"delta": {"reasoning": "think", "content": "say"}}]}

        assert extract_events(record) == [ReasoningDelta("think"), TextDelta("say")]

    def test_error_record(self):
        record = {"error": {"message": "Rate limited", "code": 429}}

        assert extract_events(record) == [StreamError("Rate limited")]

    def test_empty_and_missing_content(self):
        assert extract_events({"choices": [{"delta": {"content": ""}}]}) == []
        assert extract_events({"choices": [{"delta": {"role": "assistant"}}]}) == []
        assert extract_events({"choices": []}) == []
        assert extract_events({"id": "gen-1"}) == []

    def test_decode_payload_rejects_non_objects(self):
        with pytest.raises(DecodeError):
            decode_payload("[1, 2]")
        with pytest.raises(DecodeError):
            decode_payload("{broken")
