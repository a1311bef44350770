"""Unit tests for the citation/answer wire format."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import MagicMock
from models.citation import Citation
from services.errors import GenerationError
from services.stream_protocol import (
    METADATA_SEPARATOR,
    SEPARATOR_BYTES,
    AWAITING_SEPARATOR,
    STREAMING_TEXT,
    ProtocolError,
    StreamDecoder,
    encode_metadata,
    encode_stream,
    iter_answer,
)


def _citations():
    return [
        Citation(id=1, text="RAG combines retrieval\nwith generation.", source="rag.pdf", score=0.9),
        Citation(id=2, text='Quotes "inside" and unicode – ✓', source="notes.txt", score=0.7),
    ]


def _body(citations, deltas):
    return b"".join(encode_stream(citations, deltas))


class TestEncoder:
    """Test suite for encode_stream / encode_metadata."""

    def test_header_sent_even_when_no_citations(self):
        body = _body([], ["Hi"])
        assert body == b'{"citations":[]}' + SEPARATOR_BYTES + b"Hi"

    def test_metadata_segment_never_contains_raw_newline(self):
        header = encode_metadata(_citations())
        assert header.endswith(SEPARATOR_BYTES)
        assert b"\n" not in header[:-len(SEPARATOR_BYTES)]

    def test_header_emitted_once_and_first(self):
        pieces = list(encode_stream(_citations(), ["a", "b", "c"]))
        assert pieces[0] == encode_metadata(_citations())
        assert sum(piece.count(SEPARATOR_BYTES) for piece in pieces) == 1

    def test_deltas_forwarded_one_by_one(self):
        pieces = list(encode_stream([], ["Hel", "lo"]))
        assert pieces[1:] == [b"Hel", b"lo"]

    def test_empty_deltas_are_skipped(self):
        pieces = list(encode_stream([], ["", "x", ""]))
        assert pieces[1:] == [b"x"]

    def test_generation_failure_after_header_ends_body(self):
        def failing():
            yield "partial"
            raise GenerationError("connection dropped")

        pieces = list(encode_stream(_citations(), failing()))
        assert pieces[0] == encode_metadata(_citations())
        assert pieces[1:] == [b"partial"]

    def test_closing_encoder_closes_token_stream(self):
        token_stream = MagicMock()
        token_stream.__iter__.return_value = iter(["a", "b", "c"])

        body = encode_stream([], token_stream)
        next(body)  # header
        next(body)  # "a"
        body.close()

        token_stream.close.assert_called_once()

    def test_exhausted_encoder_closes_token_stream(self):
        token_stream = MagicMock()
        token_stream.__iter__.return_value = iter(["a"])

        list(encode_stream([], token_stream))

        token_stream.close.assert_called_once()


class TestDecoder:
    """Test suite for StreamDecoder."""

    def test_separator_split_at_every_byte_boundary(self):
        citations = _citations()
        body = _body(citations, ["Hello", " world"])
        expected_header = encode_metadata(citations)[:-len(SEPARATOR_BYTES)]
        start = body.index(SEPARATOR_BYTES)

        for cut in range(start, start + len(SEPARATOR_BYTES) + 1):
            decoder = StreamDecoder()
            text = decoder.feed(body[:cut]) + decoder.feed(body[cut:]) + decoder.close()

            assert decoder.metadata_bytes == expected_header, f"cut at {cut}"
            assert decoder.citations == citations
            assert text == "Hello world"

    def test_one_byte_at_a_time_with_multibyte_characters(self):
        citations = _citations()
        body = _body(citations, ["Caf", "é ✓ ", "done"])

        decoder = StreamDecoder()
        text = "".join(decoder.feed(body[i:i + 1]) for i in range(len(body))) + decoder.close()

        assert decoder.citations == citations
        assert text == "Café ✓ done"

    def test_decoded_deltas_follow_generation_order(self):
        deltas = list(iter_answer(encode_stream([], ["Hel", "lo"])))
        assert deltas == ["Hel", "lo"]
        assert "".join(deltas) == "Hello"

    def test_whole_body_in_one_chunk(self):
        decoder = StreamDecoder()
        text = decoder.feed(_body([], ["All ", "at ", "once"]))

        assert decoder.state == STREAMING_TEXT
        assert decoder.citations == []
        assert text == "All at once"

    def test_separator_text_inside_answer_is_plain_text(self):
        body = _body([], ["a", METADATA_SEPARATOR, "b"])
        assert "".join(iter_answer([body])) == "a" + METADATA_SEPARATOR + "b"

    def test_stream_ending_before_separator_is_truncated(self):
        decoder = StreamDecoder()
        assert decoder.feed(b'{"citations":[') == ""
        assert decoder.close() == ""

        assert decoder.state == AWAITING_SEPARATOR
        assert decoder.truncated
        assert decoder.citations is None

    def test_answer_cut_short_keeps_received_text(self):
        body = _body(_citations(), ["The answer is", " incomplete"])
        cut = len(body) - len(" incomplete")

        decoder = StreamDecoder()
        text = decoder.feed(body[:cut]) + decoder.close()

        assert not decoder.truncated
        assert text == "The answer is"

    def test_invalid_metadata_raises(self):
        decoder = StreamDecoder()
        with pytest.raises(ProtocolError):
            decoder.feed(b"not json" + SEPARATOR_BYTES)

    def test_metadata_without_citations_key_raises(self):
        decoder = StreamDecoder()
        with pytest.raises(ProtocolError):
            decoder.feed(b'{"sources":[]}' + SEPARATOR_BYTES)
