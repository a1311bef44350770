"""Single-body wire format carrying citations followed by streamed answer text.

Layout of one response body::

    <compact UTF-8 JSON {"citations": [...]}>\\n__METADATA_END__\\n<answer text bytes ...>

The metadata is serialised with ``json.dumps`` and no indentation, which
escapes every control character inside strings. A raw newline therefore never
occurs in the JSON segment, so the first occurrence of the separator (which
starts with a raw newline) always marks the end of the metadata.
"""
import codecs
import json
import logging
from typing import Iterable, Iterator, List, Optional

from models.citation import Citation

logger = logging.getLogger(__name__)

METADATA_SEPARATOR = "\n__METADATA_END__\n"
SEPARATOR_BYTES = METADATA_SEPARATOR.encode("utf-8")

MEDIA_TYPE = "text/plain; charset=utf-8"

# Decoder states
AWAITING_SEPARATOR = "awaiting_separator"
STREAMING_TEXT = "streaming_text"


class ProtocolError(ValueError):
    """The metadata segment could not be parsed."""


def encode_metadata(citations: List[Citation]) -> bytes:
    """Serialise the citation header, separator included."""
    payload = {"citations": [citation.to_dict() for citation in citations]}
    header = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return header.encode("utf-8") + SEPARATOR_BYTES


def encode_stream(citations: List[Citation], deltas: Iterable[str]) -> Iterator[bytes]:
    """
    Yield the response body: the header exactly once, then each delta as it arrives.

    A failure while reading ``deltas`` ends the body instead of emitting an
    error document, because the header has already been sent. Closing this
    generator closes ``deltas`` if it supports it, releasing the provider
    connection.
    """
    try:
        yield encode_metadata(citations)
        for delta in deltas:
            if delta:
                yield delta.encode("utf-8")
    except Exception as e:
        logger.error(f"Answer stream ended early: {e}", exc_info=True)
    finally:
        close = getattr(deltas, "close", None)
        if close is not None:
            close()


class StreamDecoder:
    """
    Incremental decoder for the citation/answer wire format.

    Feed transport chunks in arrival order. Until the separator is seen the
    bytes are buffered; the separator may be split across any number of
    chunks. Afterwards every chunk is decoded straight to text.
    """

    def __init__(self):
        self.state = AWAITING_SEPARATOR
        self.metadata_bytes: Optional[bytes] = None
        self.citations: Optional[List[Citation]] = None
        self.truncated = False
        self._buffer = bytearray()
        self._scan_from = 0
        self._text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes) -> str:
        """
        Consume one transport chunk.

        Returns:
            Answer text decoded from this chunk, possibly empty

        Raises:
            ProtocolError: If the metadata segment is not a valid citation document
        """
        if self.state == STREAMING_TEXT:
            return self._text_decoder.decode(data)

        self._buffer.extend(data)
        index = self._buffer.find(SEPARATOR_BYTES, self._scan_from)
        if index < 0:
            # Keep an overlap so a separator straddling two chunks is still found
            self._scan_from = max(0, len(self._buffer) - len(SEPARATOR_BYTES) + 1)
            return ""

        self.metadata_bytes = bytes(self._buffer[:index])
        self.citations = self._parse_metadata(self.metadata_bytes)
        remainder = bytes(self._buffer[index + len(SEPARATOR_BYTES):])
        self._buffer = bytearray()
        self.state = STREAMING_TEXT
        return self._text_decoder.decode(remainder)

    def close(self) -> str:
        """
        Signal end of stream and flush any buffered partial character.

        If the stream ended before the separator, ``truncated`` is set and no
        citations are available.
        """
        if self.state == AWAITING_SEPARATOR:
            self.truncated = True
            return ""
        return self._text_decoder.decode(b"", final=True)

    @staticmethod
    def _parse_metadata(raw: bytes) -> List[Citation]:
        try:
            payload = json.loads(raw.decode("utf-8"))
            return [
                Citation(id=item["id"], text=item["text"], source=item["source"], score=item["score"])
                for item in payload["citations"]
            ]
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise ProtocolError(f"Invalid metadata segment: {e}") from e


def iter_answer(chunks: Iterable[bytes], decoder: Optional[StreamDecoder] = None) -> Iterator[str]:
    """Decode a stream of transport chunks into answer-text deltas."""
    decoder = decoder or StreamDecoder()
    for chunk in chunks:
        text = decoder.feed(chunk)
        if text:
            yield text
    tail = decoder.close()
    if tail:
        yield tail
