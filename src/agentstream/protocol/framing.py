"""Newline-delimited JSON framing for stream events."""

from __future__ import annotations

import codecs
import json
import logging
from typing import List

from .events import StreamDecodeError, StreamEvent, decode_event, encode_event

LOGGER = logging.getLogger(__name__)

MEDIA_TYPE = "application/x-ndjson"
_DELIMITER = "\n"


def encode_line(event: StreamEvent) -> bytes:
    """Serialize ``event`` as one newline-terminated UTF-8 record."""

    body = json.dumps(encode_event(event), ensure_ascii=False, separators=(",", ":"))
    return (body + _DELIMITER).encode("utf-8")


def decode_line(line: str) -> StreamEvent:
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise StreamDecodeError(f"Invalid JSON record: {exc.msg}") from exc
    return decode_event(payload)


class LineDecoder:
    """Incrementally split transport chunks into complete event records.

    Chunks may end mid-record or mid-character; the unterminated remainder
    is kept until a later chunk completes it.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes | str) -> List[StreamEvent]:
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if not text:
            return []
        self._buffer += text
        *records, self._buffer = self._buffer.split(_DELIMITER)
        return [decode_line(record) for record in records if record.strip()]

    def close(self) -> List[StreamEvent]:
        """Flush the decoder at end of stream.

        A trailing record without its delimiter is decoded only here, once
        no further chunk can extend it.
        """

        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if not tail.strip():
            return []
        LOGGER.debug("Decoding unterminated trailing record at end of stream")
        return [decode_line(tail)]


__all__ = ["LineDecoder", "MEDIA_TYPE", "decode_line", "encode_line"]
