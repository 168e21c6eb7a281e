"""
Incremental decoder for line-oriented server-sent event streams.

Transport chunks arrive as arbitrary byte ranges: a chunk may end in the middle
of a line or even in the middle of a multi-byte UTF-8 sequence. The decoder keeps
both partial states between `feed` calls so event extraction never depends on
where the network happened to split the stream.
"""
from __future__ import annotations

import codecs
from dataclasses import dataclass
from typing import Literal

DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    kind: Literal["data", "done"]
    data: str = ""


class SSEStreamDecoder:
    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._finished = False

    @property
    def finished(self) -> bool:
        """True once the explicit end-of-stream marker has been seen."""
        return self._finished

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        if self._finished:
            return []
        self._buffer += self._decoder.decode(chunk)
        events: list[StreamEvent] = []
        while True:
            newline_idx = self._buffer.find("\n")
            if newline_idx == -1:
                break
            line = self._buffer[:newline_idx]
            self._buffer = self._buffer[newline_idx + 1:]
            event = self._parse_line(line)
            if event is None:
                continue
            events.append(event)
            if event.kind == "done":
                self._finished = True
                self._buffer = ""
                break
        return events

    def finish(self) -> StreamEvent | None:
        """Flush whatever is left once the transport closes."""
        if self._finished:
            return None
        self._buffer += self._decoder.decode(b"", final=True)
        line, self._buffer = self._buffer, ""
        event = self._parse_line(line)
        if event is not None and event.kind == "done":
            self._finished = True
        return event

    def _parse_line(self, line: str) -> StreamEvent | None:
        line = line.rstrip("\r")
        if not line.startswith("data:"):
            # event:, id:, retry:, ":" comments and blank separators carry no payload.
            return None
        data = line[len("data:"):]
        if data.startswith(" "):
            data = data[1:]
        if data.strip() == DONE_MARKER:
            return StreamEvent(kind="done")
        if not data.strip():
            return None
        return StreamEvent(kind="data", data=data)
