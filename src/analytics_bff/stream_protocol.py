# src/analytics_bff/stream_protocol.py
"""
Backend chat streams are Server-Sent Events:

    data: {"type": "content", "content": "Hello"}
    data: {"type": "complete"}
    data: [DONE]

The dashboard's chat widget speaks the AI SDK data stream protocol instead:

    0:"Hello"
    d:{"finishReason":"stop"}
"""

import json
from typing import Any, Dict, Iterator, List, Optional

DONE_SENTINEL = "[DONE]"
FINISH_LINE = "d:" + json.dumps({"finishReason": "stop"}, separators=(",", ":")) + "\n"


class SseLineBuffer:
    """Reassembles `data:` payloads from arbitrarily split text chunks."""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> List[str]:
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [p for p in (_data_payload(line) for line in lines) if p is not None]

    def flush(self) -> List[str]:
        rest, self._buffer = self._buffer, ""
        payload = _data_payload(rest)
        return [payload] if payload else []


def _data_payload(line: str) -> Optional[str]:
    line = line.rstrip("\r")
    if not line.startswith("data: "):
        return None
    return line[6:].strip()


def parse_frame(payload: str) -> Optional[Dict[str, Any]]:
    """Decode one `data:` payload; partial or garbled frames are skipped."""
    try:
        frame = json.loads(payload)
    except ValueError:
        return None
    return frame if isinstance(frame, dict) else None


def iter_frames(payloads: List[str]) -> Iterator[Optional[Dict[str, Any]]]:
    """Yield decoded frames, then None once the [DONE] sentinel is reached."""
    for payload in payloads:
        if payload == DONE_SENTINEL:
            yield None
            return
        frame = parse_frame(payload)
        if frame is not None:
            yield frame


class DataStreamTransformer:
    """Turns backend SSE text into AI SDK data stream lines."""

    def __init__(self):
        self._lines = SseLineBuffer()
        self.finished = False

    def feed(self, chunk: str) -> List[str]:
        if self.finished:
            return []
        return self._translate(self._lines.feed(chunk))

    def flush(self) -> List[str]:
        out = [] if self.finished else self._translate(self._lines.flush())
        if not self.finished:
            self.finished = True
            out.append(FINISH_LINE)
        return out

    def _translate(self, payloads: List[str]) -> List[str]:
        out = []
        for frame in iter_frames(payloads):
            if frame is None:
                self.finished = True
                out.append(FINISH_LINE)
                break
            line = encode_frame(frame)
            if line:
                out.append(line)
        return out


def encode_frame(frame: Dict[str, Any]) -> Optional[str]:
    kind = frame.get("type")
    if kind == "content" and frame.get("content"):
        return f"0:{json.dumps(frame['content'])}\n"
    if kind == "error":
        return f"3:{json.dumps(frame.get('content') or 'Unknown error')}\n"
    # "start", "sql" and "complete" have no counterpart in the data stream protocol
    return None
