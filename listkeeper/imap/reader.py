from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Protocol

from listkeeper.imap.errors import ProtocolReadError

__all__ = [
    "LineStream",
    "Response",
    "ResponseReader",
]

# `{N}` immediately before the line terminator announces N raw bytes
_LITERAL_RE = re.compile(rb"\{(\d+)\}\r?\n\Z")

# the ")\r\n" that closes a FETCH item after its literal
_LITERAL_TRAILER = 3


class LineStream(Protocol):
    def readline(self) -> bytes: ...

    def read(self, n: int) -> bytes: ...

    def write(self, data: bytes) -> None: ...


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


@dataclass
class Response:
    """
    One command round-trip: untagged lines followed by the tagged
    completion line. A literal payload replaces the line that announced it.
    """

    tag: str
    lines: list[str] = field(default_factory=list)
    literal: str | None = None

    @property
    def completion(self) -> str:
        return self.lines[-1] if self.lines else ""

    @property
    def untagged(self) -> list[str]:
        return self.lines[:-1]

    @property
    def status(self) -> str:
        parts = self.completion.split(None, 2)
        if len(parts) < 2 or parts[0] != self.tag:
            return ""
        return parts[1].upper()

    @property
    def ok(self) -> bool:
        return self.status == "OK"


class ResponseReader:
    def __init__(self, stream: LineStream) -> None:
        self._stream = stream

    def _readline(self) -> bytes:
        try:
            return self._stream.readline()
        except OSError as e:
            raise ProtocolReadError(f"Read error: {e}") from e

    def read_line(self) -> str:
        """Next `\\n`-terminated line, or "" at EOF."""
        return _decode(self._readline())

    def read_exact(self, n: int) -> bytes:
        chunks: list[bytes] = []
        remaining = n
        while remaining > 0:
            try:
                chunk = self._stream.read(remaining)
            except OSError as e:
                raise ProtocolReadError(
                    f"Read error with {remaining} of {n} literal bytes outstanding: {e}"
                ) from e
            if not chunk:
                raise ProtocolReadError(
                    f"EOF with {remaining} of {n} literal bytes outstanding"
                )
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def read_response(self, tag: str) -> Response:
        resp = Response(tag=tag)
        while True:
            raw = self._readline()
            if not raw:
                raise ProtocolReadError(
                    f"Connection closed before completion of {tag}"
                )

            # checked before the '*' rule so a literal on a tagged first line works
            if not resp.lines:
                m = _LITERAL_RE.search(raw)
                if m:
                    payload = _decode(self.read_exact(int(m.group(1))))
                    self.read_exact(_LITERAL_TRAILER)
                    resp.literal = payload
                    resp.lines.append(payload)
                    if raw.startswith(b"*"):
                        continue
                    break

            resp.lines.append(_decode(raw))
            if not raw.startswith(b"*"):
                break
        return resp
