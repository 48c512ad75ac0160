from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from listkeeper.imap.errors import TransportError
from listkeeper.imap.reader import LineStream, Response, ResponseReader
from listkeeper.imap.tls import TlsSession
from listkeeper.imap.transport import NonBlocker


@dataclass(frozen=True)
class ImapTarget:
    host: str
    username: str
    password: str = field(repr=False)
    port: int = 993
    hostname: str = ""  # certificate name to verify; empty skips the check
    connect_timeout: float = 10.0
    min_cert_days: int = 0


def quote(value: str) -> str:
    """IMAP quoted string."""
    if "\r" in value or "\n" in value:
        raise ValueError("CR/LF cannot be sent in an IMAP quoted string")
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ImapSession:
    """
    Tags commands (A0, A1, ...), writes them one at a time and returns the
    complete response unit. Status words are left to the caller.
    """

    def __init__(self, stream: LineStream, *, logger: logging.Logger | None = None) -> None:
        self._stream = stream
        self._reader = ResponseReader(stream)
        self._counter = 0
        self._logger = logger or logging.getLogger(__name__)

    @property
    def commands_sent(self) -> int:
        return self._counter

    def read_greeting(self) -> str:
        greeting = self._reader.read_line()
        self._logger.debug("S: %s", greeting.rstrip("\r\n"))
        return greeting

    def _next_tag(self) -> str:
        tag = f"A{self._counter}"
        self._counter += 1
        return tag

    def command(self, text: str, *, redact: bool = False) -> Response:
        tag = self._next_tag()
        if redact:
            verb = text.split(None, 1)[0] if text else ""
            self._logger.debug("C: %s %s ***", tag, verb)
        else:
            self._logger.debug("C: %s %s", tag, text)

        try:
            self._stream.write(f"{tag} {text}\r\n".encode("utf-8"))
        except OSError as e:
            raise TransportError(f"Write of {tag} failed: {e}") from e
        resp = self._reader.read_response(tag)
        self._logger.debug("S: %s (%d lines)", resp.completion.rstrip("\r\n"), len(resp.lines))
        return resp

    def login(self, username: str, password: str) -> Response:
        return self.command(f"LOGIN {quote(username)} {quote(password)}", redact=True)


@contextmanager
def open_session(
    target: ImapTarget, *, logger: logging.Logger | None = None
) -> Iterator[ImapSession]:
    """
    TCP (bounded by the connect timeout) -> TLS + peer verification ->
    greeting. Everything is torn down on exit, including on errors.
    """
    log = logger or logging.getLogger(__name__)
    bridge = NonBlocker((target.host, target.port), target.connect_timeout)
    tls = TlsSession(target.hostname, logger=log)
    try:
        tls.attach(bridge.socket)
        tls.handshake()
        tls.verify_peer(target.min_cert_days)

        session = ImapSession(tls, logger=log)
        session.read_greeting()
        log.info("IMAP session open to %s:%s", target.host, target.port)
        yield session
    finally:
        # closing TLS releases the bridge's caller-facing descriptor first
        tls.close()
        bridge.close()
