from __future__ import annotations

import errno
import re
from contextlib import contextmanager
from dataclasses import dataclass, field

from listkeeper.core.db import Database
from listkeeper.imap.session import ImapSession, ImapTarget

TARGET = ImapTarget(host="imap.example.test", username="lists", password="s3cret")


class ByteStream:
    """Reads from a fixed byte string, records writes."""

    def __init__(self, data: bytes = b"", chunk: int | None = None) -> None:
        self._data = bytearray(data)
        self._chunk = chunk
        self.written: list[bytes] = []

    def feed(self, data: bytes) -> None:
        self._data += data

    @property
    def remaining(self) -> bytes:
        return bytes(self._data)

    def readline(self) -> bytes:
        idx = self._data.find(b"\n")
        end = len(self._data) if idx < 0 else idx + 1
        out = bytes(self._data[:end])
        del self._data[:end]
        return out

    def read(self, n: int) -> bytes:
        if self._chunk is not None:
            n = min(n, self._chunk)
        out = bytes(self._data[:n])
        del self._data[:n]
        return out

    def write(self, data: bytes) -> None:
        self.written.append(data)


def header_block(**headers: str) -> str:
    lines = [f"{k.replace('_', '-')}: {v}" for k, v in headers.items()]
    return "\r\n".join(lines) + "\r\n\r\n"


@dataclass
class FakeMessage:
    headers: str
    body: str = "hello\r\n"
    deleted: bool = False


@dataclass
class FakeMailbox:
    messages: dict[int, FakeMessage] = field(default_factory=dict)
    folders: dict[str, dict[int, FakeMessage]] = field(default_factory=dict)
    password: str = "s3cret"
    commands: list[str] = field(default_factory=list)

    def seq(self, uid: int) -> int:
        return sorted(self.messages).index(uid) + 1

    def respond(self, tag: str, cmd: str) -> bytes:
        self.commands.append(cmd)
        ok = f"{tag} OK done\r\n".encode()
        upper = cmd.upper()

        if upper.startswith("LOGIN "):
            if not cmd.endswith(f'"{self.password}"'):
                return f"{tag} NO [AUTHENTICATIONFAILED] Authentication failed.\r\n".encode()
            return ok
        if upper == "NAMESPACE":
            return b'* NAMESPACE (("" "/")) NIL NIL\r\n' + ok
        if upper.startswith("SELECT "):
            return f"* {len(self.messages)} EXISTS\r\n".encode() + ok
        if upper == "UID FETCH 1:* (FLAGS)":
            out = b""
            for uid in sorted(self.messages):
                out += f"* {self.seq(uid)} FETCH (UID {uid} FLAGS ())\r\n".encode()
            return out + ok

        m = re.fullmatch(r"UID FETCH (\d+) BODY\.PEEK\[(HEADER|TEXT)\]", cmd)
        if m:
            uid, part = int(m.group(1)), m.group(2)
            msg = self.messages.get(uid)
            if msg is None:
                return ok
            payload = (msg.headers if part == "HEADER" else msg.body).encode()
            return (
                f"* {self.seq(uid)} FETCH (UID {uid} BODY[{part}] {{{len(payload)}}}\r\n".encode()
                + payload
                + b")\r\n"
                + ok
            )

        m = re.fullmatch(r'UID SEARCH SUBJECT "(.*)"', cmd)
        if m:
            hits = [
                str(uid)
                for uid, msg in sorted(self.messages.items())
                if m.group(1) in msg.headers
            ]
            return ("* SEARCH" + "".join(" " + h for h in hits) + "\r\n").encode() + ok

        m = re.fullmatch(r"UID STORE ([\d,]+) \+FLAGS \(\\Deleted\)", cmd)
        if m:
            for uid in (int(x) for x in m.group(1).split(",")):
                if uid in self.messages:
                    self.messages[uid].deleted = True
            return ok
        if upper == "EXPUNGE":
            for uid in [u for u, msg in self.messages.items() if msg.deleted]:
                del self.messages[uid]
            return ok

        m = re.fullmatch(r'CREATE "(.*)"', cmd)
        if m:
            if m.group(1) in self.folders:
                return f"{tag} NO [ALREADYEXISTS] Mailbox already exists\r\n".encode()
            self.folders[m.group(1)] = {}
            return ok

        m = re.fullmatch(r'UID MOVE ([\d,]+) "(.*)"', cmd)
        if m:
            dest = self.folders.get(m.group(2))
            if dest is None:
                return f"{tag} NO [TRYCREATE] Mailbox doesn't exist\r\n".encode()
            for uid in (int(x) for x in m.group(1).split(",")):
                if uid in self.messages:
                    dest[uid] = self.messages.pop(uid)
            return ok

        return f"{tag} BAD Unknown command\r\n".encode()


class ScriptedServer(ByteStream):
    """In-process IMAP server: each written command queues its response."""

    def __init__(self, mailbox: FakeMailbox) -> None:
        super().__init__(b"* OK [CAPABILITY IMAP4rev1 MOVE] ready\r\n")
        self.mailbox = mailbox

    def write(self, data: bytes) -> None:
        super().write(data)
        line = data.decode("utf-8")
        assert line.endswith("\r\n")
        tag, _, cmd = line[:-2].partition(" ")
        self.feed(self.mailbox.respond(tag, cmd))


class CountingOpener:
    def __init__(self, mailbox: FakeMailbox) -> None:
        self.mailbox = mailbox
        self.opened = 0
        self.closed = 0

    @contextmanager
    def __call__(self, target: ImapTarget):
        self.opened += 1
        session = ImapSession(ScriptedServer(self.mailbox))
        session.read_greeting()
        try:
            yield session
        finally:
            self.closed += 1


class ResetAfterGreeting(ByteStream):
    """Server that greets, then drops the connection."""

    def __init__(self) -> None:
        super().__init__(b"* OK ready\r\n")

    def readline(self) -> bytes:
        if not self.remaining:
            raise ConnectionResetError(errno.ECONNRESET, "Connection reset by peer")
        return super().readline()


@contextmanager
def reset_opener(target: ImapTarget):
    session = ImapSession(ResetAfterGreeting())
    session.read_greeting()
    yield session


def seed_subscription(
    db: Database, *, user_id: str, email: str, channel_id: str, channel_name: str
) -> None:
    db.exec("INSERT INTO users (id, email) VALUES (?, ?)", (user_id, email))
    db.exec("INSERT INTO channels (id, name) VALUES (?, ?)", (channel_id, channel_name))
    db.exec(
        "INSERT INTO subscriptions (user_id, channel_id) VALUES (?, ?)",
        (user_id, channel_id),
    )


def seed_queued_send(
    db: Database,
    *,
    queue_id: str,
    destination: str,
    user_id: str | None = None,
    channel_id: str | None = None,
) -> None:
    db.exec(
        """
        INSERT INTO queue (
            id, msg_id, subject, channel_id, destination,
            user_id, sent, bounced, created_at_utc
        ) VALUES (?, ?, 'digest', ?, ?, ?, 1, 0, strftime('%Y-%m-%dT%H:%M:%SZ','now'))
        """.strip(),
        (queue_id, f"<{queue_id}@lists.example.test>", channel_id, destination, user_id),
    )
