from __future__ import annotations


class ImapError(RuntimeError):
    pass


# --- Network ---------------------------------------------------------------


class TransportError(ImapError):
    pass


class ConnectError(TransportError):
    def __init__(self, host: str, port: int, message: str) -> None:
        self.host = host
        self.port = port
        super().__init__(f"Failed to connect to {host}:{port} - {message}")


class ConnectTimeout(ConnectError):
    def __init__(self, host: str, port: int, seconds: float) -> None:
        self.seconds = seconds
        super().__init__(host, port, f"no connection within {seconds:g}s")


# --- TLS -------------------------------------------------------------------


class TLSError(ImapError):
    pass


class TLSSetupError(TLSError):
    pass


class TLSHandshakeError(TLSError):
    pass


class CertVerifyError(TLSHandshakeError):
    pass


class HostMismatchError(CertVerifyError):
    def __init__(self, hostname: str, message: str = "") -> None:
        self.hostname = hostname
        detail = f" ({message})" if message else ""
        super().__init__(f"Certificate does not match host {hostname}{detail}")


class CertExpiringError(TLSError):
    def __init__(self, hostname: str, days: float) -> None:
        self.hostname = hostname
        self.days = days
        super().__init__(
            f"Certificate for {hostname or '(unnamed peer)'} set to expire in {days:.0f} days"
        )


# --- Protocol --------------------------------------------------------------


class ProtocolReadError(ImapError):
    pass


class GrammarParseError(ImapError):
    def __init__(self, line: str) -> None:
        self.line = line
        super().__init__(f"Line does not match the SEARCH grammar: {line!r}")


class CommandError(ImapError):
    """A tagged completion other than OK for a command the caller relies on."""

    def __init__(self, command: str, completion: str) -> None:
        self.command = command
        self.completion = completion.rstrip("\r\n")
        super().__init__(f"IMAP {command} failed: {self.completion}")
