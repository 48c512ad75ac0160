from __future__ import annotations

import logging
import socket
import ssl
import time
from typing import Any

from listkeeper.imap.errors import (
    CertExpiringError,
    CertVerifyError,
    HostMismatchError,
    TLSHandshakeError,
    TLSSetupError,
)

# OpenSSL X509_V_ERR_HOSTNAME_MISMATCH
_HOSTNAME_MISMATCH = 62


def default_context(hostname: str) -> ssl.SSLContext:
    # System trust store, highest mutually supported protocol version.
    ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    ctx.check_hostname = bool(hostname)
    return ctx


def remaining_cert_days(cert: dict[str, Any], now: float | None = None) -> float:
    expires = ssl.cert_time_to_seconds(cert["notAfter"])
    now = time.time() if now is None else now
    return (expires - now) / 86400.0


def _flatten_name(name: Any) -> str:
    parts = []
    for rdn in name or ():
        for key, value in rdn:
            parts.append(f"{key}={value}")
    return ",".join(parts)


def describe_peer(cert: dict[str, Any]) -> str:
    return (
        f"subject={_flatten_name(cert.get('subject'))} "
        f"issuer={_flatten_name(cert.get('issuer'))} "
        f"serial={cert.get('serialNumber', '?')} "
        f"valid={cert.get('notBefore', '?')} - {cert.get('notAfter', '?')}"
    )


class TlsSession:
    """
    Client side of one TLS session over an already connected socket.

    The chain is validated against the system trust store during the
    handshake. When `hostname` is empty the certificate name is not checked
    at all; a configured hostname is matched by the TLS engine itself.
    """

    def __init__(
        self,
        hostname: str = "",
        *,
        context: ssl.SSLContext | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.hostname = hostname
        self._context = context or default_context(hostname)
        self._logger = logger or logging.getLogger(__name__)
        self._sock: ssl.SSLSocket | None = None
        self._rfile = None

    def attach(self, sock: socket.socket) -> None:
        try:
            self._sock = self._context.wrap_socket(
                sock,
                server_hostname=self.hostname or None,
                do_handshake_on_connect=False,
            )
        except (OSError, ValueError) as e:
            raise TLSSetupError(f"Failed to attach TLS to socket: {e}") from e

    def handshake(self) -> None:
        if self._sock is None:
            raise TLSSetupError("handshake() before attach()")
        try:
            self._sock.do_handshake()
        except ssl.SSLCertVerificationError as e:
            if e.verify_code == _HOSTNAME_MISMATCH:
                raise HostMismatchError(self.hostname, e.verify_message) from e
            raise CertVerifyError(
                f"Certificate verification error: {e.verify_message or e}"
            ) from e
        except (ssl.SSLError, OSError) as e:
            raise TLSHandshakeError(f"TLS handshake failed: {e}") from e
        self._rfile = self._sock.makefile("rb")
        self._logger.debug("TLS established: %s", self._sock.version())

    def verify_peer(self, min_cert_days: int = 0) -> dict[str, Any]:
        if self._sock is None:
            raise TLSSetupError("verify_peer() before attach()")
        cert = self._sock.getpeercert()
        if not cert:
            raise CertVerifyError("Peer presented no verified certificate")

        if min_cert_days > 0:
            days = remaining_cert_days(cert)
            if days < min_cert_days:
                raise CertExpiringError(self.hostname, days)

        self._logger.debug("Peer certificate: %s", describe_peer(cert))
        return cert

    # --- stream -------------------------------------------------------------

    def readline(self) -> bytes:
        return self._rfile.readline()

    def read(self, n: int) -> bytes:
        return self._rfile.read(n)

    def write(self, data: bytes) -> None:
        self._sock.sendall(data)

    def close(self) -> None:
        if self._rfile is not None:
            self._rfile.close()
            self._rfile = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
