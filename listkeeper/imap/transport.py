from __future__ import annotations

import errno
import logging
import os
import select
import socket
import threading
import time

from listkeeper.imap.errors import ConnectError, ConnectTimeout

logger = logging.getLogger(__name__)

_CHUNK = 65536
_IN_PROGRESS = {0, errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY}


def _wait_writable(sock: socket.socket, timeout: float) -> bool:
    _, writable, _ = select.select([], [sock], [], timeout)
    return bool(writable)


def _connect_one(
    info: tuple, host: str, port: int, timeout: float, budget: float
) -> socket.socket:
    family, socktype, proto, _, sockaddr = info
    try:
        sock = socket.socket(family, socktype, proto)
    except OSError as e:
        raise ConnectError(host, port, f"{sockaddr[0]}: {e}") from e
    try:
        sock.setblocking(False)
        rc = sock.connect_ex(sockaddr)
        if rc not in _IN_PROGRESS:
            raise ConnectError(host, port, f"{sockaddr[0]}: {os.strerror(rc)}")
        if rc != 0:
            if not _wait_writable(sock, budget):
                raise ConnectTimeout(host, port, timeout)
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
            if err:
                raise ConnectError(host, port, f"{sockaddr[0]}: {os.strerror(err)}")
        sock.setblocking(True)
    except BaseException:
        sock.close()
        raise
    return sock


def connect_with_timeout(address: tuple[str, int], timeout: float) -> socket.socket:
    """
    Open a TCP connection whose establishment is bounded by `timeout`
    seconds instead of the kernel's connect timeout. Resolved addresses are
    tried in order within that one budget. Returns a blocking socket.
    """
    host, port = address
    if timeout <= 0:
        raise ValueError("connect timeout must be > 0")

    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ConnectError(host, port, str(e)) from e

    deadline = time.monotonic() + timeout
    last: ConnectError | None = None
    for info in infos:
        budget = deadline - time.monotonic()
        if budget <= 0:
            raise ConnectTimeout(host, port, timeout)
        try:
            return _connect_one(info, host, port, timeout, budget)
        except ConnectTimeout:
            raise
        except ConnectError as e:
            logger.debug("%s", e)
            last = e
    if last is None:
        raise ConnectError(host, port, "no addresses resolved")
    raise last


class NonBlocker:
    """
    Connects with a timeout, then hands out one end of a socketpair that
    behaves like an ordinary blocking socket. A single worker thread shuttles
    bytes between the other end and the network until either side closes.
    """

    def __init__(self, address: tuple[str, int], timeout: float) -> None:
        self.address = address
        self.error = ""
        self._net = connect_with_timeout(address, timeout)
        self._user, self._proxy = socket.socketpair()
        self._closed = False
        self._thread = threading.Thread(
            target=self._worker,
            name=f"nonblocker-{address[0]}:{address[1]}",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Connected to %s:%s", *address)

    @property
    def socket(self) -> socket.socket:
        return self._user

    def fileno(self) -> int:
        return self._user.fileno()

    def __enter__(self) -> "NonBlocker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # the worker only leaves select() once our end is gone
        self._user.close()
        self._thread.join()

    def _worker(self) -> None:
        try:
            while True:
                readable, _, _ = select.select([self._proxy, self._net], [], [])
                if self._proxy in readable:
                    if not self._pump(self._proxy, self._net):
                        break
                if self._net in readable:
                    if not self._pump(self._net, self._proxy):
                        break
        except OSError as e:
            self.error = str(e)
            logger.debug("Bridge to %s:%s stopped: %s", *self.address, e)
        finally:
            self._proxy.close()
            self._net.close()

    @staticmethod
    def _pump(src: socket.socket, dst: socket.socket) -> bool:
        data = src.recv(_CHUNK)
        if not data:
            return False
        dst.sendall(data)
        return True
