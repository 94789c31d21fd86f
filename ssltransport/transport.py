"""Socket transports handed out by the TLS factory."""

import socket
from typing import Optional

from .exceptions import TransportError


def as_socket_timeout(timeout: Optional[float]) -> Optional[float]:
    """Map 0 to blocking; the socket module treats 0 as non-blocking."""
    if not timeout:
        return None
    return timeout


class SocketTransport:
    """Byte transport over a connected (possibly TLS-wrapped) socket.

    ``host`` and ``port`` describe the peer and are whatever the caller
    passes; they are not looked up from the handle.
    """

    def __init__(self, handle: Optional[socket.socket] = None, host: Optional[str] = None,
                 port: Optional[int] = None, timeout: Optional[float] = None):
        self.handle = handle
        self.host = host
        self.port = port
        self.timeout = timeout

    def is_open(self) -> bool:
        return self.handle is not None

    def set_timeout(self, timeout: Optional[float]):
        """Set the read timeout in seconds; 0 or None blocks indefinitely."""
        self.timeout = timeout
        if self.handle is not None:
            self.handle.settimeout(as_socket_timeout(timeout))

    def open(self):
        """Open a plain TCP connection to host:port."""
        if self.handle is not None:
            raise TransportError("Socket already connected", type=TransportError.ALREADY_OPEN)
        if not self.host or not self.port:
            raise TransportError("Cannot open without host and port", type=TransportError.NOT_OPEN)

        try:
            self.handle = socket.create_connection((self.host, self.port))
        except OSError as e:
            raise TransportError(f"Could not connect to {self.host}:{self.port}", cause=e) from e
        self.handle.settimeout(as_socket_timeout(self.timeout))

    def read(self, sz: int) -> bytes:
        if self.handle is None:
            raise TransportError("Transport not open", type=TransportError.NOT_OPEN)
        try:
            data = self.handle.recv(sz)
        except socket.timeout as e:
            raise TransportError("Read timed out", type=TransportError.TIMED_OUT, cause=e) from e
        except OSError as e:
            raise TransportError("Read failed", cause=e) from e
        if not data:
            raise TransportError("Socket closed by peer", type=TransportError.END_OF_FILE)
        return data

    def write(self, buf: bytes):
        if self.handle is None:
            raise TransportError("Transport not open", type=TransportError.NOT_OPEN)
        try:
            self.handle.sendall(buf)
        except OSError as e:
            raise TransportError("Write failed", cause=e) from e

    def flush(self):
        pass

    def peer_certificate(self) -> Optional[dict]:
        """Decoded peer certificate, or None for plain sockets or anonymous peers."""
        getpeercert = getattr(self.handle, "getpeercert", None)
        if getpeercert is None:
            return None
        return getpeercert() or None

    def close(self):
        if self.handle is None:
            return
        try:
            self.handle.close()
        finally:
            self.handle = None


class ServerSocketTransport:
    """Listening transport that accepts SocketTransport connections."""

    def __init__(self, handle: socket.socket):
        self.handle = handle

    @property
    def port(self) -> int:
        return self.handle.getsockname()[1]

    def listen(self):
        """No-op; the handle is bound and listening when handed over."""

    def accept(self) -> SocketTransport:
        """Accept a connection and complete its TLS handshake.

        The accept timeout also bounds the handshake, and stays on the
        accepted socket as its read timeout.
        """
        if self.handle is None:
            raise TransportError("No underlying server socket", type=TransportError.NOT_OPEN)
        try:
            client, address = self.handle.accept()
        except socket.timeout as e:
            raise TransportError("Accept timed out", type=TransportError.TIMED_OUT, cause=e) from e
        except OSError as e:
            raise TransportError("Accept failed", cause=e) from e

        timeout = self.handle.gettimeout()
        try:
            client.settimeout(timeout)
            do_handshake = getattr(client, "do_handshake", None)
            if do_handshake is not None:
                do_handshake()
        except socket.timeout as e:
            client.close()
            raise TransportError("Handshake timed out", type=TransportError.TIMED_OUT, cause=e) from e
        except OSError as e:
            client.close()
            raise TransportError("Handshake failed", cause=e) from e
        return SocketTransport(client, host=address[0], port=address[1], timeout=timeout)

    def close(self):
        if self.handle is None:
            return
        try:
            self.handle.close()
        finally:
            self.handle = None
