"""Tests for the socket transport wrappers."""

import socket

import pytest
from ssltransport.exceptions import TransportError
from ssltransport.transport import ServerSocketTransport, SocketTransport


@pytest.fixture
def pair():
    """Connected plain socket pair."""
    left, right = socket.socketpair()
    yield left, right
    left.close()
    right.close()


class TestSocketTransport:
    """Tests for SocketTransport."""

    def test_read_write(self, pair):
        """Test bytes written on one side are read on the other."""
        left, right = pair
        transport = SocketTransport(left, host="peer", port=1)
        transport.write(b"hello")
        transport.flush()
        assert right.recv(5) == b"hello"
        right.sendall(b"world")
        assert transport.read(5) == b"world"

    def test_end_of_file(self, pair):
        """Test that a closed peer is reported as end of file."""
        left, right = pair
        transport = SocketTransport(left, host="peer", port=1)
        right.close()
        with pytest.raises(TransportError) as excinfo:
            transport.read(1)
        assert excinfo.value.type == TransportError.END_OF_FILE

    def test_read_timeout(self, pair):
        """Test that the read timeout is enforced."""
        left, _ = pair
        transport = SocketTransport(left, host="peer", port=1)
        transport.set_timeout(0.1)
        with pytest.raises(TransportError) as excinfo:
            transport.read(1)
        assert excinfo.value.type == TransportError.TIMED_OUT

    def test_zero_timeout_blocks(self, pair):
        """Test that a zero timeout leaves the socket blocking."""
        left, _ = pair
        transport = SocketTransport(left, host="peer", port=1)
        transport.set_timeout(0)
        assert left.gettimeout() is None

    def test_not_open(self):
        """Test that I/O without a handle fails."""
        transport = SocketTransport(host="localhost", port=1)
        assert transport.is_open() is False
        with pytest.raises(TransportError) as excinfo:
            transport.read(1)
        assert excinfo.value.type == TransportError.NOT_OPEN
        with pytest.raises(TransportError):
            transport.write(b"x")

    def test_open_twice(self, pair):
        """Test that opening a connected transport fails."""
        left, _ = pair
        transport = SocketTransport(left, host="peer", port=1)
        with pytest.raises(TransportError) as excinfo:
            transport.open()
        assert excinfo.value.type == TransportError.ALREADY_OPEN

    def test_open_plain(self):
        """Test opening a plain connection to a listener."""
        with socket.socket() as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(1)
            transport = SocketTransport(host="127.0.0.1", port=listener.getsockname()[1], timeout=2)
            transport.open()
            try:
                assert transport.is_open()
                assert transport.handle.gettimeout() == 2
                assert transport.peer_certificate() is None
            finally:
                transport.close()

    def test_close_idempotent(self, pair):
        """Test closing twice is harmless."""
        left, _ = pair
        transport = SocketTransport(left, host="peer", port=1)
        transport.close()
        transport.close()
        assert transport.is_open() is False

    def test_peer_not_looked_up(self, pair):
        """Test that host and port stay unset when the caller gives none."""
        left, _ = pair
        transport = SocketTransport(left)
        assert transport.host is None
        assert transport.port is None
        assert transport.is_open()


class TestServerSocketTransport:
    """Tests for ServerSocketTransport."""

    @pytest.fixture
    def listener(self):
        sock = socket.socket()
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        yield sock
        sock.close()

    def test_accept(self, listener):
        """Test accepting a connection yields a usable transport."""
        server = ServerSocketTransport(listener)
        server.listen()
        with socket.create_connection(("127.0.0.1", server.port)) as client:
            accepted = server.accept()
            try:
                assert accepted.is_open()
                assert accepted.port == client.getsockname()[1]
                client.sendall(b"hi")
                assert accepted.read(2) == b"hi"
            finally:
                accepted.close()

    def test_accept_timeout(self, listener):
        """Test that the accept timeout is reported."""
        listener.settimeout(0.1)
        server = ServerSocketTransport(listener)
        with pytest.raises(TransportError) as excinfo:
            server.accept()
        assert excinfo.value.type == TransportError.TIMED_OUT

    def test_accept_after_close(self, listener):
        """Test that a closed server cannot accept."""
        server = ServerSocketTransport(listener)
        server.close()
        server.close()
        with pytest.raises(TransportError) as excinfo:
            server.accept()
        assert excinfo.value.type == TransportError.NOT_OPEN
