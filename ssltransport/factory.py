"""Factory for TLS-wrapped client and server socket transports.

All client sockets come back already connected, so there is no need to
call ``open()`` on them. Server sockets come back bound and listening.
"""

import socket
import ssl
from typing import List, Optional

from .config import Config
from .context import SecureContext, create_secure_context
from .exceptions import BindError, ConnectError
from .logger import Logger
from .parameters import TLSParameters
from .transport import ServerSocketTransport, SocketTransport, as_socket_timeout

ACCEPT_BACKLOG = 100


def restrict_cipher_suites(context: ssl.SSLContext, cipher_suites: List[str]):
    """Limit a context to exactly the given cipher suites, in order.

    TLS 1.3 suites (``TLS_*``) cannot be narrowed through the ssl module, so
    a list naming none of them caps the context at TLS 1.2 instead, and a
    list naming some of them must name all the platform enables.

    Raises:
        ValueError: the list is empty, names unknown suites, names only part
            of the TLS 1.3 set, or leaves no protocol version usable
    """
    if not cipher_suites:
        raise ValueError("Cipher suite list is empty")

    tls13 = [name for name in cipher_suites if name.startswith("TLS_")]
    legacy = [name for name in cipher_suites if not name.startswith("TLS_")]

    if legacy:
        context.set_ciphers(":".join(legacy))
    else:
        context.minimum_version = ssl.TLSVersion.TLSv1_3
    if not tls13:
        context.maximum_version = ssl.TLSVersion.TLSv1_2

    available = [cipher["name"] for cipher in context.get_ciphers()]
    missing = [name for name in cipher_suites if name not in available]
    if missing:
        raise ValueError(f"Unsupported cipher suites: {', '.join(missing)}")

    enabled_tls13 = [name for name in available if name.startswith("TLS_")]
    if tls13 and set(tls13) != set(enabled_tls13):
        raise ValueError(
            f"TLS 1.3 cipher suites cannot be narrowed; list all of: {', '.join(enabled_tls13)}"
        )

    minimum = context.minimum_version
    maximum = context.maximum_version
    if (minimum != ssl.TLSVersion.MINIMUM_SUPPORTED and maximum != ssl.TLSVersion.MAXIMUM_SUPPORTED
            and minimum > maximum):
        raise ValueError(
            f"Cipher suites require {minimum.name} to {maximum.name}, which is an empty protocol range"
        )


class TLSTransportFactory:
    """Builds TLS server and client transports.

    ``defaults`` plays the role of process-wide TLS settings. It is used when
    a call passes no explicit parameters, and for whichever side (key or
    trust) explicit parameters leave unset.
    """

    def __init__(self, defaults: Optional[TLSParameters] = None, logger: Optional[Logger] = None):
        self.defaults = defaults
        self.logger = logger or Logger("tls_factory")

    @classmethod
    def from_config(cls, config: Config) -> 'TLSTransportFactory':
        """Create a factory whose defaults are read once from configuration."""
        logger = Logger("tls_factory", level=config.get("logging", "level", "INFO"))
        return cls(defaults=config.tls_parameters(), logger=logger)

    def create_context(self, params: Optional[TLSParameters]) -> SecureContext:
        context = create_secure_context(params, self.defaults)
        self.logger.debug(
            "Secure context created",
            protocol=context.protocol,
            key_store=params.key_store.path if params.key_store else None,
            trust_store=params.trust_store.path if params.trust_store else None
        )
        return context

    def _default_server_factory(self) -> ssl.SSLContext:
        if self.defaults is not None and self.defaults.is_configured:
            return self.create_context(self.defaults).server_socket_factory()
        return ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)

    def _default_client_factory(self) -> ssl.SSLContext:
        if self.defaults is not None and self.defaults.is_configured:
            return self.create_context(self.defaults).socket_factory()
        return ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

    def get_server_socket(self, port: int, client_timeout: Optional[float] = 0, client_auth: bool = False,
                          if_address: Optional[str] = None,
                          params: Optional[TLSParameters] = None) -> ServerSocketTransport:
        """Get a TLS server transport bound to the specified port and interface.

        Args:
            port: Port to listen on (0 picks an ephemeral port)
            client_timeout: Accept timeout in seconds, 0 blocks indefinitely
            client_auth: Require client certificates (ignored when params is given)
            if_address: Interface address to bind, None for all interfaces
            params: Explicit TLS parameters; None uses the factory defaults

        Returns:
            Listening ServerSocketTransport

        Raises:
            TransportConfigurationError: params has neither store set
            SecureContextError: stores could not be loaded
            BindError: the socket could not be bound or configured
        """
        if params is not None:
            context = self.create_context(params).server_socket_factory()
            return self._create_server(context, port, client_timeout, params.client_auth, if_address,
                                       params.cipher_suites)

        return self._create_server(self._default_server_factory(), port, client_timeout, client_auth,
                                   if_address, None)

    def _create_server(self, context: ssl.SSLContext, port: int, timeout: Optional[float], client_auth: bool,
                       if_address: Optional[str], cipher_suites: Optional[List[str]]) -> ServerSocketTransport:
        sock = None
        server = None
        host = str(if_address) if if_address is not None else ""
        family = socket.AF_INET6 if ":" in host else socket.AF_INET

        try:
            context.verify_mode = ssl.CERT_REQUIRED if client_auth else ssl.CERT_NONE
            if cipher_suites is not None:
                restrict_cipher_suites(context, cipher_suites)

            sock = socket.socket(family, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(ACCEPT_BACKLOG)
            server = context.wrap_socket(sock, server_side=True, do_handshake_on_connect=False)
            server.settimeout(as_socket_timeout(timeout))
        except Exception as e:
            if server is not None:
                server.close()
            if sock is not None:
                sock.close()
            raise BindError(port, cause=e) from e

        transport = ServerSocketTransport(server)
        self.logger.info(
            "TLS server socket listening",
            port=transport.port,
            interface=host or None,
            client_auth=client_auth,
            cipher_suites=cipher_suites
        )
        return transport

    def get_client_socket(self, host: str, port: int, timeout: Optional[float] = 0,
                          params: Optional[TLSParameters] = None) -> SocketTransport:
        """Get a TLS client transport connected to the specified host and port.

        Args:
            host: Remote host name or address
            port: Remote port
            timeout: Read timeout in seconds, 0 blocks indefinitely
            params: Explicit TLS parameters; None uses the factory defaults

        Returns:
            Connected SocketTransport

        Raises:
            TransportConfigurationError: params has neither store set
            SecureContextError: stores could not be loaded
            ConnectError: the connection or handshake failed
        """
        if params is not None:
            context = self.create_context(params).socket_factory()
        else:
            context = self._default_client_factory()
        return self._create_client(context, host, port, timeout)

    def _create_client(self, context: ssl.SSLContext, host: str, port: int,
                       timeout: Optional[float]) -> SocketTransport:
        sock = None
        tls_sock = None
        try:
            sock = socket.create_connection((host, port))
            tls_sock = context.wrap_socket(sock, server_hostname=host)
            tls_sock.settimeout(as_socket_timeout(timeout))
        except Exception as e:
            if tls_sock is not None:
                tls_sock.close()
            if sock is not None:
                sock.close()
            raise ConnectError(host, port, cause=e) from e

        self.logger.info(
            "TLS client socket connected",
            host=host,
            port=port,
            version=tls_sock.version(),
            cipher=tls_sock.cipher()[0]
        )
        return SocketTransport(tls_sock, host=host, port=port, timeout=timeout)


def get_server_socket(port: int, client_timeout: Optional[float] = 0, client_auth: bool = False,
                      if_address: Optional[str] = None,
                      params: Optional[TLSParameters] = None) -> ServerSocketTransport:
    """Get a TLS server transport using a factory without process defaults."""
    return TLSTransportFactory().get_server_socket(port, client_timeout, client_auth, if_address, params)


def get_client_socket(host: str, port: int, timeout: Optional[float] = 0,
                      params: Optional[TLSParameters] = None) -> SocketTransport:
    """Get a TLS client transport using a factory without process defaults."""
    return TLSTransportFactory().get_client_socket(host, port, timeout, params)
