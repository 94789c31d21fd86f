"""Secure context derivation from TLS parameters."""

import ssl
from typing import Optional

from .exceptions import SecureContextError, TransportConfigurationError
from .parameters import DEFAULT_PROTOCOL, TLSParameters
from .stores import KeyManagers, TrustManagers, load_store

PROTOCOL_VERSIONS = {
    "TLS": (None, None),
    "TLSV1": (ssl.TLSVersion.TLSv1, ssl.TLSVersion.TLSv1),
    "TLSV1.1": (ssl.TLSVersion.TLSv1_1, ssl.TLSVersion.TLSv1_1),
    "TLSV1.2": (ssl.TLSVersion.TLSv1_2, ssl.TLSVersion.TLSv1_2),
    "TLSV1.3": (ssl.TLSVersion.TLSv1_3, ssl.TLSVersion.TLSv1_3),
}


class SecureContext:
    """Initialized TLS configuration for a single build call.

    Holds the key and trust managers derived from the parameters and the
    server and client ``ssl.SSLContext`` objects built from them. A side
    left as None falls back to the platform default: the injected default
    stores when present, otherwise no certificate for keys and the system
    store for trust.
    """

    def __init__(self, protocol: str = DEFAULT_PROTOCOL, defaults: Optional[TLSParameters] = None):
        versions = PROTOCOL_VERSIONS.get(protocol.upper())
        if versions is None:
            raise ValueError(f"Unsupported protocol: {protocol}")
        self.protocol = protocol
        self.minimum_version, self.maximum_version = versions
        self.defaults = defaults
        self.key_managers: Optional[KeyManagers] = None
        self.trust_managers: Optional[TrustManagers] = None
        self._server_context: Optional[ssl.SSLContext] = None
        self._client_context: Optional[ssl.SSLContext] = None

    def init(self, key_managers: Optional[KeyManagers] = None,
             trust_managers: Optional[TrustManagers] = None):
        """Initialize the context with whichever manager sets are present."""
        self.key_managers = key_managers
        self.trust_managers = trust_managers

        if key_managers is None:
            key_managers = self._default_key_managers()
        if trust_managers is None:
            trust_managers = self._default_trust_managers()

        self._server_context = self._build(ssl.PROTOCOL_TLS_SERVER, ssl.Purpose.CLIENT_AUTH,
                                           key_managers, trust_managers)
        self._client_context = self._build(ssl.PROTOCOL_TLS_CLIENT, ssl.Purpose.SERVER_AUTH,
                                           key_managers, trust_managers)

    def _default_key_managers(self) -> Optional[KeyManagers]:
        if self.defaults is None or self.defaults.key_store is None:
            return None
        store = self.defaults.key_store
        return KeyManagers.from_store(load_store(store), store.manager_algorithm)

    def _default_trust_managers(self) -> Optional[TrustManagers]:
        if self.defaults is None or self.defaults.trust_store is None:
            return None
        store = self.defaults.trust_store
        return TrustManagers.from_store(load_store(store), store.manager_algorithm)

    def _build(self, protocol: int, purpose: ssl.Purpose, key_managers: Optional[KeyManagers],
               trust_managers: Optional[TrustManagers]) -> ssl.SSLContext:
        context = ssl.SSLContext(protocol)
        if self.minimum_version is not None:
            context.minimum_version = self.minimum_version
            context.maximum_version = self.maximum_version

        if key_managers is not None:
            key_managers.install(context)

        if trust_managers is not None:
            trust_managers.install(context)
        else:
            context.load_default_certs(purpose)

        return context

    @property
    def initialized(self) -> bool:
        return self._server_context is not None

    def server_socket_factory(self) -> ssl.SSLContext:
        """SSL context for listening sockets."""
        if self._server_context is None:
            raise SecureContextError("Secure context has not been initialized")
        return self._server_context

    def socket_factory(self) -> ssl.SSLContext:
        """SSL context for connecting sockets."""
        if self._client_context is None:
            raise SecureContextError("Secure context has not been initialized")
        return self._client_context


def create_secure_context(params: Optional[TLSParameters],
                          defaults: Optional[TLSParameters] = None) -> SecureContext:
    """Load the configured stores and derive an initialized secure context.

    Args:
        params: TLS parameters with at least one store set
        defaults: Process-wide default stores used for a side params leaves unset

    Returns:
        Initialized SecureContext

    Raises:
        TransportConfigurationError: neither store is set; no I/O is attempted
        SecureContextError: any failure loading stores or building the context
    """
    if params is None or not params.is_configured:
        raise TransportConfigurationError(
            "Either one of the KeyStore or TrustStore must be set for SSLTransportParameters"
        )

    try:
        context = SecureContext(params.protocol, defaults)
        key_managers = None
        trust_managers = None

        if params.trust_store is not None:
            store = load_store(params.trust_store)
            trust_managers = TrustManagers.from_store(store, params.trust_store.manager_algorithm)

        if params.key_store is not None:
            store = load_store(params.key_store)
            key_managers = KeyManagers.from_store(store, params.key_store.manager_algorithm)

        context.init(key_managers, trust_managers)
    except Exception as e:
        raise SecureContextError("Error creating the transport", cause=e) from e

    return context
