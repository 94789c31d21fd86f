"""TLS parameter set consumed by the transport factory."""

from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_PROTOCOL = "TLS"
DEFAULT_MANAGER_ALGORITHM = "X509"
DEFAULT_STORE_FORMAT = "PEM"


@dataclass(frozen=True)
class StoreConfig:
    """Location and unlocking credentials for a key or trust store.

    For a key store the password unlocks both the store file and the
    private key entry inside it.
    """

    path: str
    password: Optional[str] = field(default=None, repr=False)
    manager_algorithm: str = DEFAULT_MANAGER_ALGORITHM
    store_format: str = DEFAULT_STORE_FORMAT


class TLSParameters:
    """Holds everything needed to build a secure context.

    Only records intent; no files are touched until a context is built.
    """

    def __init__(self, protocol: Optional[str] = None, cipher_suites: Optional[List[str]] = None,
                 client_auth: bool = False):
        """Create parameters specifying the protocol and cipher suites.

        Args:
            protocol: Protocol identifier (TLS, TLSv1.2, ...). None keeps the default.
            cipher_suites: Explicit allow-list of cipher suites, or None for the platform set
            client_auth: True if servers must require a client certificate
        """
        self.protocol = protocol if protocol is not None else DEFAULT_PROTOCOL
        self.cipher_suites = list(cipher_suites) if cipher_suites is not None else None
        self.client_auth = client_auth
        self.key_store: Optional[StoreConfig] = None
        self.trust_store: Optional[StoreConfig] = None

    @staticmethod
    def _store(path: str, password: Optional[str], manager_algorithm: Optional[str],
               store_format: Optional[str]) -> StoreConfig:
        return StoreConfig(
            path=path,
            password=password,
            manager_algorithm=manager_algorithm or DEFAULT_MANAGER_ALGORITHM,
            store_format=store_format or DEFAULT_STORE_FORMAT
        )

    def set_key_store(self, path: str, password: Optional[str], manager_algorithm: Optional[str] = None,
                      store_format: Optional[str] = None):
        """Set the key store holding this endpoint's certificate and private key.

        Args:
            path: Location of the key store on disk
            password: Unlocks the store and the private key within it
            manager_algorithm: Key manager algorithm, default X509
            store_format: Store format, default PEM
        """
        self.key_store = self._store(path, password, manager_algorithm, store_format)

    def set_trust_store(self, path: str, password: Optional[str], manager_algorithm: Optional[str] = None,
                        store_format: Optional[str] = None):
        """Set the trust store holding the trusted certificate authorities.

        Args:
            path: Location of the trust store on disk
            password: Trust store password (unused for PEM and DER stores)
            manager_algorithm: Trust manager algorithm, default X509
            store_format: Store format, default PEM
        """
        self.trust_store = self._store(path, password, manager_algorithm, store_format)

    def require_client_auth(self, client_auth: bool):
        """Set if client authentication is required."""
        self.client_auth = client_auth

    @property
    def has_key_store(self) -> bool:
        return self.key_store is not None

    @property
    def has_trust_store(self) -> bool:
        return self.trust_store is not None

    @property
    def is_configured(self) -> bool:
        """True once at least one store has been set."""
        return self.has_key_store or self.has_trust_store

    def __repr__(self):
        return (f"TLSParameters(protocol={self.protocol!r}, key_store={self.has_key_store}, "
                f"trust_store={self.has_trust_store}, cipher_suites={self.cipher_suites!r}, "
                f"client_auth={self.client_auth})")
