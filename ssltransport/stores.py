"""Key and trust store loading.

Stores are read whole from disk and parsed with ``cryptography``. The
parsed material is turned into key managers (what this endpoint presents)
and trust managers (what it accepts from peers), which know how to install
themselves into an ``ssl.SSLContext``.
"""

import os
import re
import secrets
import ssl
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from .parameters import DEFAULT_MANAGER_ALGORITHM, StoreConfig

PEM_BLOCK = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----.*?-----END \1-----", re.DOTALL)


@dataclass
class Store:
    """Parsed contents of a key or trust store."""

    path: str
    private_key: Optional[Any] = None
    certificates: List[x509.Certificate] = field(default_factory=list)


def _password_bytes(password: Optional[str]) -> Optional[bytes]:
    if not password:
        return None
    return password.encode('utf-8')


def _load_pem(path: str, data: bytes, password: Optional[bytes]) -> Store:
    store = Store(path)
    skipped = []
    for match in PEM_BLOCK.finditer(data):
        label = match.group(1)
        block = match.group(0)
        if label == b"CERTIFICATE":
            store.certificates.append(x509.load_pem_x509_certificate(block))
        elif label.endswith(b"PRIVATE KEY"):
            if store.private_key is not None:
                raise ValueError(f"More than one private key in {path}")
            store.private_key = serialization.load_pem_private_key(block, password=password)
        else:
            skipped.append(label.decode('ascii'))

    if store.private_key is None and not store.certificates:
        if skipped:
            raise ValueError(f"No usable PEM blocks in {path}; unsupported: {', '.join(sorted(set(skipped)))}")
        raise ValueError(f"No PEM certificates or keys found in {path}")
    return store


def _load_pkcs12(path: str, data: bytes, password: Optional[bytes]) -> Store:
    key, cert, additional = pkcs12.load_key_and_certificates(data, password)
    certificates = [cert] if cert is not None else []
    certificates.extend(additional)
    return Store(path, private_key=key, certificates=certificates)


def _load_der(path: str, data: bytes, password: Optional[bytes]) -> Store:
    return Store(path, certificates=[x509.load_der_x509_certificate(data)])


STORE_LOADERS = {
    "PEM": _load_pem,
    "PKCS12": _load_pkcs12,
    "P12": _load_pkcs12,
    "DER": _load_der,
}


def load_store(config: StoreConfig) -> Store:
    """Read and parse a store file.

    Args:
        config: Store location, password and format

    Returns:
        Parsed store

    Raises:
        OSError: the file cannot be read
        ValueError: unknown format, wrong password or corrupt contents
        TypeError: password missing for an encrypted key, or given for a plain one
    """
    loader = STORE_LOADERS.get(config.store_format.upper())
    if loader is None:
        raise ValueError(f"Unsupported store format: {config.store_format}")

    with open(config.path, 'rb') as f:
        data = f.read()

    return loader(config.path, data, _password_bytes(config.password))


def _public_key_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )


class KeyManagers:
    """Private key and certificate chain presented to peers."""

    ALGORITHMS = ("X509",)

    def __init__(self, private_key, chain: List[x509.Certificate]):
        self.private_key = private_key
        self.chain = chain

    @classmethod
    def from_store(cls, store: Store, algorithm: str = DEFAULT_MANAGER_ALGORITHM) -> 'KeyManagers':
        """Derive key managers from a loaded key store.

        The certificate matching the private key becomes the leaf; the
        remaining certificates follow it in store order.
        """
        if algorithm.upper() not in cls.ALGORITHMS:
            raise ValueError(f"Unsupported key manager algorithm: {algorithm}")
        if store.private_key is None:
            raise ValueError(f"No private key found in {store.path}")

        key_der = _public_key_der(store.private_key.public_key())
        leaf = None
        rest = []
        for cert in store.certificates:
            if leaf is None and _public_key_der(cert.public_key()) == key_der:
                leaf = cert
            else:
                rest.append(cert)

        if leaf is None:
            raise ValueError(f"No certificate matching the private key in {store.path}")
        return cls(store.private_key, [leaf] + rest)

    @property
    def certificate(self) -> x509.Certificate:
        return self.chain[0]

    def install(self, context: ssl.SSLContext):
        """Load the chain and key into an SSL context.

        ``load_cert_chain`` only reads from files, so the material is written
        to a private temporary directory with the key encrypted under a
        one-time passphrase.
        """
        passphrase = secrets.token_hex(32).encode('ascii')
        key_pem = self.private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(passphrase)
        )
        chain_pem = b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in self.chain)

        with tempfile.TemporaryDirectory(prefix="ssltransport-") as tmpdir:
            certfile = os.path.join(tmpdir, "chain.pem")
            keyfile = os.path.join(tmpdir, "key.pem")
            with open(certfile, 'wb') as f:
                f.write(chain_pem)
            with open(keyfile, 'wb') as f:
                f.write(key_pem)
            context.load_cert_chain(certfile, keyfile, password=passphrase)


class TrustManagers:
    """Certificate authorities accepted when verifying peers."""

    ALGORITHMS: Dict[str, int] = {
        "X509": 0,
        "X509_STRICT": ssl.VERIFY_X509_STRICT,
        "PARTIAL_CHAIN": ssl.VERIFY_X509_PARTIAL_CHAIN,
    }

    def __init__(self, certificates: List[x509.Certificate], verify_flags: int = 0):
        self.certificates = certificates
        self.verify_flags = verify_flags

    @classmethod
    def from_store(cls, store: Store, algorithm: str = DEFAULT_MANAGER_ALGORITHM) -> 'TrustManagers':
        """Derive trust managers from every certificate in a loaded trust store."""
        flags = cls.ALGORITHMS.get(algorithm.upper())
        if flags is None:
            raise ValueError(f"Unsupported trust manager algorithm: {algorithm}")
        if not store.certificates:
            raise ValueError(f"No certificates found in {store.path}")
        return cls(list(store.certificates), flags)

    def cadata(self) -> str:
        return "".join(cert.public_bytes(serialization.Encoding.PEM).decode('ascii')
                       for cert in self.certificates)

    def install(self, context: ssl.SSLContext):
        """Load the trusted certificates and verification flags into an SSL context."""
        context.load_verify_locations(cadata=self.cadata())
        if self.verify_flags:
            context.verify_flags |= self.verify_flags
