"""Shared fixtures: a throwaway PKI written out as PEM, DER and PKCS12 stores."""

import datetime
import ipaddress
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

PASSWORD = "changeit"


def _name(common_name):
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _key_usage(ca):
    return x509.KeyUsage(
        digital_signature=not ca,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=ca,
        crl_sign=ca,
        encipher_only=False,
        decipher_only=False
    )


def _issue(key, common_name, issuer_key=None, issuer_name=None, usage=None, san=None):
    now = datetime.datetime.now(datetime.timezone.utc)
    ca = issuer_key is None
    issuer_key = issuer_key or key
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(issuer_name or _name(common_name))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(_key_usage(ca), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
                       critical=False)
    )
    if usage is not None:
        builder = builder.add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
    if san is not None:
        builder = builder.add_extension(x509.SubjectAlternativeName(san), critical=False)
    return builder.sign(issuer_key, hashes.SHA256())


def _pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def _key_pem(key, password):
    encryption = (serialization.BestAvailableEncryption(password.encode())
                  if password else serialization.NoEncryption())
    return key.private_bytes(serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, encryption)


@pytest.fixture(scope="session")
def pki(tmp_path_factory):
    """CA, server and client material for loopback TLS tests."""
    root = tmp_path_factory.mktemp("pki")

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_cert = _issue(ca_key, "Test CA")

    server_key = ec.generate_private_key(ec.SECP256R1())
    server_cert = _issue(
        server_key, "localhost", ca_key, ca_cert.subject, ExtendedKeyUsageOID.SERVER_AUTH,
        [x509.DNSName("localhost"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))]
    )

    client_key = ec.generate_private_key(ec.SECP256R1())
    client_cert = _issue(client_key, "client", ca_key, ca_cert.subject, ExtendedKeyUsageOID.CLIENT_AUTH,
                         [x509.DNSName("client")])

    rogue_ca_key = ec.generate_private_key(ec.SECP256R1())
    rogue_ca_cert = _issue(rogue_ca_key, "Rogue CA")
    rogue_key = ec.generate_private_key(ec.SECP256R1())
    rogue_cert = _issue(rogue_key, "rogue", rogue_ca_key, rogue_ca_cert.subject,
                        ExtendedKeyUsageOID.CLIENT_AUTH, [x509.DNSName("rogue")])

    paths = SimpleNamespace(
        password=PASSWORD,
        ca_cert=ca_cert,
        server_cert=server_cert,
        client_cert=client_cert,
        ca_pem=root / "ca.pem",
        ca_der=root / "ca.der",
        ca_p12=root / "ca.p12",
        server_pem=root / "server.pem",
        server_plain_pem=root / "server-plain.pem",
        server_reordered_pem=root / "server-reordered.pem",
        server_p12=root / "server.p12",
        client_pem=root / "client.pem",
        rogue_pem=root / "rogue.pem",
    )

    paths.ca_pem.write_bytes(_pem(ca_cert))
    paths.ca_der.write_bytes(ca_cert.public_bytes(serialization.Encoding.DER))
    paths.ca_p12.write_bytes(pkcs12.serialize_key_and_certificates(
        None, None, None, [ca_cert], serialization.BestAvailableEncryption(PASSWORD.encode())
    ))

    paths.server_pem.write_bytes(_key_pem(server_key, PASSWORD) + _pem(server_cert) + _pem(ca_cert))
    paths.server_plain_pem.write_bytes(_key_pem(server_key, None) + _pem(server_cert))
    paths.server_reordered_pem.write_bytes(_pem(ca_cert) + _key_pem(server_key, PASSWORD) + _pem(server_cert))
    paths.server_p12.write_bytes(pkcs12.serialize_key_and_certificates(
        b"server", server_key, server_cert, [ca_cert],
        serialization.BestAvailableEncryption(PASSWORD.encode())
    ))

    paths.client_pem.write_bytes(_key_pem(client_key, PASSWORD) + _pem(client_cert) + _pem(ca_cert))
    paths.rogue_pem.write_bytes(_key_pem(rogue_key, PASSWORD) + _pem(rogue_cert) + _pem(rogue_ca_cert))

    for name, value in vars(paths).items():
        if name.endswith(("_pem", "_der", "_p12")):
            setattr(paths, name, str(value))

    return paths
