"""
tls.py — self-signed certificates and SSL contexts for the relay stream.

Why this exists:
- Relay traffic is plain text otherwise; TLS keeps it off the wire.
- For local/demo use a self-signed certificate is enough: clients pin it by
  loading the same cert.pem as their CA file.

Notes:
- RSA-2048 + SHA-256, valid for `days` from now.
- The certificate names every host it will be reached by (DNS names and IP
  literals both go into subjectAltName).
- This is transport encryption only. It does not identify users.
"""

import datetime
import ipaddress
import ssl
from pathlib import Path
from typing import Iterable, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

DEFAULT_HOSTS = ("localhost", "127.0.0.1")


def _san_entries(hosts: Iterable[str]):
    entries = []
    for host in hosts:
        try:
            entries.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            entries.append(x509.DNSName(host))
    return entries


def generate_self_signed(
    common_name: str = "chatrelay",
    hosts: Iterable[str] = DEFAULT_HOSTS,
    days: int = 365,
) -> Tuple[bytes, bytes]:
    """Return (cert_pem, key_pem) for a fresh self-signed certificate."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    ski = x509.SubjectKeyIdentifier.from_public_key(key.public_key())

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=days))
        .add_extension(x509.SubjectAlternativeName(_san_entries(hosts)), critical=False)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(ski, critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski), critical=False
        )
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def write_self_signed(
    cert_path,
    key_path,
    common_name: str = "chatrelay",
    hosts: Iterable[str] = DEFAULT_HOSTS,
    days: int = 365,
) -> Tuple[Path, Path]:
    """Generate a certificate pair and write both PEM files (parents created)."""
    cert_path, key_path = Path(cert_path), Path(key_path)
    cert_pem, key_pem = generate_self_signed(common_name, hosts, days)
    cert_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    cert_path.write_bytes(cert_pem)
    key_path.write_bytes(key_pem)
    key_path.chmod(0o600)
    return cert_path, key_path


def server_context(cert_file, key_file) -> ssl.SSLContext:
    """SSL context for the listener."""
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.load_cert_chain(str(cert_file), str(key_file))
    return ctx


def client_context(cafile: Optional[str] = None) -> ssl.SSLContext:
    """SSL context for clients; pass the relay's cert.pem to trust a self-signed relay."""
    ctx = ssl.create_default_context(cafile=str(cafile) if cafile else None)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    return ctx
