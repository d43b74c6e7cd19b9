"""Self-signed CA and serving certificate for the admission webhook."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

DEFAULT_KEY_SIZE = 4096
DEFAULT_VALIDITY_DAYS = 365
CERT_FILENAME = "tls.crt"
KEY_FILENAME = "tls.key"
CA_FILENAME = "ca.crt"


@dataclass(frozen=True)
class CertBundle:
    ca_cert: bytes
    server_cert: bytes
    server_key: bytes

    def write(self, directory: str | Path) -> tuple[Path, Path]:
        """Write the serving cert and key; the key file is private to the owner."""
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        cert_path = out_dir / CERT_FILENAME
        key_path = out_dir / KEY_FILENAME
        cert_path.write_bytes(self.server_cert)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(self.server_key)
        os.chmod(key_path, 0o600)
        return cert_path, key_path


def service_dns_names(service: str, namespace: str) -> list[str]:
    return [service, f"{service}.{namespace}", f"{service}.{namespace}.svc"]


def _key_usage(*, digital_signature: bool, key_cert_sign: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=digital_signature,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=key_cert_sign,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )


def generate_certs(
    service: str,
    namespace: str,
    *,
    key_size: int = DEFAULT_KEY_SIZE,
    validity_days: int = DEFAULT_VALIDITY_DAYS,
    now: datetime | None = None,
) -> CertBundle:
    not_before = now or datetime.now(timezone.utc)
    not_after = not_before + timedelta(days=validity_days)
    eku = x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH])

    ca_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    ca_name = x509.Name([x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Readiness Controller CA")])
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True, key_cert_sign=True), critical=True)
        .add_extension(eku, critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    dns_names = service_dns_names(service, namespace)
    server_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    server_name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, dns_names[-1]),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Readiness Controller"),
        ]
    )
    server_cert = (
        x509.CertificateBuilder()
        .subject_name(server_name)
        .issuer_name(ca_name)
        .public_key(server_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True, key_cert_sign=False), critical=True)
        .add_extension(eku, critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    return CertBundle(
        ca_cert=ca_cert.public_bytes(serialization.Encoding.PEM),
        server_cert=server_cert.public_bytes(serialization.Encoding.PEM),
        server_key=server_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ),
    )
