# certledger/crypto/pki.py
"""
Development PKI: a throwaway CA plus the peer TLS, peer signing and user
credentials, laid out like the Fabric test network's organization folder
so the gateway's default paths resolve against it.
"""

import ipaddress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from .keys import SigningKey


def issue_certificate(
    common_name: str,
    key: SigningKey,
    issuer: Optional[Tuple[x509.Certificate, SigningKey]] = None,
    hosts: Sequence[str] = (),
    is_ca: bool = False,
    days: int = 365,
) -> x509.Certificate:
    """Issue an X.509 certificate for ``key``; self-signed when ``issuer`` is None."""
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    if issuer is None:
        issuer_name, issuer_key = subject, key
    else:
        issuer_name, issuer_key = issuer[0].subject, issuer[1]

    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=days))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
    )
    if hosts:
        names = []
        for host in hosts:
            try:
                names.append(x509.IPAddress(ipaddress.ip_address(host)))
            except ValueError:
                names.append(x509.DNSName(host))
        builder = builder.add_extension(x509.SubjectAlternativeName(names), critical=False)

    return builder.sign(issuer_key.private_key, hashes.SHA256())


def cert_pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


@dataclass(frozen=True)
class DevCrypto:
    """Paths of the generated material."""
    root: Path
    tls_ca_cert: Path
    peer_tls_cert: Path
    peer_tls_key: Path
    peer_signing_key: Path
    user_cert_dir: Path
    user_key_dir: Path


def _write(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def generate_dev_crypto(
    root: Path,
    org_domain: str = "org1.example.com",
    peer_host: str = "peer0.org1.example.com",
    user: str = "User1",
) -> DevCrypto:
    root = Path(root)
    ca_key = SigningKey.generate()
    ca_cert = issue_certificate(f"ca.{org_domain}", ca_key, is_ca=True)

    peer_dir = root / "peers" / peer_host
    tls_key = SigningKey.generate()
    tls_cert = issue_certificate(peer_host, tls_key, issuer=(ca_cert, ca_key),
                                 hosts=(peer_host, "localhost", "127.0.0.1"))
    peer_key = SigningKey.generate()

    user_dir = root / "users" / f"{user}@{org_domain}" / "msp"
    user_key = SigningKey.generate()
    user_cert = issue_certificate(f"{user}@{org_domain}", user_key, issuer=(ca_cert, ca_key))

    return DevCrypto(
        root=root,
        tls_ca_cert=_write(peer_dir / "tls" / "ca.crt", cert_pem(ca_cert)),
        peer_tls_cert=_write(peer_dir / "tls" / "server.crt", cert_pem(tls_cert)),
        peer_tls_key=_write(peer_dir / "tls" / "server.key", tls_key.private_pem()),
        peer_signing_key=_write(peer_dir / "msp" / "keystore" / "priv_sk", peer_key.private_pem()),
        user_cert_dir=_write(user_dir / "signcerts" / "cert.pem", cert_pem(user_cert)).parent,
        user_key_dir=_write(user_dir / "keystore" / "priv_sk", user_key.private_pem()).parent,
    )
