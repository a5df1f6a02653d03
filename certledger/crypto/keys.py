# certledger/crypto/keys.py
from typing import Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from certledger.core.encoding import b64url_encode
from certledger.errors import ConfigurationError

PrivateKey = Union[ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey]
PublicKey = Union[ec.EllipticCurvePublicKey, ed25519.Ed25519PublicKey]


class SigningKey:
    """
    Private signing key of a caller or peer.

    EC keys sign with ECDSA over SHA-256 (what Fabric MSP identities use),
    Ed25519 keys sign the raw payload.
    """

    def __init__(self, private_key: PrivateKey):
        if not isinstance(private_key, (ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey)):
            raise ConfigurationError(f"Unsupported private key type: {type(private_key).__name__}")
        self._private_key = private_key

    @classmethod
    def generate(cls, algorithm: str = "ec") -> "SigningKey":
        if algorithm == "ec":
            return cls(ec.generate_private_key(ec.SECP256R1()))
        if algorithm == "ed25519":
            return cls(ed25519.Ed25519PrivateKey.generate())
        raise ValueError(f"Unknown key algorithm: {algorithm}")

    @classmethod
    def from_pem(cls, pem: bytes) -> "SigningKey":
        try:
            key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Cannot parse private key: {e}") from e
        return cls(key)

    @property
    def private_key(self) -> PrivateKey:
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        return self._private_key.public_key()

    def sign(self, data: bytes) -> bytes:
        if isinstance(self._private_key, ec.EllipticCurvePrivateKey):
            return self._private_key.sign(data, ec.ECDSA(hashes.SHA256()))
        return self._private_key.sign(data)

    def verify(self, signature: bytes, data: bytes) -> bool:
        return verify_signature(self.public_key, signature, data)

    def private_pem(self) -> bytes:
        return self._private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    def public_key_b64url(self) -> str:
        """DER SubjectPublicKeyInfo, base64url (handy for logs and key maps)."""
        der = self.public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return b64url_encode(der)


def verify_signature(public_key: PublicKey, signature: bytes, data: bytes) -> bool:
    try:
        if isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        elif isinstance(public_key, ed25519.Ed25519PublicKey):
            public_key.verify(signature, data)
        else:
            return False
    except InvalidSignature:
        return False
    return True


def public_key_from_certificate(cert_pem: bytes) -> PublicKey:
    """Public key of a PEM X.509 credential."""
    try:
        cert = x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise ConfigurationError(f"Cannot parse X.509 credential: {e}") from e
    return cert.public_key()


def certificate_subject(cert_pem: bytes) -> str:
    return x509.load_pem_x509_certificate(cert_pem).subject.rfc4514_string()
