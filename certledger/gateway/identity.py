# certledger/gateway/identity.py
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from certledger.core.canon import canonical_json
from certledger.crypto.keys import SigningKey, public_key_from_certificate
from certledger.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Caller identity: MSP id plus the PEM X.509 credential."""
    msp_id: str
    credentials: bytes

    def to_dict(self) -> Dict[str, str]:
        return {"mspId": self.msp_id, "credentials": self.credentials.decode("utf-8")}

    def serialize(self) -> bytes:
        return canonical_json(self.to_dict())


def first_file_in(directory: str | Path) -> Path:
    """The single credential/key file expected in ``directory`` (first in name order)."""
    directory = Path(directory)
    try:
        files = sorted(p for p in directory.iterdir() if p.is_file())
    except OSError as e:
        raise ConfigurationError(f"Cannot read directory {directory}: {e}") from e
    if not files:
        raise ConfigurationError(f"No files in directory: {directory}")
    if len(files) > 1:
        logger.warning("Expected one file in %s, using %s", directory, files[0].name)
    return files[0]


def _read(path: Path, what: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read {what} {path}: {e}") from e


def load_identity(msp_id: str, cert_directory: str | Path) -> Identity:
    cert_path = first_file_in(cert_directory)
    credentials = _read(cert_path, "credential")
    public_key_from_certificate(credentials)   # fail now, not on the first call
    return Identity(msp_id=msp_id, credentials=credentials)


def load_signer(key_directory: str | Path) -> SigningKey:
    key_path = first_file_in(key_directory)
    return SigningKey.from_pem(_read(key_path, "private key"))


def read_tls_root(tls_cert_path: str | Path) -> bytes:
    return _read(Path(tls_cert_path), "TLS root certificate")
