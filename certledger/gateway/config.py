# certledger/gateway/config.py
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping, Optional

from certledger.errors import ConfigurationError

DEFAULT_CRYPTO_PATH = "crypto"
DEFAULT_PEER_HOST = "peer0.org1.example.com"
DEFAULT_USER = "User1@org1.example.com"


@dataclass(frozen=True)
class GatewayConfig:
    """
    Everything a GatewaySession needs to reach the ledger network.

    Deadlines are per call class: evaluate is one round trip to one peer;
    submit is endorse, then submit to ordering, then wait for commit status.
    """
    tls_cert_path: Path
    cert_directory_path: Path
    key_directory_path: Path
    peer_endpoint: str = "localhost:7051"
    peer_host_alias: str = DEFAULT_PEER_HOST
    msp_id: str = "Org1MSP"
    channel_name: str = "mychannel"
    chaincode_name: str = "basic"
    evaluate_timeout: float = 5.0
    endorse_timeout: float = 15.0
    submit_timeout: float = 5.0
    commit_status_timeout: float = 60.0

    @classmethod
    def from_crypto_path(cls, crypto_path: str | Path, **overrides) -> "GatewayConfig":
        """Default file layout of a (test-network style) organization folder."""
        root = Path(crypto_path)
        user_msp = root / "users" / DEFAULT_USER / "msp"
        peer_host = overrides.get("peer_host_alias", DEFAULT_PEER_HOST)
        base = cls(
            tls_cert_path=root / "peers" / peer_host / "tls" / "ca.crt",
            cert_directory_path=user_msp / "signcerts",
            key_directory_path=user_msp / "keystore",
        )
        overrides = {k: Path(v) if k.endswith("_path") else v for k, v in overrides.items()}
        return replace(base, **overrides)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "GatewayConfig":
        """
        Resolve settings in this order:
        1. keyword overrides (CLI flags)
        2. environment variables (PEER_ENDPOINT, TLS_CERT_PATH, ...)
        3. defaults derived from CRYPTO_PATH (default: ./crypto)
        """
        env = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = env.get(f.name.upper())
            if raw is None or raw == "":
                continue
            if f.name.endswith("_timeout"):
                values[f.name] = _parse_timeout(f.name, raw)
            elif f.name.endswith("_path"):
                values[f.name] = Path(raw)
            else:
                values[f.name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_crypto_path(env.get("CRYPTO_PATH") or DEFAULT_CRYPTO_PATH, **values)


def _parse_timeout(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name.upper()} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name.upper()} must be positive, got {raw!r}")
    return value
