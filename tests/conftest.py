# tests/conftest.py
from typing import Generator

import pytest

from certledger.crypto.pki import DevCrypto, generate_dev_crypto
from certledger.gateway import GatewayConfig, GatewaySession
from certledger.peer import PeerConfig, PeerServer


@pytest.fixture(scope="session")
def dev_crypto(tmp_path_factory) -> DevCrypto:
    """One development PKI for the whole run (key generation is the slow part)."""
    return generate_dev_crypto(tmp_path_factory.mktemp("crypto"))


@pytest.fixture
def peer(dev_crypto: DevCrypto) -> Generator[PeerServer, None, None]:
    """Running peer on a free port with an in-memory world state."""
    server = PeerServer.from_config(
        PeerConfig.from_crypto_path(dev_crypto.root, listen_address="127.0.0.1:0")
    )
    server.start()
    yield server
    server.stop(grace=None)


@pytest.fixture
def gateway_config(dev_crypto: DevCrypto, peer: PeerServer) -> GatewayConfig:
    return GatewayConfig.from_crypto_path(dev_crypto.root, peer_endpoint=f"127.0.0.1:{peer.port}")


@pytest.fixture
def session(gateway_config: GatewayConfig) -> Generator[GatewaySession, None, None]:
    with GatewaySession(gateway_config) as s:
        yield s


def sample_record(record_id: str = "CERT-TEST-0001", **extra) -> dict:
    record = {
        "recordId": record_id,
        "subjectId": "learner900",
        "issuer": {"issuerId": "issuer900", "issueDate": "2025-12-10T08:00:00Z"},
        "approval": {"approverIds": [], "stages": [], "approved": False, "approvedDate": None},
        "payload": {"name": "Welding Certificate", "category": "Trades", "level": "Level 2"},
        "status": "Pending",
    }
    record.update(extra)
    return record


@pytest.fixture
def record() -> dict:
    return sample_record()


@pytest.fixture
def make_record():
    return sample_record
