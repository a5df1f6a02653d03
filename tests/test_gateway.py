# tests/test_gateway.py
import json
import socket
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import grpc
import pytest

from certledger.core.canon import decode_json
from certledger.core.types import Certificate
from certledger.errors import (
    ConfigurationError,
    ConflictError,
    EncodingError,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    NotFoundError,
    TransactionRejectedError,
    ValidationError,
)
from certledger.gateway import CertificateClient, GatewaySession
from certledger.gateway.session import translate_rpc_error


@pytest.fixture
def client(session: GatewaySession) -> CertificateClient:
    return CertificateClient(session)


def test_end_to_end_scenario(client: CertificateClient, peer, make_record):
    client.init_ledger()
    assert len(client.list_all()) == 3

    created = client.create(make_record("CERT-E2E-1"))
    assert created.record_type == "certificate"
    assert client.read("CERT-E2E-1").subject_id == "learner900"

    assert client.transfer("CERT-E2E-1", "learner555") == "learner900"
    assert client.read("CERT-E2E-1").subject_id == "learner555"

    client.update(make_record("CERT-E2E-1", status="Issued"))
    assert client.read("CERT-E2E-1").status == "Issued"

    client.delete("CERT-E2E-1")
    assert not client.exists("CERT-E2E-1")
    assert [c.record_id for c in client.list_all()] == [
        "CERT-2025-ORG1-00001", "CERT-2025-ORG1-00002", "CERT-2025-ORG1-00003",
    ]
    # Bootstrap + create + transfer + update + delete, one block each
    assert peer.ledger.height == 5


def test_submit_returns_after_commit(session: GatewaySession, peer, record):
    client = CertificateClient(session)
    client.create(record)
    # Visible to the very next evaluate
    assert peer.ledger.world_state.get_state(record["recordId"]) is not None
    assert client.exists(record["recordId"])


def test_evaluate_never_mutates(session: GatewaySession, peer, record):
    result = session.evaluate("CreateAsset", json.dumps(record))
    assert decode_json(result)["recordId"] == record["recordId"]
    assert len(peer.ledger.world_state) == 0
    assert peer.ledger.height == 0


def test_create_duplicate_raises_conflict(client: CertificateClient, record):
    client.create(record)
    with pytest.raises(ConflictError, match="already exists"):
        client.create(record)


def test_read_missing_raises_not_found(client: CertificateClient):
    with pytest.raises(NotFoundError, match="CERT-404"):
        client.read("CERT-404")


def test_update_and_delete_missing(client: CertificateClient, record):
    with pytest.raises(NotFoundError):
        client.update(record)
    with pytest.raises(NotFoundError):
        client.delete(record["recordId"])
    with pytest.raises(NotFoundError):
        client.transfer(record["recordId"], "learner1")


def test_client_validates_before_sending(client: CertificateClient, peer):
    with pytest.raises(ValidationError):
        client.create({"subjectId": "no-id"})
    assert peer.ledger.height == 0


def test_client_rejects_malformed_approval_before_sending(client: CertificateClient, peer):
    with pytest.raises(ValidationError, match="approverIds"):
        client.create({"recordId": "R-2", "approval": {"approverIds": None}})
    assert not client.exists("R-2")
    assert peer.ledger.height == 0


def test_client_rejects_unsafe_integers_before_sending(client: CertificateClient, peer):
    with pytest.raises(EncodingError):
        client.create({"recordId": "R-4", "serial": 12345678901234567891})
    assert peer.ledger.height == 0


def test_typed_certificate_accepted(client: CertificateClient):
    cert = Certificate(record_id="CERT-TYPED", subject_id="learner1", status="Pending")
    created = client.create(cert)
    assert created.record_id == "CERT-TYPED"
    assert client.read_raw("CERT-TYPED")["recordType"] == "certificate"


def test_list_all_keeps_non_certificate_entries(client: CertificateClient, peer, record):
    client.create(record)
    peer.ledger.world_state.put_state("000-legacy", b'"just a string"')
    entries = client.list_all()
    assert entries[0] == "just a string"
    assert isinstance(entries[1], Certificate)


def test_list_all_keeps_records_with_malformed_nested_fields(client: CertificateClient, peer, record):
    client.create(record)
    broken = {"recordId": "AAA-broken", "approval": {"approverIds": None}}
    peer.ledger.world_state.put_state("AAA-broken", json.dumps(broken).encode())
    entries = client.list_all()
    assert entries[0] == broken
    assert isinstance(entries[1], Certificate)

    with pytest.raises(ValidationError):
        client.read("AAA-broken")
    assert client.read_raw("AAA-broken") == broken


def test_non_string_arguments_rejected(session: GatewaySession):
    with pytest.raises(ValidationError, match="strings"):
        session.evaluate("ReadAsset", 42)


def test_unknown_operation_rejected(session: GatewaySession):
    with pytest.raises(ValidationError, match="Unknown operation"):
        session.evaluate("BurnAsset")


def test_wrong_channel_rejected(gateway_config):
    with GatewaySession(replace(gateway_config, channel_name="otherchannel")) as s:
        with pytest.raises(TransactionRejectedError) as exc:
            s.evaluate("GetAllAssets")
    assert exc.value.code == "NOT_FOUND"
    assert exc.value.stage == "evaluate"


def test_foreign_msp_rejected(gateway_config):
    with GatewaySession(replace(gateway_config, msp_id="Org9MSP")) as s:
        with pytest.raises(TransactionRejectedError) as exc:
            s.evaluate("GetAllAssets")
    assert exc.value.code == "PERMISSION_DENIED"


def test_concurrent_submits_share_one_session(client: CertificateClient, peer, make_record):
    ids = [f"CERT-CONC-{i}" for i in range(8)]
    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda rid: client.create(make_record(rid)), ids))
    assert sorted(c.record_id for c in client.list_all()) == ids
    assert peer.ledger.height == len(ids)


def test_session_not_open(gateway_config):
    with pytest.raises(GatewayError, match="not open"):
        GatewaySession(gateway_config).evaluate("GetAllAssets")


def test_close_is_idempotent(gateway_config):
    s = GatewaySession(gateway_config)
    s.close()  # never opened
    s.open()
    assert s.is_open
    s.close()
    s.close()
    assert not s.is_open


def test_open_missing_credentials(tmp_path, gateway_config):
    with pytest.raises(ConfigurationError):
        GatewaySession(replace(gateway_config, cert_directory_path=tmp_path / "empty")).open()


def test_unreachable_peer_is_unavailable(gateway_config):
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()

    with GatewaySession(replace(gateway_config, peer_endpoint=f"127.0.0.1:{port}")) as s:
        with pytest.raises(GatewayUnavailableError):
            s.evaluate("GetAllAssets")


def test_silent_peer_times_out(gateway_config):
    # Accepts TCP connections but never completes the TLS handshake
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    port = sock.getsockname()[1]
    try:
        cfg = replace(gateway_config, peer_endpoint=f"127.0.0.1:{port}", evaluate_timeout=0.5)
        with GatewaySession(cfg) as s:
            with pytest.raises(GatewayTimeoutError) as exc:
                s.evaluate("GetAllAssets")
        assert exc.value.stage == "evaluate"
    finally:
        sock.close()


class FakeRpcError(grpc.RpcError):
    def __init__(self, code, details="boom", metadata=()):
        self._code, self._details, self._metadata = code, details, metadata

    def code(self):
        return self._code

    def details(self):
        return self._details

    def trailing_metadata(self):
        return self._metadata


@pytest.mark.parametrize("code, metadata, expected", [
    (grpc.StatusCode.NOT_FOUND, (("certledger-error-kind", "not_found"),), NotFoundError),
    (grpc.StatusCode.ALREADY_EXISTS, (("certledger-error-kind", "conflict"),), ConflictError),
    (grpc.StatusCode.INVALID_ARGUMENT, (("certledger-error-kind", "validation"),), ValidationError),
    (grpc.StatusCode.ALREADY_EXISTS, (), ConflictError),
    (grpc.StatusCode.DEADLINE_EXCEEDED, (), GatewayTimeoutError),
    (grpc.StatusCode.UNAVAILABLE, (), GatewayUnavailableError),
    (grpc.StatusCode.PERMISSION_DENIED, (("certledger-error-kind", "rejected"),), TransactionRejectedError),
    (grpc.StatusCode.INTERNAL, (), TransactionRejectedError),
])
def test_translate_rpc_error(code, metadata, expected):
    error = translate_rpc_error(FakeRpcError(code, metadata=metadata), "endorse")
    assert type(error) is expected
    assert "boom" in error.detail
