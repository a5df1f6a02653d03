# tests/test_cli.py
import json
import socket
from pathlib import Path

import pytest
from typer.testing import CliRunner

from certledger.cli.main import app
from certledger.contract import CertificateContract, TransactionContext
from certledger.state import SQLiteWorldState

runner = CliRunner()


@pytest.fixture
def gw(dev_crypto, peer):
    """Global options pointing the CLI at the test peer."""
    return ["--crypto-path", str(dev_crypto.root), "--endpoint", f"127.0.0.1:{peer.port}"]


@pytest.fixture
def state_db(tmp_path: Path) -> Path:
    """SQLite world state holding the seed certificates."""
    db_path = tmp_path / "state.db"
    with SQLiteWorldState(db_path) as ws:
        ctx = TransactionContext(ws)
        CertificateContract().invoke(ctx, "Bootstrap", [])
        ws.apply(ctx.write_set)
    return db_path


def test_init_crypto(tmp_path: Path):
    out = tmp_path / "crypto"
    result = runner.invoke(app, ["init-crypto", "--output", str(out)])
    assert result.exit_code == 0, result.stdout
    assert (out / "peers" / "peer0.org1.example.com" / "tls" / "ca.crt").exists()
    assert (out / "users" / "User1@org1.example.com" / "msp" / "keystore" / "priv_sk").exists()
    assert "User1@org1.example.com" in result.stdout


def test_bootstrap_and_list(gw):
    result = runner.invoke(app, [*gw, "bootstrap"])
    assert result.exit_code == 0, result.stdout
    assert "initialized" in result.stdout

    result = runner.invoke(app, [*gw, "list"])
    assert result.exit_code == 0, result.stdout
    assert "Found 3 certificates" in result.stdout


def test_list_empty(gw):
    result = runner.invoke(app, [*gw, "list"])
    assert result.exit_code == 0
    assert "No certificates found" in result.stdout


def test_create_read_update_transfer_delete(gw, tmp_path: Path, make_record):
    record_file = tmp_path / "cert.json"
    record_file.write_text(json.dumps(make_record("CERT-CLI-1")), encoding="utf-8")

    result = runner.invoke(app, [*gw, "create", f"@{record_file}"])
    assert result.exit_code == 0, result.stdout
    assert "CERT-CLI-1 created" in result.stdout

    result = runner.invoke(app, [*gw, "read", "CERT-CLI-1"])
    assert result.exit_code == 0
    assert "learner900" in result.stdout
    assert '"recordType": "certificate"' in result.stdout

    updated = json.dumps(make_record("CERT-CLI-1", status="Issued"))
    result = runner.invoke(app, [*gw, "update", updated])
    assert result.exit_code == 0, result.stdout
    assert "CERT-CLI-1 updated" in result.stdout

    result = runner.invoke(app, [*gw, "transfer", "CERT-CLI-1", "learner999"])
    assert result.exit_code == 0
    assert "learner900 -> learner999" in result.stdout

    result = runner.invoke(app, [*gw, "exists", "CERT-CLI-1"])
    assert result.exit_code == 0
    assert "exists" in result.stdout

    result = runner.invoke(app, [*gw, "delete", "CERT-CLI-1"])
    assert result.exit_code == 0
    assert "deleted" in result.stdout

    result = runner.invoke(app, [*gw, "exists", "CERT-CLI-1"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_read_missing(gw):
    result = runner.invoke(app, [*gw, "read", "CERT-404"])
    assert result.exit_code == 1
    assert "NotFoundError" in result.stdout


def test_create_duplicate(gw, make_record):
    record = json.dumps(make_record("CERT-DUP"))
    assert runner.invoke(app, [*gw, "create", record]).exit_code == 0
    result = runner.invoke(app, [*gw, "create", record])
    assert result.exit_code == 1
    assert "ConflictError" in result.stdout


@pytest.mark.parametrize("payload", ["{not json", "[1, 2]"])
def test_create_rejects_bad_json(gw, payload):
    result = runner.invoke(app, [*gw, "create", payload])
    assert result.exit_code == 1
    assert "Certificate JSON" in result.stdout or "Invalid certificate JSON" in result.stdout


def test_peer_unreachable(dev_crypto):
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()

    result = runner.invoke(app, ["--crypto-path", str(dev_crypto.root), "--endpoint", f"127.0.0.1:{port}", "list"])
    assert result.exit_code == 1
    assert "Cannot connect" in result.stdout


def test_missing_crypto_material(tmp_path: Path):
    result = runner.invoke(app, ["--crypto-path", str(tmp_path / "nothing"), "list"])
    assert result.exit_code == 1
    assert "ConfigurationError" in result.stdout


def test_audit_valid(state_db: Path):
    result = runner.invoke(app, ["audit", "--state", f"sqlite://{state_db}"])
    assert result.exit_code == 0, result.stdout
    assert "3 entries checked" in result.stdout


def test_audit_reports_failures(state_db: Path):
    with SQLiteWorldState(state_db) as ws:
        ws.put_state("CERT-BROKEN", b"{oops")
    result = runner.invoke(app, ["audit", "--state", f"sqlite://{state_db}"])
    assert result.exit_code == 1
    assert "Audit failed" in result.stdout
    assert "CERT-BROKEN" in result.stdout


def test_audit_bad_uri():
    result = runner.invoke(app, ["audit", "--state", "postgres://nowhere"])
    assert result.exit_code == 1
    assert "Failed to open world state" in result.stdout


def test_peer_without_crypto(tmp_path: Path):
    result = runner.invoke(app, ["--crypto-path", str(tmp_path / "nothing"), "peer", "--listen", "127.0.0.1:0"])
    assert result.exit_code == 1
    assert "Failed to start peer" in result.stdout


def test_list_with_non_object_payload(gw):
    result = runner.invoke(app, [*gw, "create", '{"recordId": "R-3", "payload": "free text"}'])
    assert result.exit_code == 0, result.stdout

    result = runner.invoke(app, [*gw, "list"])
    assert result.exit_code == 0, result.stdout
    assert "R-3" in result.stdout
    assert "Found 1 certificates" in result.stdout


def test_create_from_missing_file(tmp_path: Path):
    result = runner.invoke(app, ["create", f"@{tmp_path / 'missing.json'}"])
    assert result.exit_code == 1
    assert "Cannot read certificate file" in result.stdout
    assert not isinstance(result.exception, FileNotFoundError)


def test_create_with_malformed_approval(gw):
    result = runner.invoke(app, [*gw, "create", '{"recordId": "R-2", "approval": {"approverIds": null}}'])
    assert result.exit_code == 1
    assert "ValidationError" in result.stdout
