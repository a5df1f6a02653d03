# tests/test_identity.py
import pytest
from pathlib import Path

from certledger.core.canon import decode_json
from certledger.crypto.hashing import NONCE_SIZE, new_nonce, transaction_id
from certledger.crypto.keys import SigningKey, certificate_subject, public_key_from_certificate, verify_signature
from certledger.errors import ConfigurationError, EncodingError
from certledger.gateway import GatewayConfig, first_file_in, load_identity, load_signer
from certledger.gateway import protocol


@pytest.fixture
def keys() -> SigningKey:
    return SigningKey.generate()


def test_first_file_in_picks_first_by_name(tmp_path: Path):
    (tmp_path / "b_sk").write_text("b")
    (tmp_path / "a_sk").write_text("a")
    (tmp_path / "subdir").mkdir()
    assert first_file_in(tmp_path).name == "a_sk"


def test_first_file_in_empty_directory(tmp_path: Path):
    (tmp_path / "only-a-dir").mkdir()
    with pytest.raises(ConfigurationError, match="No files"):
        first_file_in(tmp_path)


def test_first_file_in_missing_directory(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="Cannot read directory"):
        first_file_in(tmp_path / "nope")


def test_load_identity_and_signer(dev_crypto):
    identity = load_identity("Org1MSP", dev_crypto.user_cert_dir)
    signer = load_signer(dev_crypto.user_key_dir)
    assert identity.msp_id == "Org1MSP"
    assert identity.credentials.startswith(b"-----BEGIN CERTIFICATE-----")
    assert "User1@org1.example.com" in certificate_subject(identity.credentials)

    # The key in the keystore belongs to the credential in signcerts
    signature = signer.sign(b"payload")
    assert verify_signature(public_key_from_certificate(identity.credentials), signature, b"payload")


def test_load_identity_rejects_garbage(tmp_path: Path):
    (tmp_path / "cert.pem").write_text("not a certificate")
    with pytest.raises(ConfigurationError, match="X.509"):
        load_identity("Org1MSP", tmp_path)


def test_load_signer_rejects_garbage(tmp_path: Path):
    (tmp_path / "priv_sk").write_text("not a key")
    with pytest.raises(ConfigurationError, match="private key"):
        load_signer(tmp_path)


def test_identity_serialize_is_canonical(dev_crypto):
    identity = load_identity("Org1MSP", dev_crypto.user_cert_dir)
    assert decode_json(identity.serialize()) == {
        "mspId": "Org1MSP",
        "credentials": identity.credentials.decode(),
    }


@pytest.mark.parametrize("algorithm", ["ec", "ed25519"])
def test_sign_verify(algorithm):
    key = SigningKey.generate(algorithm)
    sig = key.sign(b"hello")
    assert key.verify(sig, b"hello")
    assert not key.verify(sig, b"hello!")


def test_private_pem_roundtrip(keys: SigningKey):
    restored = SigningKey.from_pem(keys.private_pem())
    assert restored.public_key_b64url() == keys.public_key_b64url()


def test_transaction_id_binds_nonce_and_creator():
    nonce = new_nonce()
    assert len(nonce) == NONCE_SIZE
    tx = transaction_id(nonce, b"creator")
    assert len(tx) == 64
    assert tx == transaction_id(nonce, b"creator")
    assert tx != transaction_id(nonce, b"other")
    assert tx != transaction_id(new_nonce(), b"creator")


def test_seal_unseal(keys: SigningKey):
    envelope = protocol.seal({"b": 1, "a": [1, 2]}, keys)
    payload, payload_bytes, signature = protocol.unseal(envelope)
    assert payload == {"a": [1, 2], "b": 1}
    assert payload_bytes == b'{"a":[1,2],"b":1}'
    assert keys.verify(signature, payload_bytes)


def test_unseal_malformed():
    with pytest.raises(EncodingError):
        protocol.unseal({"payload": "e30"})


def test_proposal_from_dict_rejects_non_string_args():
    with pytest.raises(EncodingError):
        protocol.Proposal.from_dict({
            "channel": "mychannel", "chaincode": "basic", "operation": "ReadAsset",
            "args": [1], "txId": "t", "nonce": "n", "creator": {},
        })


def test_config_from_crypto_path(tmp_path: Path):
    cfg = GatewayConfig.from_crypto_path(tmp_path)
    assert cfg.tls_cert_path == tmp_path / "peers" / "peer0.org1.example.com" / "tls" / "ca.crt"
    assert cfg.cert_directory_path == tmp_path / "users" / "User1@org1.example.com" / "msp" / "signcerts"
    assert cfg.key_directory_path.name == "keystore"
    assert cfg.peer_endpoint == "localhost:7051"
    assert cfg.evaluate_timeout == 5.0
    assert cfg.endorse_timeout == 15.0
    assert cfg.submit_timeout == 5.0
    assert cfg.commit_status_timeout == 60.0


def test_config_from_env_precedence(tmp_path: Path):
    env = {
        "CRYPTO_PATH": str(tmp_path),
        "PEER_ENDPOINT": "peer.example:9051",
        "MSP_ID": "Org2MSP",
        "EVALUATE_TIMEOUT": "2.5",
        "KEY_DIRECTORY_PATH": str(tmp_path / "keys"),
    }
    cfg = GatewayConfig.from_env(env, msp_id="Org3MSP", channel_name=None)
    assert cfg.peer_endpoint == "peer.example:9051"
    assert cfg.msp_id == "Org3MSP"          # flag beats env
    assert cfg.channel_name == "mychannel"  # None override ignored
    assert cfg.evaluate_timeout == 2.5
    assert cfg.key_directory_path == tmp_path / "keys"
    assert cfg.tls_cert_path.is_relative_to(tmp_path)


@pytest.mark.parametrize("raw", ["soon", "0", "-1"])
def test_config_rejects_bad_timeout(raw):
    with pytest.raises(ConfigurationError, match="EVALUATE_TIMEOUT"):
        GatewayConfig.from_env({"EVALUATE_TIMEOUT": raw})
