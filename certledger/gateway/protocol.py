# certledger/gateway/protocol.py
"""
Wire protocol of the ``certledger.Gateway`` gRPC service.

Messages are canonical JSON objects. Anything a peer has to trust travels as
a signed envelope: ``{"payload": b64url(canonical bytes), "signature": b64url}``,
the signature made by the creator's key over the exact payload bytes.

Methods:
    Evaluate      signed proposal            -> {"result"}
    Endorse       signed proposal            -> {"txId", "result", "writeSet", "endorsement"}
    Submit        signed {"proposal", "response"} -> {"txId", "status"}
    CommitStatus  signed {"txId", "creator"} -> {"txId", "code", "blockNumber"}
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from certledger.core.canon import canonical_json, decode_json
from certledger.core.encoding import b64url_decode, b64url_encode
from certledger.errors import EncodingError
from certledger.state import Write

SERVICE = "certledger.Gateway"
EVALUATE = "Evaluate"
ENDORSE = "Endorse"
SUBMIT = "Submit"
COMMIT_STATUS = "CommitStatus"

# Trailing metadata key naming the LedgerError kind of a failed call.
ERROR_KIND_KEY = "certledger-error-kind"

VALID = "VALID"


def method_path(method: str) -> str:
    return f"/{SERVICE}/{method}"


def encode_message(message: Dict[str, Any]) -> bytes:
    return canonical_json(message)


def decode_message(data: bytes) -> Dict[str, Any]:
    message = decode_json(data)
    if not isinstance(message, dict):
        raise EncodingError("Gateway message must be a JSON object")
    return message


def seal(payload: Dict[str, Any], signer) -> Dict[str, str]:
    """Wrap ``payload`` in an envelope signed by ``signer`` (a SigningKey)."""
    payload_bytes = canonical_json(payload)
    return {
        "payload": b64url_encode(payload_bytes),
        "signature": b64url_encode(signer.sign(payload_bytes)),
    }


def unseal(envelope: Dict[str, Any]) -> Tuple[Dict[str, Any], bytes, bytes]:
    """Return (payload, payload bytes, signature) without checking the signature."""
    try:
        payload_bytes = b64url_decode(envelope["payload"])
        signature = b64url_decode(envelope["signature"])
    except (KeyError, TypeError) as e:
        raise EncodingError(f"Malformed envelope: missing {e}") from e
    return decode_message(payload_bytes), payload_bytes, signature


@dataclass(frozen=True)
class Proposal:
    """Invocation request: which contract operation, with which arguments, by whom."""
    channel: str
    chaincode: str
    operation: str
    args: List[str]
    tx_id: str
    nonce: str                  # base64url
    creator: Dict[str, str]     # {"mspId", "credentials"}
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "chaincode": self.chaincode,
            "operation": self.operation,
            "args": list(self.args),
            "txId": self.tx_id,
            "nonce": self.nonce,
            "creator": dict(self.creator),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Proposal":
        try:
            args = d["args"]
            if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
                raise EncodingError("Proposal args must be a list of strings")
            return cls(
                channel=d["channel"],
                chaincode=d["chaincode"],
                operation=d["operation"],
                args=args,
                tx_id=d["txId"],
                nonce=d["nonce"],
                creator=d["creator"],
                timestamp=d.get("timestamp", ""),
            )
        except KeyError as e:
            raise EncodingError(f"Malformed proposal: missing {e}") from e


def encode_write_set(writes) -> List[Dict[str, Optional[str]]]:
    return [
        {"key": w.key, "value": None if w.value is None else b64url_encode(w.value)}
        for w in writes
    ]


def decode_write_set(items: List[Dict[str, Optional[str]]]):
    return [
        Write(item["key"], None if item.get("value") is None else b64url_decode(item["value"]))
        for item in items
    ]


def endorsement_payload(tx_id: str, proposal_payload: str, result: str, write_set: list) -> bytes:
    """Bytes an endorsing peer signs: binds result and write set to the proposal."""
    return canonical_json({
        "txId": tx_id,
        "proposal": proposal_payload,
        "result": result,
        "writeSet": write_set,
    })
