# certledger/gateway/session.py
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import grpc

from certledger.core.encoding import b64url_decode, b64url_encode
from certledger.crypto.hashing import new_nonce, transaction_id
from certledger.crypto.keys import SigningKey
from certledger.errors import (
    ConflictError,
    GatewayError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    NotFoundError,
    TransactionRejectedError,
    ValidationError,
    error_for_kind,
)

from . import protocol
from .config import GatewayConfig
from .identity import Identity, load_identity, load_signer, read_tls_root

logger = logging.getLogger(__name__)

# Used only when a failure arrives without an error-kind trailer.
_STATUS_FALLBACK = {
    grpc.StatusCode.INVALID_ARGUMENT: ValidationError,
    grpc.StatusCode.ALREADY_EXISTS: ConflictError,
    grpc.StatusCode.NOT_FOUND: NotFoundError,
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class GatewaySession:
    """
    One authenticated, encrypted channel to the ledger network, shared by every
    call the process makes.

    open() -> many evaluate()/submit() calls -> close(). The identity, signer and
    channel are fixed once open() returns; concurrent calls share them read-only.
    """
    config: GatewayConfig
    identity: Optional[Identity] = field(default=None, init=False)
    _signer: Optional[SigningKey] = field(default=None, init=False, repr=False)
    _channel: Optional[grpc.Channel] = field(default=None, init=False, repr=False)
    _stubs: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    @property
    def is_open(self) -> bool:
        return self._channel is not None

    def open(self) -> "GatewaySession":
        if self._channel is not None:
            return self

        cfg = self.config
        tls_root = read_tls_root(cfg.tls_cert_path)
        self.identity = load_identity(cfg.msp_id, cfg.cert_directory_path)
        self._signer = load_signer(cfg.key_directory_path)

        credentials = grpc.ssl_channel_credentials(root_certificates=tls_root)
        options = []
        if cfg.peer_host_alias:
            options.append(("grpc.ssl_target_name_override", cfg.peer_host_alias))
        channel = grpc.secure_channel(cfg.peer_endpoint, credentials, options=options)

        self._stubs = {
            method: channel.unary_unary(
                protocol.method_path(method),
                request_serializer=protocol.encode_message,
                response_deserializer=protocol.decode_message,
            )
            for method in (protocol.EVALUATE, protocol.ENDORSE, protocol.SUBMIT, protocol.COMMIT_STATUS)
        }
        self._channel = channel
        logger.info(
            "Gateway session open: %s (%s) as %s, channel '%s', contract '%s'",
            cfg.peer_endpoint, cfg.peer_host_alias, cfg.msp_id, cfg.channel_name, cfg.chaincode_name,
        )
        return self

    def evaluate(self, name: str, *args: str) -> bytes:
        """Run a read-only operation on one peer. Nothing is ordered or committed."""
        _, envelope = self._proposal(name, args)
        logger.debug("Evaluate %s%s", name, args)
        response = self._call(protocol.EVALUATE, envelope, self.config.evaluate_timeout, "evaluate")
        return b64url_decode(response["result"])

    def submit(self, name: str, *args: str) -> bytes:
        """
        Run a state-changing operation: collect the endorsement, send the
        endorsed transaction to ordering, then block until it is committed.
        Returns the endorsed result bytes.
        """
        tx_id, envelope = self._proposal(name, args)
        logger.debug("Submit %s%s as %s", name, args, tx_id)

        endorsed = self._call(protocol.ENDORSE, envelope, self.config.endorse_timeout, "endorse")
        if endorsed.get("txId") != tx_id:
            raise TransactionRejectedError(
                f"Endorsement answered for {endorsed.get('txId')!r}, expected {tx_id}", stage="endorse")

        transaction = protocol.seal({"proposal": envelope, "response": endorsed}, self._signer)
        self._call(protocol.SUBMIT, transaction, self.config.submit_timeout, "submit")

        request = protocol.seal({"txId": tx_id, "creator": self.identity.to_dict()}, self._signer)
        status = self._call(protocol.COMMIT_STATUS, request, self.config.commit_status_timeout, "commit")
        code = status.get("code")
        if code != protocol.VALID:
            raise TransactionRejectedError(
                f"Transaction {tx_id} failed to commit with status code {code}", stage="commit", code=code)

        logger.debug("Transaction %s committed in block %s", tx_id, status.get("blockNumber"))
        return b64url_decode(endorsed["result"])

    def close(self) -> None:
        """Release the channel. Safe to call repeatedly, or on a session never opened."""
        if self._channel is not None:
            try:
                self._channel.close()
                logger.info("Gateway session closed")
            except Exception as e:
                logger.warning("Error closing gateway channel: %s", e)
            self._channel = None
        self._stubs = {}

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _proposal(self, name: str, args: Tuple[Any, ...]) -> Tuple[str, Dict[str, str]]:
        if self._channel is None:
            raise GatewayError("Gateway session is not open. Call open() first.")
        for arg in args:
            if not isinstance(arg, str):
                raise ValidationError(f"{name} arguments must be strings, got {type(arg).__name__}")

        nonce = new_nonce()
        tx_id = transaction_id(nonce, self.identity.serialize())
        proposal = protocol.Proposal(
            channel=self.config.channel_name,
            chaincode=self.config.chaincode_name,
            operation=name,
            args=list(args),
            tx_id=tx_id,
            nonce=b64url_encode(nonce),
            creator=self.identity.to_dict(),
            timestamp=utc_now(),
        )
        return tx_id, protocol.seal(proposal.to_dict(), self._signer)

    def _call(self, method: str, request: Dict[str, Any], timeout: float, stage: str) -> Dict[str, Any]:
        stub = self._stubs.get(method)
        if stub is None:
            raise GatewayError("Gateway session is not open. Call open() first.", stage=stage)
        try:
            return stub(request, timeout=timeout)
        except grpc.RpcError as e:
            raise translate_rpc_error(e, stage) from e


def translate_rpc_error(error: grpc.RpcError, stage: str) -> Exception:
    """Map a failed gRPC call onto the certledger error taxonomy."""
    code = error.code() if hasattr(error, "code") else grpc.StatusCode.UNKNOWN
    details = (error.details() if hasattr(error, "details") else None) or str(code)
    metadata = dict(error.trailing_metadata() or ()) if hasattr(error, "trailing_metadata") else {}

    kind = metadata.get(protocol.ERROR_KIND_KEY)
    contract_error = error_for_kind(kind) if kind else None
    if contract_error is not None:
        return contract_error(details)

    if code == grpc.StatusCode.DEADLINE_EXCEEDED:
        return GatewayTimeoutError(f"{stage} deadline exceeded: {details}", stage=stage)
    if code == grpc.StatusCode.UNAVAILABLE:
        return GatewayUnavailableError(f"Cannot connect to the ledger network: {details}", stage=stage)
    if kind is None and code in _STATUS_FALLBACK:
        return _STATUS_FALLBACK[code](details)
    return TransactionRejectedError(details, stage=stage, code=code.name)
