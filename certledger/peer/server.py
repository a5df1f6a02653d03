# certledger/peer/server.py
import logging
from concurrent import futures
from dataclasses import dataclass, field
from functools import wraps
from pathlib import Path
from typing import Optional, Tuple

import grpc

from certledger.crypto.keys import SigningKey
from certledger.errors import ConfigurationError, LedgerError, TransactionRejectedError
from certledger.gateway import protocol
from certledger.gateway.config import DEFAULT_PEER_HOST
from certledger.state import create_world_state

from .ledger import PeerLedger

logger = logging.getLogger(__name__)

_STATUS_FOR_KIND = {
    "validation": grpc.StatusCode.INVALID_ARGUMENT,
    "encoding": grpc.StatusCode.INVALID_ARGUMENT,
    "conflict": grpc.StatusCode.ALREADY_EXISTS,
    "not_found": grpc.StatusCode.NOT_FOUND,
}

# Upper bound for CommitStatus waits when the caller sent no deadline.
MAX_COMMIT_WAIT = 60.0


@dataclass(frozen=True)
class PeerConfig:
    tls_cert_path: Path
    tls_key_path: Path
    signing_key_path: Path
    listen_address: str = "127.0.0.1:7051"
    state_uri: str = "memory:"
    channel_name: str = "mychannel"
    chaincode_name: str = "basic"
    msp_ids: Tuple[str, ...] = field(default=("Org1MSP",))
    max_workers: int = 10

    @classmethod
    def from_crypto_path(cls, crypto_path: str | Path, peer_host: str = DEFAULT_PEER_HOST, **overrides) -> "PeerConfig":
        peer_dir = Path(crypto_path) / "peers" / peer_host
        return cls(
            tls_cert_path=peer_dir / "tls" / "server.crt",
            tls_key_path=peer_dir / "tls" / "server.key",
            signing_key_path=peer_dir / "msp" / "keystore" / "priv_sk",
            **overrides,
        )


def _rpc(stage: str):
    """Turn LedgerErrors raised by a handler into gRPC statuses carrying the error kind."""
    def decorator(handler):
        @wraps(handler)
        def wrapper(self, request, context):
            try:
                return handler(self, request, context)
            except LedgerError as e:
                if isinstance(e, TransactionRejectedError):
                    status = grpc.StatusCode.__members__.get(e.code or "", grpc.StatusCode.FAILED_PRECONDITION)
                else:
                    status = _STATUS_FOR_KIND.get(e.kind, grpc.StatusCode.FAILED_PRECONDITION)
                logger.info("%s rejected (%s): %s", stage, e.kind, e.detail)
                context.set_trailing_metadata(((protocol.ERROR_KIND_KEY, e.kind),))
                context.abort(status, e.detail)
        return wrapper
    return decorator


class PeerServer:
    """gRPC front end of a PeerLedger, serving the ``certledger.Gateway`` service over TLS."""

    def __init__(self, ledger: PeerLedger, tls_cert: bytes, tls_key: bytes,
                 address: str = "127.0.0.1:7051", max_workers: int = 10):
        self.ledger = ledger
        self.address = address
        self.port: Optional[int] = None
        self._credentials = grpc.ssl_server_credentials([(tls_key, tls_cert)])
        self._server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))
        handlers = {
            protocol.EVALUATE: self.evaluate,
            protocol.ENDORSE: self.endorse,
            protocol.SUBMIT: self.submit,
            protocol.COMMIT_STATUS: self.commit_status,
        }
        self._server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(protocol.SERVICE, {
            name: grpc.unary_unary_rpc_method_handler(
                fn,
                request_deserializer=protocol.decode_message,
                response_serializer=protocol.encode_message,
            )
            for name, fn in handlers.items()
        }),))

    @classmethod
    def from_config(cls, config: PeerConfig) -> "PeerServer":
        try:
            tls_cert = config.tls_cert_path.read_bytes()
            tls_key = config.tls_key_path.read_bytes()
            signing_key = SigningKey.from_pem(config.signing_key_path.read_bytes())
        except OSError as e:
            raise ConfigurationError(f"Cannot read peer crypto material: {e}") from e
        ledger = PeerLedger(
            create_world_state(config.state_uri),
            signing_key,
            channel_name=config.channel_name,
            chaincode_name=config.chaincode_name,
            msp_ids=config.msp_ids,
        )
        return cls(ledger, tls_cert, tls_key, address=config.listen_address, max_workers=config.max_workers)

    def start(self) -> int:
        """Bind, start serving and return the bound port (useful with port 0)."""
        self.port = self._server.add_secure_port(self.address, self._credentials)
        if not self.port:
            raise ConfigurationError(f"Cannot bind peer to {self.address}")
        self.ledger.start()
        self._server.start()
        logger.info("Peer listening on %s (port %d)", self.address, self.port)
        return self.port

    def stop(self, grace: Optional[float] = 1.0) -> None:
        self._server.stop(grace).wait()
        self.ledger.stop()
        self.ledger.world_state.close()
        logger.info("Peer stopped")

    def wait_for_termination(self, timeout: Optional[float] = None) -> bool:
        return self._server.wait_for_termination(timeout)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    @_rpc("evaluate")
    def evaluate(self, request, context):
        return self.ledger.evaluate(request)

    @_rpc("endorse")
    def endorse(self, request, context):
        return self.ledger.endorse(request)

    @_rpc("submit")
    def submit(self, request, context):
        return self.ledger.submit(request)

    @_rpc("commit")
    def commit_status(self, request, context):
        remaining = context.time_remaining()
        timeout = MAX_COMMIT_WAIT if remaining is None else max(0.0, min(remaining, MAX_COMMIT_WAIT))
        status = self.ledger.commit_status(request, timeout)
        if status is None:
            context.abort(grpc.StatusCode.DEADLINE_EXCEEDED, "Timed out waiting for commit status")
        return status
