# certledger/peer/ledger.py
"""
Single-node stand-in for the ledger network.

Executes the contract against the world state in three stages, the way a
Fabric peer and orderer do:

1. simulate/endorse: run the contract on committed state, capture the write
   set, sign (result, write set) with the peer key
2. order: queue endorsed transactions in arrival order
3. commit: one committer thread applies write sets in order, one block each,
   and records a validation code per transaction id

No MVCC read-set validation is done: the last committed write wins.
"""

import logging
import queue
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional, Sequence, Set, Tuple

from certledger.contract import CertificateContract, TransactionContext, is_read_only
from certledger.core.encoding import b64url_decode, b64url_encode
from certledger.crypto.hashing import transaction_id
from certledger.crypto.keys import SigningKey, public_key_from_certificate, verify_signature
from certledger.errors import ConfigurationError, TransactionRejectedError
from certledger.gateway import protocol
from certledger.gateway.identity import Identity
from certledger.state import WorldState

logger = logging.getLogger(__name__)

DUPLICATE_TXID = "DUPLICATE_TXID"
ENDORSEMENT_POLICY_FAILURE = "ENDORSEMENT_POLICY_FAILURE"
INVALID_OTHER_REASON = "INVALID_OTHER_REASON"

# Transaction ids remembered for duplicate detection and commit status; oldest are forgotten first.
MAX_TRACKED_TRANSACTIONS = 10000


class PeerLedger:
    def __init__(
        self,
        world_state: WorldState,
        signing_key: SigningKey,
        channel_name: str = "mychannel",
        chaincode_name: str = "basic",
        msp_ids: Optional[Sequence[str]] = None,
        name: str = "peer0",
        max_tracked: int = MAX_TRACKED_TRANSACTIONS,
    ):
        self.world_state = world_state
        self.signing_key = signing_key
        self.channel_name = channel_name
        self.chaincode_name = chaincode_name
        self.msp_ids: Optional[Set[str]] = set(msp_ids) if msp_ids else None
        self.name = name
        self.max_tracked = max_tracked
        self.contract = CertificateContract()

        self._queue: "queue.Queue[Optional[Tuple[str, list]]]" = queue.Queue()
        self._statuses: "OrderedDict[str, Tuple[str, int]]" = OrderedDict()
        self._accepted: "OrderedDict[str, None]" = OrderedDict()
        self._committed = threading.Condition()
        self._block_number = 0
        self._committer: Optional[threading.Thread] = None

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        if self._committer is not None:
            return
        self._committer = threading.Thread(target=self._commit_loop, name=f"{self.name}-committer", daemon=True)
        self._committer.start()

    def stop(self) -> None:
        if self._committer is None:
            return
        self._queue.put(None)
        self._committer.join(timeout=5)
        self._committer = None

    @property
    def height(self) -> int:
        with self._committed:
            return self._block_number

    # -- request authentication ---------------------------------------------

    def authenticate(self, envelope: Dict[str, Any]) -> Tuple[Dict[str, Any], Identity]:
        """Check the envelope signature against the creator credential inside it."""
        payload, payload_bytes, signature = protocol.unseal(envelope)
        creator = payload.get("creator")
        if not isinstance(creator, dict) and "proposal" in payload:
            inner, _, _ = protocol.unseal(payload["proposal"])
            creator = inner.get("creator")
        if not isinstance(creator, dict) or "credentials" not in creator or "mspId" not in creator:
            raise TransactionRejectedError("Request carries no creator identity", code="UNAUTHENTICATED")

        identity = Identity(msp_id=creator["mspId"], credentials=creator["credentials"].encode("utf-8"))
        if self.msp_ids is not None and identity.msp_id not in self.msp_ids:
            raise TransactionRejectedError(f"MSP {identity.msp_id} is not a member of this channel",
                                           code="PERMISSION_DENIED")
        try:
            public_key = public_key_from_certificate(identity.credentials)
        except ConfigurationError as e:
            raise TransactionRejectedError(e.detail, code="UNAUTHENTICATED") from e
        if not verify_signature(public_key, signature, payload_bytes):
            raise TransactionRejectedError("Signature verification failed", code="UNAUTHENTICATED")
        return payload, identity

    def _check_proposal(self, envelope: Dict[str, Any]) -> Tuple[protocol.Proposal, Identity]:
        payload, identity = self.authenticate(envelope)
        proposal = protocol.Proposal.from_dict(payload)
        if proposal.channel != self.channel_name:
            raise TransactionRejectedError(f"Channel {proposal.channel} not found", code="NOT_FOUND")
        if proposal.chaincode != self.chaincode_name:
            raise TransactionRejectedError(f"Contract {proposal.chaincode} not found on channel {proposal.channel}",
                                           code="NOT_FOUND")
        expected = transaction_id(b64url_decode(proposal.nonce), identity.serialize())
        if proposal.tx_id != expected:
            raise TransactionRejectedError(f"Transaction id {proposal.tx_id} does not match nonce and creator",
                                           code="INVALID_ARGUMENT")
        return proposal, identity

    # -- stages ----------------------------------------------------------------

    def simulate(self, proposal: protocol.Proposal, identity: Identity) -> Tuple[bytes, list]:
        ctx = TransactionContext(self.world_state, tx_id=proposal.tx_id, creator_msp_id=identity.msp_id)
        result = self.contract.invoke(ctx, proposal.operation, proposal.args)
        return result, ctx.write_set

    def evaluate(self, envelope: Dict[str, Any]) -> Dict[str, Any]:
        proposal, identity = self._check_proposal(envelope)
        result, writes = self.simulate(proposal, identity)
        if writes:
            logger.warning("Evaluate of %s discarded %d write(s)", proposal.operation, len(writes))
        return {"result": b64url_encode(result)}

    def endorse(self, envelope: Dict[str, Any]) -> Dict[str, Any]:
        proposal, identity = self._check_proposal(envelope)
        if is_read_only(proposal.operation):
            logger.debug("Endorsing read-only operation %s", proposal.operation)
        result, writes = self.simulate(proposal, identity)
        result_b64 = b64url_encode(result)
        write_set = protocol.encode_write_set(writes)
        signature = self.signing_key.sign(
            protocol.endorsement_payload(proposal.tx_id, envelope["payload"], result_b64, write_set))
        return {
            "txId": proposal.tx_id,
            "result": result_b64,
            "writeSet": write_set,
            "endorsement": {"endorser": self.name, "signature": b64url_encode(signature)},
        }

    def submit(self, envelope: Dict[str, Any]) -> Dict[str, Any]:
        transaction, _ = self.authenticate(envelope)
        try:
            proposal_envelope = transaction["proposal"]
            response = transaction["response"]
        except KeyError as e:
            raise TransactionRejectedError(f"Malformed transaction: missing {e}", stage="submit",
                                           code="INVALID_ARGUMENT") from e
        # The outer signature was checked against this proposal creator.
        proposal, _ = self._check_proposal(proposal_envelope)

        tx_id = proposal.tx_id
        with self._committed:
            if tx_id in self._accepted:
                raise TransactionRejectedError(f"Transaction {tx_id} was already submitted", stage="submit",
                                               code=DUPLICATE_TXID)
            self._accepted[tx_id] = None
            self._forget_oldest(self._accepted)

        if self._endorsement_valid(tx_id, proposal_envelope["payload"], response):
            self._queue.put((tx_id, protocol.decode_write_set(response.get("writeSet", []))))
        else:
            self._record(tx_id, ENDORSEMENT_POLICY_FAILURE)
        return {"txId": tx_id, "status": "ACCEPTED"}

    def commit_status(self, envelope: Dict[str, Any], timeout: Optional[float]) -> Optional[Dict[str, Any]]:
        """Wait until ``txId`` has a validation code; None if ``timeout`` passes first."""
        request, _ = self.authenticate(envelope)
        tx_id = request.get("txId")
        with self._committed:
            if not self._committed.wait_for(lambda: tx_id in self._statuses, timeout=timeout):
                return None
            code, block = self._statuses[tx_id]
        return {"txId": tx_id, "code": code, "blockNumber": block}

    # -- internals -------------------------------------------------------------

    def _endorsement_valid(self, tx_id: str, proposal_payload: str, response: Dict[str, Any]) -> bool:
        try:
            signature = b64url_decode(response["endorsement"]["signature"])
            signed = protocol.endorsement_payload(tx_id, proposal_payload, response["result"], response["writeSet"])
        except (KeyError, TypeError):
            return False
        return response.get("txId") == tx_id and self.signing_key.verify(signature, signed)

    def _record(self, tx_id: str, code: str) -> None:
        with self._committed:
            if code == protocol.VALID:
                self._block_number += 1
            self._statuses[tx_id] = (code, self._block_number)
            self._forget_oldest(self._statuses)
            self._committed.notify_all()

    def _forget_oldest(self, tracked: OrderedDict) -> None:
        while len(tracked) > self.max_tracked:
            tracked.popitem(last=False)

    def _commit_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                break
            tx_id, writes = item
            try:
                self.world_state.apply(writes)
            except Exception:
                logger.exception("Failed to apply transaction %s", tx_id)
                self._record(tx_id, INVALID_OTHER_REASON)
                continue
            self._record(tx_id, protocol.VALID)
            logger.info("Committed transaction %s in block %d (%d write(s))", tx_id, self.height, len(writes))
