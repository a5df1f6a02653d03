# certledger/contract/certificate.py
"""
Certificate record contract.

Deterministic transition rules applied by every replica: the same invocation
against the same committed world state always yields the same result bytes
and the same write set. Results are canonical JSON too, because endorsement
responses from different peers are compared byte for byte.
"""

import logging
from typing import Any, Dict, List, Sequence

from certledger.core.canon import canonical_json, canonical_json_str, decode_json
from certledger.core.types import RECORD_TYPE, validate_record_id
from certledger.errors import ConflictError, EncodingError, NotFoundError, ValidationError

from .context import TransactionContext
from .seed import SEED_CERTIFICATES

logger = logging.getLogger(__name__)


class CertificateContract:
    """Create/Read/Update/Delete/Transfer/List over certificate records keyed by recordId."""

    name = "basic"

    # wire name -> (method, arg count)
    OPERATIONS = {
        "Bootstrap": ("bootstrap", 0),
        "CreateAsset": ("create_asset", 1),
        "ReadAsset": ("read_asset", 1),
        "UpdateAsset": ("update_asset", 1),
        "DeleteAsset": ("delete_asset", 1),
        "TransferAsset": ("transfer_asset", 2),
        "GetAllAssets": ("get_all_assets", 0),
        "AssetExists": ("asset_exists", 1),
    }
    READ_ONLY = frozenset({"ReadAsset", "GetAllAssets", "AssetExists"})

    def invoke(self, ctx: TransactionContext, operation: str, args: Sequence[str]) -> bytes:
        """Dispatch a wire-level invocation and return the result as bytes."""
        if operation not in self.OPERATIONS:
            raise ValidationError(f"Unknown operation: {operation}")
        method_name, arity = self.OPERATIONS[operation]
        if len(args) != arity:
            raise ValidationError(f"{operation} expects {arity} argument(s), got {len(args)}")

        result = getattr(self, method_name)(ctx, *args)
        if result is None:
            return b""
        if isinstance(result, bool):
            return b"true" if result else b"false"
        if isinstance(result, str):
            return result.encode("utf-8")
        return result

    def bootstrap(self, ctx: TransactionContext) -> None:
        """Seed the ledger. No existence check: re-running overwrites the seed keys."""
        for cert in SEED_CERTIFICATES:
            record = cert.to_dict()
            record["recordType"] = RECORD_TYPE
            ctx.put_state(cert.record_id, canonical_json(record))
            logger.info("Certificate %s initialized", cert.record_id)

    def create_asset(self, ctx: TransactionContext, certificate_json: str) -> str:
        record = self._parse_record(certificate_json)
        record_id = validate_record_id(record)

        if self.asset_exists(ctx, record_id):
            raise ConflictError(f"The certificate {record_id} already exists")

        # Caller-supplied recordType is kept as is.
        record.setdefault("recordType", RECORD_TYPE)
        stored = canonical_json(record)
        ctx.put_state(record_id, stored)
        logger.info("Certificate %s created", record_id)
        return stored.decode("utf-8")

    def read_asset(self, ctx: TransactionContext, record_id: str) -> bytes:
        value = ctx.get_state(record_id)
        if not value:
            raise NotFoundError(f"The certificate {record_id} does not exist")
        return value

    def update_asset(self, ctx: TransactionContext, certificate_json: str) -> str:
        record = self._parse_record(certificate_json)
        record_id = validate_record_id(record)

        if not self.asset_exists(ctx, record_id):
            raise NotFoundError(f"The certificate {record_id} does not exist")

        # Wholesale replacement, no merge with the stored value.
        record.setdefault("recordType", RECORD_TYPE)
        stored = canonical_json(record)
        ctx.put_state(record_id, stored)
        logger.info("Certificate %s updated", record_id)
        return stored.decode("utf-8")

    def delete_asset(self, ctx: TransactionContext, record_id: str) -> None:
        if not self.asset_exists(ctx, record_id):
            raise NotFoundError(f"The certificate {record_id} does not exist")
        ctx.delete_state(record_id)
        logger.info("Certificate %s deleted", record_id)

    def asset_exists(self, ctx: TransactionContext, record_id: str) -> bool:
        value = ctx.get_state(record_id)
        return bool(value)

    def transfer_asset(self, ctx: TransactionContext, record_id: str, new_subject_id: str) -> str:
        """Reassign subjectId; returns the subject id in effect before the transfer."""
        record = decode_json(self.read_asset(ctx, record_id))
        if not isinstance(record, dict):
            raise EncodingError(f"The certificate {record_id} is not a JSON object")

        old_subject_id = record.get("subjectId", "")
        record["subjectId"] = new_subject_id
        ctx.put_state(record_id, canonical_json(record))
        logger.info("Certificate %s transferred from %s to %s", record_id, old_subject_id, new_subject_id)
        return old_subject_id

    def get_all_assets(self, ctx: TransactionContext) -> str:
        results: List[Any] = []
        # Empty start and end keys make an open-ended scan of the whole namespace.
        with ctx.get_state_by_range("", "") as iterator:
            while iterator.has_next():
                kv = iterator.advance()
                results.append(self._decode_listed(kv.key, kv.value))
        return canonical_json_str(results)

    @staticmethod
    def _decode_listed(key: str, value: bytes) -> Any:
        # Malformed legacy entries are listed as their raw text rather than failing the scan.
        text = value.decode("utf-8", errors="replace")
        try:
            return decode_json(text)
        except EncodingError as e:
            logger.warning("Listing %s as raw text: %s", key, e.detail)
            return text

    @staticmethod
    def _parse_record(certificate_json: str) -> Dict[str, Any]:
        record = decode_json(certificate_json)
        if not isinstance(record, dict):
            raise ValidationError("Certificate must be a JSON object")
        return record


def is_read_only(operation: str) -> bool:
    return operation in CertificateContract.READ_ONLY

