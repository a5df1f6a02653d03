# certledger/gateway/certificates.py
from typing import Any, Dict, List, Union

from certledger.core.canon import canonical_json_str, decode_json
from certledger.core.types import Certificate
from certledger.errors import EncodingError, LedgerError

from .session import GatewaySession

CertificateLike = Union[Certificate, Dict[str, Any]]


class CertificateClient:
    """
    Typed calls to the certificate contract over an open GatewaySession.

    Read-only operations are evaluated, everything else is submitted.
    Records are validated (recordId present, issuer and approval well typed)
    before they are encoded, so nothing is written that cannot be read back.
    """

    def __init__(self, session: GatewaySession):
        self.session = session

    def init_ledger(self) -> None:
        self.session.submit("Bootstrap")

    def create(self, certificate: CertificateLike) -> Certificate:
        result = self.session.submit("CreateAsset", self._encode(certificate))
        return Certificate.from_dict(decode_json(result))

    def read(self, record_id: str) -> Certificate:
        return Certificate.from_dict(self.read_raw(record_id))

    def read_raw(self, record_id: str) -> Dict[str, Any]:
        record = decode_json(self.session.evaluate("ReadAsset", record_id))
        if not isinstance(record, dict):
            raise EncodingError(f"The certificate {record_id} is not a JSON object")
        return record

    def update(self, certificate: CertificateLike) -> Certificate:
        result = self.session.submit("UpdateAsset", self._encode(certificate))
        return Certificate.from_dict(decode_json(result))

    def delete(self, record_id: str) -> None:
        self.session.submit("DeleteAsset", record_id)

    def transfer(self, record_id: str, new_subject_id: str) -> str:
        """Returns the previous subject id (raw text, not JSON)."""
        return self.session.submit("TransferAsset", record_id, new_subject_id).decode("utf-8")

    def exists(self, record_id: str) -> bool:
        return self.session.evaluate("AssetExists", record_id) == b"true"

    def list_all(self) -> List[Any]:
        """
        Every live record in ledger key order. Entries that are not valid
        certificates (malformed legacy values) are returned as they came.
        """
        entries = decode_json(self.session.evaluate("GetAllAssets"))
        if not isinstance(entries, list):
            raise EncodingError("GetAllAssets did not return a JSON array")
        results = []
        for entry in entries:
            try:
                results.append(Certificate.from_dict(entry))
            except LedgerError:
                results.append(entry)
        return results

    @staticmethod
    def _encode(certificate: CertificateLike) -> str:
        if isinstance(certificate, dict):
            Certificate.from_dict(certificate)
            return canonical_json_str(certificate)
        return canonical_json_str(certificate.to_dict())
