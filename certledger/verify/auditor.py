# certledger/verify/auditor.py
from typing import List, Optional
from dataclasses import dataclass

from certledger.core.canon import canonical_json, decode_json
from certledger.core.types import RECORD_TYPE
from certledger.errors import EncodingError
from certledger.state import WorldState


@dataclass
class AuditFailure:
    key: str
    message: str
    category: str = "general"  # "encoding", "canonical", "key", "record_type"


@dataclass
class AuditResult:
    is_valid: bool
    message: str = ""
    checked: int = 0
    failures: List[AuditFailure] = None

    def __post_init__(self):
        if self.failures is None:
            self.failures = []

    @property
    def first_failure(self) -> Optional[AuditFailure]:
        return self.failures[0] if self.failures else None

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return f"World state is valid ✓ ({self.checked} entries)"
        lines = [f"Audit FAILED ({len(self.failures)} issues in {self.checked} entries):"]
        for f in self.failures:
            lines.append(f"  • [{f.key}] {f.category}: {f.message}")
        return "\n".join(lines)


class WorldStateAuditor:
    """
    Offline check of a world state against the record invariants:
    every value is canonical JSON, keyed by its own recordId, and carries
    the record type discriminator.
    """

    def __init__(self, require_record_type: bool = True):
        self.require_record_type = require_record_type

    def audit(self, world_state: WorldState) -> AuditResult:
        result = AuditResult(True)

        with world_state.get_state_by_range("", "") as iterator:
            for key, value in iterator:
                result.checked += 1
                result.failures.extend(self.check_entry(key, value))

        result.is_valid = not result.failures
        result.message = "Valid world state" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result

    def check_entry(self, key: str, value: bytes) -> List[AuditFailure]:
        try:
            record = decode_json(value)
        except EncodingError as e:
            return [AuditFailure(key, e.detail, "encoding")]

        failures = []
        if canonical_json(record) != value:
            failures.append(AuditFailure(key, "Stored bytes are not the canonical encoding", "canonical"))

        if not isinstance(record, dict):
            failures.append(AuditFailure(key, f"Value is a JSON {type(record).__name__}, not an object", "encoding"))
            return failures

        if record.get("recordId") != key:
            failures.append(AuditFailure(key, f"recordId {record.get('recordId')!r} does not match key", "key"))
        if self.require_record_type and record.get("recordType") != RECORD_TYPE:
            failures.append(AuditFailure(key, f"recordType is {record.get('recordType')!r}", "record_type"))
        return failures
