# certledger/core/types.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from certledger.errors import ValidationError

RECORD_TYPE = "certificate"


def _expect(d: Dict[str, Any], key: str, kind, default, where: str):
    value = d.get(key, default)
    if not isinstance(value, kind):
        raise ValidationError(f"{where}.{key} has the wrong type: {type(value).__name__}")
    return value


def _expect_strings(d: Dict[str, Any], key: str, where: str) -> List[str]:
    values = _expect(d, key, list, [], where)
    if not all(isinstance(v, str) for v in values):
        raise ValidationError(f"{where}.{key} must be a list of strings")
    return list(values)


@dataclass(frozen=True)
class Issuer:
    """Who issued the certificate and when (ISO 8601 UTC)."""
    issuer_id: str = ""
    issue_date: str = ""
    extensions: Dict[str, Any] = field(default_factory=dict)

    _KEYS = ("issuerId", "issueDate")

    def to_dict(self) -> dict:
        d: Dict[str, Any] = dict(self.extensions)
        d["issuerId"] = self.issuer_id
        d["issueDate"] = self.issue_date
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Issuer":
        return cls(
            issuer_id=_expect(d, "issuerId", str, "", "issuer"),
            issue_date=_expect(d, "issueDate", str, "", "issuer"),
            extensions={k: v for k, v in d.items() if k not in cls._KEYS},
        )


@dataclass(frozen=True)
class Approval:
    """Approval trail: approvers, the stage each one recorded, final flag."""
    approver_ids: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)
    approved: bool = False
    approved_date: Optional[str] = None     # null until fully approved
    extensions: Dict[str, Any] = field(default_factory=dict)

    _KEYS = ("approverIds", "stages", "approved", "approvedDate")

    def to_dict(self) -> dict:
        d: Dict[str, Any] = dict(self.extensions)
        d.update({
            "approverIds": list(self.approver_ids),
            "stages": list(self.stages),
            "approved": self.approved,
            "approvedDate": self.approved_date,
        })
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Approval":
        return cls(
            approver_ids=_expect_strings(d, "approverIds", "approval"),
            stages=_expect_strings(d, "stages", "approval"),
            approved=_expect(d, "approved", bool, False, "approval"),
            approved_date=_expect(d, "approvedDate", (str, type(None)), None, "approval"),
            extensions={k: v for k, v in d.items() if k not in cls._KEYS},
        )


_KNOWN_KEYS = {"recordId", "subjectId", "issuer", "approval", "payload", "status", "recordType", "url"}
_NESTED_KEYS = ("issuer", "approval")


@dataclass(frozen=True)
class Certificate:
    """
    Typed view of one ledger record.

    ``payload`` is schema-free (name, category, level plus any extension
    fields, or any other JSON value). Unknown keys survive a from_dict/to_dict
    round trip through ``extensions``, at the top level and inside issuer and
    approval; an issuer or approval that is not an object is kept there as is.
    """
    record_id: str
    subject_id: str = ""
    issuer: Optional[Issuer] = None
    approval: Optional[Approval] = None
    payload: Any = None
    status: str = ""
    record_type: Optional[str] = None       # stamped by the contract when absent
    url: Optional[str] = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Wire shape (camelCase keys); None-valued optional fields are omitted."""
        d: Dict[str, Any] = dict(self.extensions)
        d["recordId"] = self.record_id
        d["subjectId"] = self.subject_id
        d["status"] = self.status
        if self.issuer is not None:
            d["issuer"] = self.issuer.to_dict()
        if self.approval is not None:
            d["approval"] = self.approval.to_dict()
        if self.payload is not None:
            d["payload"] = dict(self.payload) if isinstance(self.payload, dict) else self.payload
        if self.record_type is not None:
            d["recordType"] = self.record_type
        if self.url is not None:
            d["url"] = self.url
        return d

    @classmethod
    def from_dict(cls, d: Any) -> "Certificate":
        if not isinstance(d, dict):
            raise ValidationError(f"Certificate must be a JSON object, got {type(d).__name__}")
        validate_record_id(d)
        issuer = d.get("issuer")
        approval = d.get("approval")
        return cls(
            record_id=d["recordId"],
            subject_id=d.get("subjectId", ""),
            issuer=Issuer.from_dict(issuer) if isinstance(issuer, dict) else None,
            approval=Approval.from_dict(approval) if isinstance(approval, dict) else None,
            payload=d.get("payload"),
            status=d.get("status", ""),
            record_type=d.get("recordType"),
            url=d.get("url"),
            extensions={
                k: v for k, v in d.items()
                if k not in _KNOWN_KEYS or (k in _NESTED_KEYS and not isinstance(v, dict))
            },
        )


def validate_record_id(record: Dict[str, Any]) -> str:
    """Return the record's id or raise ValidationError if absent/empty/not a string."""
    record_id = record.get("recordId")
    if not record_id or not isinstance(record_id, str):
        raise ValidationError("recordId is required")
    return record_id
