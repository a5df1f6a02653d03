# certledger/errors.py
"""
Error taxonomy shared by the contract, the gateway client and the peer.

Every error carries a machine-distinguishable ``kind`` and a human-readable
``detail``. The kind string is what travels over the wire, so a contract
error raised inside the peer is raised again as the same class on the client.
"""

from typing import Dict, Optional, Type


class LedgerError(Exception):
    """Base class for every failure surfaced by certledger."""

    kind = "ledger"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(LedgerError):
    """Malformed or missing required input (e.g. absent recordId)."""

    kind = "validation"


class ConflictError(LedgerError):
    """Key already exists on Create."""

    kind = "conflict"


class NotFoundError(LedgerError):
    """Key absent on Read/Update/Delete/Transfer."""

    kind = "not_found"


class ConfigurationError(LedgerError):
    """Missing or unreadable credential material / settings."""

    kind = "configuration"


class EncodingError(LedgerError):
    """Value cannot be canonically encoded or decoded."""

    kind = "encoding"


class GatewayError(LedgerError):
    """Channel or transport failure between the client and the ledger network."""

    kind = "gateway"

    def __init__(self, detail: str, stage: Optional[str] = None):
        super().__init__(detail)
        self.stage = stage


class GatewayUnavailableError(GatewayError):
    """Peer could not be reached (connection refused, DNS, TLS failure)."""

    kind = "unavailable"


class GatewayTimeoutError(GatewayError):
    """A call-class deadline expired before the peer answered."""

    kind = "deadline_exceeded"


class TransactionRejectedError(GatewayError):
    """The network answered but refused the request or the transaction."""

    kind = "rejected"

    def __init__(self, detail: str, stage: Optional[str] = None, code: Optional[str] = None):
        super().__init__(detail, stage)
        self.code = code


# Errors the contract may raise; these cross the wire unchanged.
CONTRACT_ERRORS: Dict[str, Type[LedgerError]] = {
    cls.kind: cls for cls in (ValidationError, ConflictError, NotFoundError, EncodingError)
}


def error_for_kind(kind: str) -> Optional[Type[LedgerError]]:
    return CONTRACT_ERRORS.get(kind)
