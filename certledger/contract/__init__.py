"""
Ledger-side record contract and its execution context.
"""

from .certificate import CertificateContract, is_read_only
from .context import TransactionContext
from .seed import SEED_CERTIFICATES

__all__ = ["CertificateContract", "TransactionContext", "SEED_CERTIFICATES", "is_read_only"]
