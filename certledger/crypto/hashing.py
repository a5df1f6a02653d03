# certledger/crypto/hashing.py
import hashlib
import os

NONCE_SIZE = 24


def new_nonce() -> bytes:
    return os.urandom(NONCE_SIZE)


def transaction_id(nonce: bytes, creator: bytes) -> str:
    """Fabric-style transaction id: hex(sha256(nonce || serialized creator))."""
    return hashlib.sha256(nonce + creator).hexdigest()
