"""
Development peer: hosts the certificate contract behind the gateway protocol.
"""

from .ledger import PeerLedger
from .server import PeerConfig, PeerServer

__all__ = ["PeerConfig", "PeerLedger", "PeerServer"]
