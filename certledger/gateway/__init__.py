"""
Transaction gateway client: identity loading, the shared gRPC channel, and
evaluate/submit calls against the certificate contract.
"""

from .certificates import CertificateClient
from .config import GatewayConfig
from .identity import Identity, first_file_in, load_identity, load_signer
from .session import GatewaySession

__all__ = [
    "CertificateClient", "GatewayConfig", "GatewaySession",
    "Identity", "first_file_in", "load_identity", "load_signer",
]
