"""
certledger: certificate records on a replicated, tamper-evident ledger.

Ledger-side record contract (deterministic CRUD + transfer over canonical JSON
world state) and a transaction gateway client that evaluates read-only calls
and submits state-changing ones through endorsement, ordering and commit.
"""

__version__ = "0.1.0-dev"
