# emission/__init__.py
"""
Emission — a capped, role-gated issuance ledger for a single fungible token.
Owner-managed minters, an optional emission cap, and a hash-chained journal
of every change that can be persisted, replayed and audited offline.
"""

__version__ = "0.1.0-dev"
