"""
Core modules for Quota Guard.

This package contains the quota ledger state machine, identity
derivation, ban list, grant ingest and the query surface.
"""
