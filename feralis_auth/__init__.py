"""
Feralis authentication core.

Password credentials, refresh-token ledger, Redis-backed sessions and MFA
exchange for the Feralis manufacturing platform.
"""

__version__ = "1.0.0"
