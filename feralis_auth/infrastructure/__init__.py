"""
Infrastructure Layer - Stores, token signing and the HTTP surface

This layer contains:
- SQLAlchemy models and repositories for accounts and the token ledger
- The Redis key-value store used for sessions and MFA challenges
- Authentication services, FastAPI endpoints and middleware
"""
