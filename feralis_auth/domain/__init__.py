"""
Domain Layer - Authentication entities and rules

This layer contains:
- Entities: User accounts and refresh-token records
- Value Objects: Token claims, token pairs, password validation results
- Exceptions: The closed set of authentication error kinds

No external dependencies allowed in this layer.
"""
