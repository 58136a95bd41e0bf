"""
Application Layer - Settings and store contracts

This layer contains:
- Configuration loaded from the environment
- Interfaces the infrastructure repositories implement
"""
