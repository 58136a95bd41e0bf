"""Database connection helpers."""

from .connection import create_engine, create_schema, create_session_factory

__all__ = ["create_engine", "create_schema", "create_session_factory"]
