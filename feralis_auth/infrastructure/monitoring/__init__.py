"""Logging and request correlation."""

from .logging import (
    AuthJSONFormatter,
    ContextFilter,
    SensitiveDataConfig,
    SensitiveDataMasker,
    request_context,
    set_request_id,
    set_user_context,
    setup_logging,
)

__all__ = [
    "AuthJSONFormatter",
    "ContextFilter",
    "SensitiveDataConfig",
    "SensitiveDataMasker",
    "request_context",
    "set_request_id",
    "set_user_context",
    "setup_logging",
]
