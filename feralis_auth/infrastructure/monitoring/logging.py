"""
Structured Logging for the authentication core

JSON structured logs with request correlation, user/session context and
masking of credentials and tokens.
"""

import json
import logging
import re
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Context variables for correlation tracking
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)

_STANDARD_FIELDS = set(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "request_id",
    "user_id",
    "session_id",
}


@dataclass
class SensitiveDataConfig:
    """Configuration for sensitive data masking."""

    # Credentials and bearer material
    credential_patterns: list[str] = field(
        default_factory=lambda: [
            r"password",
            r"passwd",
            r"secret",
            r"access[_-]?token",
            r"refresh[_-]?token",
            r"challenge[_-]?token",
            r"reset[_-]?token",
            r"authorization",
            r"mfa[_-]?code",
        ]
    )

    # Replacement text
    mask_replacement: str = "***MASKED***"

    # Fields to completely exclude from logs
    excluded_fields: set[str] = field(
        default_factory=lambda: {"password", "new_password", "current_password", "mfa_secret"}
    )


class SensitiveDataMasker:
    """Masks sensitive data in log messages and extra fields."""

    # Bearer tokens are masked wherever they appear
    _JWT_PATTERN = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")

    def __init__(self, config: SensitiveDataConfig | None = None) -> None:
        self.config = config or SensitiveDataConfig()
        self._compiled_patterns = [
            re.compile(rf'("{pattern}":\s*"[^"]*"|{pattern}=\S+|{pattern}:\s*\S+)', re.IGNORECASE)
            for pattern in self.config.credential_patterns
        ]

    def mask_message(self, message: str) -> str:
        """Mask sensitive data in log message."""
        masked_message = self._JWT_PATTERN.sub(self.config.mask_replacement, message)

        for pattern in self._compiled_patterns:
            masked_message = pattern.sub(lambda m: self._replace_value(m.group(0)), masked_message)

        return masked_message

    def mask_extra_fields(self, extra: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive data in extra log fields."""
        masked_extra: dict[str, Any] = {}

        for key, value in extra.items():
            # Exclude sensitive fields entirely
            if key.lower() in self.config.excluded_fields:
                continue

            if self._is_sensitive_field(key):
                masked_extra[key] = self.config.mask_replacement
            elif isinstance(value, str):
                masked_extra[key] = self.mask_message(value)
            elif isinstance(value, dict):
                masked_extra[key] = self.mask_extra_fields(value)
            else:
                masked_extra[key] = value

        return masked_extra

    def _is_sensitive_field(self, field_name: str) -> bool:
        field_lower = field_name.lower()
        return any(re.search(pattern, field_lower) for pattern in self.config.credential_patterns)

    def _replace_value(self, match: str) -> str:
        if ":" in match:
            key_part = match.split(":", 1)[0]
            return f'{key_part}: "{self.config.mask_replacement}"'
        elif "=" in match:
            key_part = match.split("=", 1)[0]
            return f"{key_part}={self.config.mask_replacement}"
        else:
            return self.config.mask_replacement


class ContextFilter(logging.Filter):
    """Attach request, user and session ids from the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.user_id = getattr(record, "user_id", None) or user_id_var.get()
        record.session_id = session_id_var.get()
        return True


class AuthJSONFormatter(logging.Formatter):
    """JSON formatter for structured logs."""

    def __init__(
        self,
        sensitive_data_config: SensitiveDataConfig | None = None,
        include_extra: bool = True,
        sort_keys: bool = True,
    ):
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys
        self.masker = SensitiveDataMasker(sensitive_data_config)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.masker.mask_message(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add correlation tracking
        for attr in ("request_id", "user_id", "session_id"):
            value = getattr(record, attr, None)
            if value:
                log_entry[attr] = value

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: value
                for key, value in record.__dict__.items()
                if key not in _STANDARD_FIELDS and not key.startswith("_")
            }
            if extra:
                log_entry["extra"] = self.masker.mask_extra_fields(extra)

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=self._serialize_value)

    @staticmethod
    def _serialize_value(value: Any) -> Any:
        if isinstance(value, (set, frozenset)):
            return sorted(value)
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)


def set_request_id(request_id: str | None) -> None:
    request_id_var.set(request_id)


def set_user_context(user_id: str | None, session_id: str | None = None) -> None:
    """Set user context for current request."""
    user_id_var.set(user_id)
    session_id_var.set(session_id)


@contextmanager
def request_context(
    request_id: str, user_id: str | None = None, session_id: str | None = None
) -> Generator[None, None, None]:
    """Bind request correlation ids for the duration of the block."""
    tokens = (
        request_id_var.set(request_id),
        user_id_var.set(user_id),
        session_id_var.set(session_id),
    )
    try:
        yield
    finally:
        request_id_var.reset(tokens[0])
        user_id_var.reset(tokens[1])
        session_id_var.reset(tokens[2])


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    sensitive_data_config: SensitiveDataConfig | None = None,
    log_file: str | None = None,
) -> None:
    """
    Setup structured logging.

    Args:
        level: Logging level
        format_type: Formatter type ('json' or 'text')
        sensitive_data_config: Sensitive data masking configuration
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = AuthJSONFormatter(sensitive_data_config)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
        )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    context_filter = ContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger(__name__).info("Structured logging configured successfully")
