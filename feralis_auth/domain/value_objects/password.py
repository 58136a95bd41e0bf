"""
Password validation result value object.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PasswordValidationResult:
    """
    Outcome of a password strength check.

    ``score`` is the 0..4 estimator score; ``is_valid`` requires both the
    character rules and the estimator gate to pass.
    """

    is_valid: bool
    score: int
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
