"""Exception hierarchy for aumos-record-security.

Configuration errors are fatal and raised at construction time.  Filter
translation failures are raised so callers can fall back to in-memory
evaluation.  Evaluation errors never escape a permission check; they are
logged and treated as a deny.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aumos_record_security.permissions.models import PermissionCheckResult


class SecurityError(Exception):
    """Base class for every error raised by this package."""


class PermissionConfigError(SecurityError, ValueError):
    """Raised when security or permission configuration is malformed.

    Attributes
    ----------
    config_path:
        The path to the config file that caused the error, if known.
    """

    def __init__(self, message: str, config_path: str | None = None) -> None:
        self.config_path = config_path
        prefix = f"[{config_path}] " if config_path else ""
        super().__init__(f"{prefix}{message}")


class FormulaSyntaxError(SecurityError, ValueError):
    """Raised when a formula string does not match the supported grammar.

    Attributes
    ----------
    formula:
        The offending formula text.
    position:
        Character offset where parsing stopped.
    """

    def __init__(self, message: str, formula: str, position: int = 0) -> None:
        self.formula = formula
        self.position = position
        super().__init__(f"{message} at position {position} in formula {formula!r}")


class FilterTranslationError(SecurityError):
    """Raised when a condition cannot be expressed as a query filter.

    This is deliberately distinct from an empty filter: an empty filter
    means "no restriction", whereas this error means the restriction
    exists but must be evaluated some other way.

    Attributes
    ----------
    condition:
        The condition (or formula string) that could not be translated.
    """

    def __init__(self, message: str, condition: object = None) -> None:
        self.condition = condition
        super().__init__(message)


class PermissionDeniedError(SecurityError):
    """Raised by the mutation hook when a permission check denies access.

    Attributes
    ----------
    reason:
        Human-readable reason taken from the decision.
    rule:
        Name of the rule that produced the decision, if any.
    result:
        The full :class:`PermissionCheckResult`.
    """

    code: str = "PERMISSION_DENIED"

    def __init__(self, result: "PermissionCheckResult") -> None:
        self.result = result
        self.reason = result.reason or "Insufficient permissions"
        self.rule = result.rule
        super().__init__(f"Permission denied: {self.reason}")
