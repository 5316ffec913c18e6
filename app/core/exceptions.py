"""Domain exceptions raised by the administrative surface"""
from typing import Any, Dict, Optional


class WAFError(Exception):
    """Base exception for all WAF engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class ValidationError(WAFError):
    """Exception raised when caller-supplied data is rejected."""

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)


class NotFoundError(WAFError):
    """Exception raised when a referenced entity does not exist."""

    def __init__(
        self,
        message: str,
        error_code: str = "NOT_FOUND",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)


class RuleValidationError(ValidationError):
    """Rule pattern is not a valid matcher for its syntax"""

    def __init__(self, pattern: str, reason: str):
        super().__init__(
            f"Invalid rule pattern {pattern!r}: {reason}",
            error_code="INVALID_RULE_PATTERN",
            details={"pattern": pattern, "reason": reason},
        )


class RuleNotFoundError(NotFoundError):
    """Rule id is not present in the rule store"""

    def __init__(self, rule_id: str):
        super().__init__(
            f"Firewall rule {rule_id} not found",
            error_code="RULE_NOT_FOUND",
            details={"rule_id": rule_id},
        )
