"""Error Hierarchy — typed, categorized exceptions for all Session Assistant failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; infrastructure errors (500-level) are not
    - to_response() produces the REST error envelope
    - user_message is what the wizard shows; message may carry internal detail

Design Decisions:
    - Single hierarchy with SessionAssistantError base: FastAPI global handler catches all
    - ErrorContext as dataclass: observability data without coupling to the logging setup
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    PERSISTENCE = "persistence"
    EXTERNAL_API = "external_api"
    RESPONSE_FORMAT = "response_format"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    phase: str | None = None
    operation: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class SessionAssistantError(Exception):
    """Base exception for all Session Assistant errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def user_message(self) -> str:
        return self.context.user_message or self.message

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "phase": self.context.phase,
                    "operation": self.context.operation,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class SessionValidationError(SessionAssistantError):
    """A user-supplied value violates a session invariant."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.field = field


class InvalidTransitionError(SessionAssistantError):
    """Wizard action attempted from a phase that does not allow it."""
    def __init__(self, action: str, phase: str, context: ErrorContext | None = None):
        super().__init__(
            f"Cannot {action} while in phase '{phase}'",
            "INVALID_TRANSITION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )
        self.action = action
        self.phase = phase


# ─── External / Infrastructure Errors (500-level) ───────────────

class ResponseFormatError(SessionAssistantError):
    """AI response did not parse into the expected structure."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.operation = ctx.operation or operation
        super().__init__(
            message, "RESPONSE_FORMAT_ERROR", ErrorCategory.RESPONSE_FORMAT,
            ErrorSeverity.ERROR, ctx, 502,
        )
        self.operation = operation


class AnthropicAPIError(SessionAssistantError):
    """Anthropic API call failed."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Anthropic API error ({api_error_type}): {message}",
            "ANTHROPIC_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, ctx, 503,
        )
        self.api_error_type = api_error_type

    @property
    def is_rate_limited(self) -> bool:
        return self.api_error_type == "rate_limit"


class PersistenceError(SessionAssistantError):
    """Session storage operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Storage {operation} failed: {message}",
            "PERSISTENCE_ERROR", ErrorCategory.PERSISTENCE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ConfigurationError(SessionAssistantError):
    """Required configuration missing at startup."""
    def __init__(self, message: str, setting: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONFIGURATION_ERROR", ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, context, 500,
        )
        self.setting = setting
