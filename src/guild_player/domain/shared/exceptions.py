"""Base exception classes for domain-level errors."""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    retryable: bool = False

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class BusinessRuleViolationError(DomainError):
    """Raised when a business rule is violated."""

    def __init__(self, rule: str, message: str | None = None) -> None:
        msg = message or f"Business rule violated: {rule}"
        super().__init__(msg, code="BUSINESS_RULE_VIOLATION")
        self.rule = rule


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state


class SessionTerminatedError(DomainError):
    """Raised when a command reaches a session that has already been terminated."""

    def __init__(self, guild_id: int, message: str | None = None) -> None:
        msg = message or f"Session for guild {guild_id} has been terminated"
        super().__init__(msg, code="SESSION_TERMINATED")
        self.guild_id = guild_id


# ── Resolution ─────────────────────────────────────────────────────


class ResolutionError(DomainError):
    """A query could not be turned into a playable track."""

    def __init__(self, query: str, message: str, code: str | None = None) -> None:
        super().__init__(message, code=code or "RESOLUTION_ERROR")
        self.query = query


class TrackNotFoundError(ResolutionError):
    """The extraction tool found nothing matching the query."""

    def __init__(self, query: str, message: str | None = None) -> None:
        super().__init__(query, message or f"No results found for '{query}'", code="NOT_FOUND")


class ExternalToolError(ResolutionError):
    """The extraction tool crashed or produced unusable output."""

    def __init__(self, query: str, message: str) -> None:
        super().__init__(query, message, code="EXTERNAL_TOOL_ERROR")


class ResolveTimeoutError(ResolutionError):
    """The extraction tool did not finish within its time budget."""

    def __init__(self, query: str, timeout: float, message: str | None = None) -> None:
        msg = message or f"Timed out after {timeout:.0f}s resolving '{query}'"
        super().__init__(query, msg, code="RESOLVE_TIMEOUT")
        self.timeout = timeout


# ── Streaming ──────────────────────────────────────────────────────


class PipeError(DomainError):
    """The fetch/transcode process failed to start or died mid-stream."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message, code="PIPE_ERROR")
        self.exit_code = exit_code


class TransportError(DomainError):
    """The voice transport is unavailable or rejected a frame."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="TRANSPORT_ERROR")


class ResourceExhaustedError(DomainError):
    """The process-wide subprocess cap is reached; try again later."""

    retryable = True

    def __init__(self, limit: int, message: str | None = None) -> None:
        msg = message or f"Too many audio processes running (limit {limit})"
        super().__init__(msg, code="RESOURCE_EXHAUSTED")
        self.limit = limit
