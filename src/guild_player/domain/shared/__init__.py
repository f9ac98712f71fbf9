"""Shared domain building blocks: types, exceptions, events, and messages."""

from guild_player.domain.shared.exceptions import (
    BusinessRuleViolationError,
    DomainError,
    ExternalToolError,
    InvalidOperationError,
    PipeError,
    ResolutionError,
    ResolveTimeoutError,
    ResourceExhaustedError,
    SessionTerminatedError,
    TrackNotFoundError,
    TransportError,
)

__all__ = [
    "BusinessRuleViolationError",
    "DomainError",
    "ExternalToolError",
    "InvalidOperationError",
    "PipeError",
    "ResolutionError",
    "ResolveTimeoutError",
    "ResourceExhaustedError",
    "SessionTerminatedError",
    "TrackNotFoundError",
    "TransportError",
]
