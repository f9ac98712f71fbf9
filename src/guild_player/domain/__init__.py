"""
Domain Layer

Contains pure business logic organized by bounded contexts:
- shared/: Cross-cutting types, exceptions, events, and messages
- music/: Track requests, the playback queue, and session states
"""

from guild_player.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
