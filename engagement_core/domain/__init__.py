"""
Domain layer: events, snapshots, notification variants and tag generation
"""

from .events import ChangeEvent, EventKind
from .tags import generate_tags, MAX_HASHTAGS
from .interfaces import IdentityProvider, VectorIndex, EventPublisher

__all__ = [
    "ChangeEvent",
    "EventKind",
    "generate_tags",
    "MAX_HASHTAGS",
    "IdentityProvider",
    "VectorIndex",
    "EventPublisher",
]
