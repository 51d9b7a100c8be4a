"""
Collaborator interfaces (Protocols)

Concrete adapters satisfy these via duck typing; there is no inheritance
requirement.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Protocol, runtime_checkable

from .events import ChangeEvent


@runtime_checkable
class IdentityProvider(Protocol):
    """Creates login identities and hands back their uid"""

    async def create_account(self, email: str, password: str, display_name: str) -> str:
        """Raise ConflictError if the email exists, ValidationError if rejected"""
        ...


@runtime_checkable
class VectorIndex(Protocol):
    """Receives search metadata; never read by this core"""

    async def upsert_metadata(self, video_id: str, metadata: Dict[str, Any]) -> None: ...


# Publishes a follow-on change event (e.g. a counter write that other
# triggers observe).
EventPublisher = Callable[[ChangeEvent], Awaitable[None]]
