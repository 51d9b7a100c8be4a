"""API routers"""

from .callable_router import router as callable_router
from .event_router import router as event_router

__all__ = ["callable_router", "event_router"]
