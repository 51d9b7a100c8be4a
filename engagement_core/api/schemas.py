"""
API Request/Response Schemas
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, as the mobile clients send them"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Callable Requests
# ============================================================================


class CreateUserRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None


class FollowRequest(CamelModel):
    following_id: Optional[str] = Field(default=None, description="User to (un)follow")


class RecalculateTotalLikesRequest(CamelModel):
    user_id: Optional[str] = Field(
        default=None, description="Defaults to the authenticated caller"
    )


# ============================================================================
# Callable Responses
# ============================================================================


class CreateUserResponse(CamelModel):
    success: bool = True
    uid: str
    message: str = "User created successfully"


class SuccessResponse(CamelModel):
    success: bool = True


class TotalLikesResponse(CamelModel):
    success: bool = True
    total_likes: int


class ReconcileAllResponse(CamelModel):
    success: bool = True
    results: Dict[str, Dict[str, Any]]


# ============================================================================
# Events
# ============================================================================


class EventSubmission(BaseModel):
    event_id: Optional[str] = Field(default=None, description="Stable id for redeliveries")
    path: str = Field(..., min_length=1)
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None


class EventAccepted(BaseModel):
    event_id: str
    mode: str = Field(..., description="queued or inline")
    task_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class ErrorBody(BaseModel):
    status: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: ErrorBody
