"""
Callable Operations Router
Request/response operations invoked directly by clients
"""

import logging

from fastapi import APIRouter, Depends

from engagement_core.api.schemas import (
    CreateUserRequest,
    CreateUserResponse,
    ErrorResponse,
    FollowRequest,
    ReconcileAllResponse,
    RecalculateTotalLikesRequest,
    SuccessResponse,
    TotalLikesResponse,
)
from engagement_core.app.dependencies import (
    get_current_uid,
    get_follow_service,
    get_reconciliation_service,
    get_user_service,
)
from engagement_core.services import FollowService, ReconciliationService, UserService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/callable",
    tags=["Callable"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


@router.post("/createUser", response_model=CreateUserResponse, response_model_by_alias=True)
async def create_user(
    request: CreateUserRequest,
    service: UserService = Depends(get_user_service),
):
    """Create a login identity and a profile with zeroed counters"""
    result = await service.create_user(request.email, request.password, request.display_name)
    return CreateUserResponse(uid=result["uid"], message=result["message"])


@router.post("/followUser", response_model=SuccessResponse)
async def follow_user(
    request: FollowRequest,
    uid: str = Depends(get_current_uid),
    service: FollowService = Depends(get_follow_service),
):
    """Follow another user"""
    await service.follow_user(uid, request.following_id)
    return SuccessResponse()


@router.post("/unfollowUser", response_model=SuccessResponse)
async def unfollow_user(
    request: FollowRequest,
    uid: str = Depends(get_current_uid),
    service: FollowService = Depends(get_follow_service),
):
    """Stop following another user"""
    await service.unfollow_user(uid, request.following_id)
    return SuccessResponse()


@router.post(
    "/recalculateUserTotalLikes", response_model=TotalLikesResponse, response_model_by_alias=True
)
async def recalculate_user_total_likes(
    request: RecalculateTotalLikesRequest,
    uid: str = Depends(get_current_uid),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Recompute a user's total likes from their active videos"""
    total = await service.recalculate_user_total_likes(request.user_id or uid)
    return TotalLikesResponse(total_likes=total)


@router.post("/forceReconcileAllUsers", response_model=ReconcileAllResponse)
async def force_reconcile_all_users(
    uid: str = Depends(get_current_uid),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Run the full repair sweep synchronously"""
    logger.info(f"🔁 Full reconciliation requested by {uid}")
    results = await service.force_reconcile_all()
    return ReconcileAllResponse(results=results)
