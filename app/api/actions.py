"""
Ember — Actions API

Endpoints for likes, super likes and passes, undo, the "who liked me" feed
and the user's own action history.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_action_service
from app.models.preferences import ActionKind
from app.schemas.match import (
    ActionCreate,
    ActionHistoryItem,
    ActionResult,
    UndoResult,
    WhoLikedMePage,
)
from app.services.action_service import MAX_PAGE_SIZE, ActionService

logger = structlog.get_logger("ember.api.actions")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /like, /super-like, /pass — Record a swipe
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/like",
    response_model=ActionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Like a user",
)
async def like_user(
    payload: ActionCreate,
    service: ActionService = Depends(get_action_service),
) -> ActionResult:
    """Like ``target_id``.  ``is_match`` is true when the like is mutual."""
    return await service.record_action(payload.sender_id, payload.target_id, ActionKind.LIKE)


@router.post(
    "/super-like",
    response_model=ActionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Super-like a user",
)
async def super_like_user(
    payload: ActionCreate,
    service: ActionService = Depends(get_action_service),
) -> ActionResult:
    return await service.record_action(
        payload.sender_id, payload.target_id, ActionKind.SUPER_LIKE
    )


@router.post(
    "/pass",
    response_model=ActionResult,
    status_code=status.HTTP_201_CREATED,
    summary="Pass on a user",
)
async def pass_user(
    payload: ActionCreate,
    service: ActionService = Depends(get_action_service),
) -> ActionResult:
    return await service.record_pass(payload.sender_id, payload.target_id)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{user_id}/undo — Undo the most recent action
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/undo",
    response_model=UndoResult,
    summary="Undo the most recent action",
)
async def undo_last_action(
    user_id: uuid.UUID,
    service: ActionService = Depends(get_action_service),
) -> UndoResult:
    """Retract the user's last swipe if it is still inside the undo window.

    Returns 404 ``NOTHING_TO_UNDO`` when the user has no action and 410
    ``UNDO_WINDOW_EXPIRED`` when the last one is too old.
    """
    return await service.undo_last_action(user_id)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/liked-me — Incoming likes not yet acted on
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/liked-me",
    response_model=WhoLikedMePage,
    summary="List users who liked me",
)
async def who_liked_me(
    user_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    service: ActionService = Depends(get_action_service),
) -> WhoLikedMePage:
    return await service.get_who_liked_me(user_id, limit=limit, offset=offset)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/history — The user's own actions
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/history",
    response_model=list[ActionHistoryItem],
    summary="List my actions",
)
async def action_history(
    user_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    service: ActionService = Depends(get_action_service),
) -> list[ActionHistoryItem]:
    return await service.get_action_history(user_id, limit=limit, offset=offset)
