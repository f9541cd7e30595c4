"""
Ember — Matches API

Endpoints for listing a user's active matches, reading one match, and
unmatching.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_match_service
from app.schemas.match import MatchDetail, MatchListItem, UnmatchResult
from app.services.match_service import MatchService

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id} — Active matches for a user
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=list[MatchListItem],
    summary="List active matches",
)
async def list_matches(
    user_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    service: MatchService = Depends(get_match_service),
) -> list[MatchListItem]:
    return await service.get_user_matches(user_id, limit=limit, offset=offset)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/{match_id} — One match with the other user's profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/{match_id}",
    response_model=MatchDetail,
    summary="Get match details",
)
async def get_match(
    user_id: uuid.UUID,
    match_id: uuid.UUID,
    service: MatchService = Depends(get_match_service),
) -> MatchDetail:
    return await service.get_match_details(match_id, user_id)


# ──────────────────────────────────────────────────────────────────────────────
# DELETE /{user_id}/{match_id} — Unmatch
# ──────────────────────────────────────────────────────────────────────────────

@router.delete(
    "/{user_id}/{match_id}",
    response_model=UnmatchResult,
    summary="Unmatch",
)
async def unmatch(
    user_id: uuid.UUID,
    match_id: uuid.UUID,
    service: MatchService = Depends(get_match_service),
) -> UnmatchResult:
    """Deactivate the match.  The row is kept; the other user is notified."""
    return await service.unmatch(match_id, user_id)
