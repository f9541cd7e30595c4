"""
Ember — Discovery API

Endpoints for the swipe feed and the profile-completeness check that gates
it.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends

from app.api.deps import get_discovery_service
from app.schemas.discovery import DiscoveryEligibility, DiscoveryRequest, ScoredCandidate
from app.services.discovery_service import DiscoveryService

logger = structlog.get_logger("ember.api.discovery")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /{user_id}/candidates — Ranked candidate batch
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/candidates",
    response_model=list[ScoredCandidate],
    summary="Get scored discovery candidates",
)
async def get_candidates(
    user_id: uuid.UUID,
    payload: DiscoveryRequest,
    service: DiscoveryService = Depends(get_discovery_service),
) -> list[ScoredCandidate]:
    """Return the next batch of candidates for the user's swipe feed.

    Users who have not completed their profile (gender, gender interest,
    a photo and a location) are refused with 403 ``PROFILE_INCOMPLETE``.
    Filters are validated before any query runs; malformed filters return
    422 ``INVALID_FILTER``.
    """
    filters = service.validate_filters(payload.filters)
    await service.require_eligible(user_id)
    return await service.get_candidates(
        user_id,
        limit=payload.limit,
        exclude_ids=payload.exclude_ids,
        filters=filters,
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/eligibility — Profile completeness for discovery
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/eligibility",
    response_model=DiscoveryEligibility,
    summary="Check whether a user may use discovery",
)
async def get_eligibility(
    user_id: uuid.UUID,
    service: DiscoveryService = Depends(get_discovery_service),
) -> DiscoveryEligibility:
    eligibility = await service.check_eligibility(user_id)
    logger.info(
        "discovery_eligibility_checked",
        user_id=str(user_id),
        eligible=eligibility.eligible,
    )
    return eligibility
