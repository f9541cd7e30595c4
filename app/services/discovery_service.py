"""
Ember — Discovery feed (candidate retrieval, scoring and filtering)

Pipeline for one ``get_candidates`` call:
  1. Validate filters and limit before touching the database.
  2. Build the exclusion set: users already acted on, users in an active
     match, caller-supplied ids, and the requester.
  3. Retrieve a bounded candidate pool (active, not excluded, optionally with
     photos; in strict mode restricted to mutual gender interest).
  4. Score every candidate with ``CompatibilityScorer``.
  5. Sort: mutual preference first, score descending, most recently active.
  6. Reject candidates failing an active strict filter, then apply the limit.

The service only reads.  Its output may be stale by the time the caller acts
on it; ``ActionService`` re-validates every swipe.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import structlog
from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.models.action import Action
from app.models.match import Match
from app.models.preferences import Specific
from app.models.user import GenderPreference, Photo, User
from app.schemas.discovery import (
    AgeRange,
    DiscoveryEligibility,
    DiscoveryFilters,
    ScoredCandidate,
)
from app.schemas.user import CandidateProfile
from app.services.scoring_service import CandidateScore, CompatibilityScorer, as_utc
from app.utils.errors import (
    InternalError,
    InvalidFilterError,
    NotFoundError,
    ProfileIncompleteError,
)

logger = structlog.get_logger("ember.discovery_service")

Scored = tuple[User, CandidateScore]


def check_discovery_requirements(user: User) -> list[str]:
    """Return the profile requirements ``user`` is still missing.

    A user needs a gender, at least one gender of interest (or "everyone"),
    one photo and a location before they can use discovery.
    """
    missing: list[str] = []
    if user.gender is None:
        missing.append("gender")
    interest = user.gender_interest
    if isinstance(interest, Specific) and not interest.genders:
        missing.append("interested_in")
    if not user.photos:
        missing.append("photos")
    if user.latitude is None or user.longitude is None:
        missing.append("location")
    return missing


class DiscoveryService:
    """Produce ranked candidate batches for the swipe feed.

    Dependencies are injected at construction so that the service can be
    tested against a throwaway database and swapped in FastAPI's
    dependency-injection graph.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scorer: CompatibilityScorer | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._scorer = scorer or CompatibilityScorer()
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Public API ────────────────────────────────────────────────────────

    async def get_candidates(
        self,
        requesting_user_id: uuid.UUID,
        limit: int | None = None,
        exclude_ids: Iterable[uuid.UUID] = (),
        filters: DiscoveryFilters | dict[str, Any] | None = None,
    ) -> list[ScoredCandidate]:
        """Return at most ``limit`` scored candidates for the requester.

        Raises
        ------
        InvalidFilterError
            Filters or limit are malformed (raised before any query runs).
        NotFoundError
            The requester does not exist.
        InternalError
            Any persistence failure.
        """
        filters = self.validate_filters(filters)
        limit = self._resolve_limit(limit)
        age_range = filters.age_range or AgeRange(
            min=self._settings.DEFAULT_MIN_AGE, max=self._settings.DEFAULT_MAX_AGE
        )
        max_distance_km = filters.max_distance_km or self._settings.DEFAULT_MAX_DISTANCE_KM

        log = logger.bind(user_id=str(requesting_user_id))
        log.info("get_candidates_start", limit=limit, strict_mode=filters.strict_mode)

        try:
            async with self._session_factory() as session:
                requester = await self._load_user(session, requesting_user_id)
                excluded = await self._exclusion_set(
                    session, requesting_user_id, exclude_ids
                )
                pool = await self._fetch_pool(session, requester, excluded, filters)
        except NotFoundError:
            raise
        except SQLAlchemyError as exc:
            log.exception("get_candidates_query_failed")
            raise InternalError() from exc

        now = self._clock()
        scored: list[Scored] = [
            (candidate, self._scorer.score(requester, candidate, age_range, max_distance_km, now))
            for candidate in pool
        ]
        scored.sort(key=self._sort_key)

        if filters.has_strict_filters:
            scored = self._apply_strict_filters(scored, filters, age_range, max_distance_km)

        final = scored[:limit]

        log.info(
            "get_candidates_complete",
            excluded=len(excluded),
            pool_size=len(pool),
            after_filtering=len(scored),
            preference_matches=sum(1 for _, r in final if r.matches_mutual_preference),
            returned=len(final),
        )

        return [self._to_scored_candidate(candidate, result) for candidate, result in final]

    async def check_eligibility(self, user_id: uuid.UUID) -> DiscoveryEligibility:
        """Report whether ``user_id`` may use discovery."""
        try:
            async with self._session_factory() as session:
                user = await self._load_user(session, user_id)
        except NotFoundError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("check_eligibility_failed", user_id=str(user_id))
            raise InternalError() from exc

        missing = check_discovery_requirements(user)
        return DiscoveryEligibility(eligible=not missing, missing_requirements=missing)

    async def require_eligible(self, user_id: uuid.UUID) -> None:
        eligibility = await self.check_eligibility(user_id)
        if not eligibility.eligible:
            logger.info(
                "discovery_requirements_missing",
                user_id=str(user_id),
                missing=eligibility.missing_requirements,
            )
            raise ProfileIncompleteError(
                missing_requirements=", ".join(eligibility.missing_requirements)
            )

    # ── Validation ────────────────────────────────────────────────────────

    @staticmethod
    def validate_filters(
        filters: DiscoveryFilters | dict[str, Any] | None,
    ) -> DiscoveryFilters:
        if filters is None:
            return DiscoveryFilters()
        if isinstance(filters, DiscoveryFilters):
            return filters
        try:
            return DiscoveryFilters.model_validate(filters)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'filters'}: {err['msg']}"
                for err in exc.errors()
            )
            raise InvalidFilterError(problems=problems) from exc

    def _resolve_limit(self, limit: int | None) -> int:
        if limit is None:
            return self._settings.DISCOVERY_DEFAULT_LIMIT
        if not 1 <= limit <= self._settings.DISCOVERY_MAX_LIMIT:
            raise InvalidFilterError(
                f"Limit must be between 1 and {self._settings.DISCOVERY_MAX_LIMIT}",
                limit=limit,
            )
        return limit

    # ── Queries ───────────────────────────────────────────────────────────

    @staticmethod
    async def _load_user(session: AsyncSession, user_id: uuid.UUID) -> User:
        user = (
            await session.execute(select(User).where(User.id == user_id))
        ).scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found.", user_id=user_id)
        return user

    @staticmethod
    async def _exclusion_set(
        session: AsyncSession,
        user_id: uuid.UUID,
        exclude_ids: Iterable[uuid.UUID],
    ) -> set[uuid.UUID]:
        acted_on = (
            await session.execute(
                select(Action.receiver_id).where(Action.sender_id == user_id)
            )
        ).scalars().all()

        matches = (
            await session.execute(
                select(Match.user1_id, Match.user2_id).where(
                    or_(Match.user1_id == user_id, Match.user2_id == user_id),
                    Match.is_active.is_(True),
                )
            )
        ).all()
        matched = {u2 if u1 == user_id else u1 for u1, u2 in matches}

        logger.debug(
            "discovery_exclusions",
            user_id=str(user_id),
            acted_on=len(acted_on),
            matched=len(matched),
        )
        return {*acted_on, *matched, *exclude_ids, user_id}

    async def _fetch_pool(
        self,
        session: AsyncSession,
        requester: User,
        excluded: set[uuid.UUID],
        filters: DiscoveryFilters,
    ) -> list[User]:
        stmt = select(User).where(
            User.is_active.is_(True),
            User.id.not_in(excluded),
        )

        if filters.only_with_photos:
            stmt = stmt.where(select(Photo.id).where(Photo.user_id == User.id).exists())

        if filters.strict_mode:
            interest = requester.gender_interest
            if isinstance(interest, Specific):
                stmt = stmt.where(User.gender.in_(list(interest.genders)))

            if requester.gender is None:
                stmt = stmt.where(User.interested_in_everyone.is_(True))
            else:
                stmt = stmt.where(
                    or_(
                        User.interested_in_everyone.is_(True),
                        select(GenderPreference.id)
                        .where(
                            GenderPreference.user_id == User.id,
                            GenderPreference.gender == requester.gender,
                        )
                        .exists(),
                    )
                )

        stmt = stmt.order_by(User.last_active_at.desc().nulls_last(), User.id).limit(
            self._settings.DISCOVERY_POOL_SIZE
        )
        return list((await session.execute(stmt)).scalars().all())

    # ── Ranking ───────────────────────────────────────────────────────────

    @staticmethod
    def _sort_key(item: Scored) -> tuple[bool, float, float]:
        candidate, result = item
        last_active = as_utc(candidate.last_active_at)
        recency = last_active.timestamp() if last_active else float("-inf")
        return (not result.matches_mutual_preference, -result.total, -recency)

    @staticmethod
    def passes_strict_filters(
        candidate: User,
        result: CandidateScore,
        filters: DiscoveryFilters,
        age_range: AgeRange,
        max_distance_km: float,
    ) -> bool:
        """Check every enabled strict filter.  Unknown values pass."""
        if filters.strict_age and result.age is not None:
            if not age_range.min <= result.age <= age_range.max:
                return False

        if filters.strict_distance and result.distance_km is not None:
            if result.distance_km > max_distance_km:
                return False

        if filters.strict_relationship_type and filters.relationship_type:
            types = candidate.relationship_type_set
            if types and not types & filters.relationship_type:
                return False

        for enabled, accepted, value in (
            (filters.strict_education, filters.education, candidate.education),
            (filters.strict_smoking, filters.smoking, candidate.smoking),
            (filters.strict_drinking, filters.drinking, candidate.drinking),
        ):
            if enabled and accepted and value and value not in accepted:
                return False

        if filters.strict_languages and filters.languages:
            languages = set(candidate.languages or [])
            if languages and not languages & filters.languages:
                return False

        return True

    def _apply_strict_filters(
        self,
        scored: list[Scored],
        filters: DiscoveryFilters,
        age_range: AgeRange,
        max_distance_km: float,
    ) -> list[Scored]:
        passing = [
            item for item in scored
            if self.passes_strict_filters(item[0], item[1], filters, age_range, max_distance_km)
        ]
        preferred = [item for item in passing if item[1].matches_mutual_preference]
        others = [item for item in passing if not item[1].matches_mutual_preference]
        return preferred + others

    @staticmethod
    def _to_scored_candidate(candidate: User, result: CandidateScore) -> ScoredCandidate:
        return ScoredCandidate(
            user=CandidateProfile.from_user(candidate),
            age=result.age,
            distance_km=round(result.distance_km, 1) if result.distance_km is not None else None,
            score=round(result.total, 4),
            score_breakdown=result.breakdown,
            shared_interest_count=result.shared_interest_count,
            matches_mutual_preference=result.matches_mutual_preference,
        )
