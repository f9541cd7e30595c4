"""
Ember — Match lifecycle

A match exists for an unordered user pair once both directions carry a like.
The row is stored with ``user1_id`` canonically ordered, is never deleted, and
is deactivated by unmatch or by undoing one of its likes.  When a deactivated
pair likes each other again, the same row is reactivated (``matched_at`` is
reset, ``created_at`` kept), so there is at most one row per pair.

The module-level helpers run inside a caller's transaction and are shared with
``ActionService``; ``MatchService`` owns the read and unmatch operations.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import lazyload, selectinload

from app.models.match import Match, canonical_pair
from app.models.user import User
from app.schemas.match import MatchDetail, MatchListItem, MatchOut, UnmatchResult
from app.schemas.user import CandidateProfile, UserSummary
from app.services.events import MATCH_REMOVED, EventEmitter, dispatch_events
from app.services.scoring_service import calculate_age
from app.utils.errors import InternalError, MatchingError, NotFoundError

logger = structlog.get_logger("ember.match_service")


# ──────────────────────────────────────────────────────────────────────────────
# Transaction helpers
# ──────────────────────────────────────────────────────────────────────────────


async def lock_users(
    session: AsyncSession, user_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, User]:
    """Row-lock the given users in ascending id order.

    Every writer that touches two users locks them through this function, so
    two concurrent transactions on the same pair always queue on the same
    first row.
    """
    ids = sorted(set(user_ids), key=str)
    stmt = (
        select(User)
        .where(User.id.in_(ids))
        .order_by(User.id)
        .options(lazyload("*"))
        .with_for_update()
    )
    users = (await session.execute(stmt)).scalars().all()
    return {user.id: user for user in users}


async def insert_or_get_match(
    session: AsyncSession,
    user_a: uuid.UUID,
    user_b: uuid.UUID,
    now: datetime,
) -> tuple[Match, bool]:
    """Create the match for a pair, or return the existing row.

    Returns ``(match, became_active)``; ``became_active`` is False only when
    an active match already existed, in which case no counter may change.
    """
    user1_id, user2_id = canonical_pair(user_a, user_b)

    try:
        async with session.begin_nested():
            match = Match(
                user1_id=user1_id,
                user2_id=user2_id,
                is_active=True,
                created_at=now,
                matched_at=now,
            )
            session.add(match)
        logger.info("match_created", match_id=str(match.id), user1=str(user1_id), user2=str(user2_id))
        return match, True
    except IntegrityError:
        logger.debug("match_insert_conflict", user1=str(user1_id), user2=str(user2_id))

    existing = (
        await session.execute(
            select(Match)
            .where(Match.user1_id == user1_id, Match.user2_id == user2_id)
            .with_for_update()
        )
    ).scalar_one()

    if existing.is_active:
        return existing, False

    existing.is_active = True
    existing.matched_at = now
    logger.info("match_reactivated", match_id=str(existing.id))
    return existing, True


def deactivate_match(match: Match, users: Iterable[User]) -> None:
    """Deactivate ``match`` and take one off each participant's match count."""
    match.is_active = False
    for user in users:
        user.total_matches = max(0, user.total_matches - 1)


# ──────────────────────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────────────────────


class MatchService:
    """Read and unmatch operations on a user's matches."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: EventEmitter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._emitter = emitter
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Public API ────────────────────────────────────────────────────────

    async def get_user_matches(
        self,
        user_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> list[MatchListItem]:
        """List the user's active matches, most recently matched first."""
        log = logger.bind(user_id=str(user_id))
        log.info("get_user_matches_start", limit=limit, offset=offset)

        stmt = (
            select(Match)
            .where(
                or_(Match.user1_id == user_id, Match.user2_id == user_id),
                Match.is_active.is_(True),
            )
            .options(selectinload(Match.user1), selectinload(Match.user2))
            .order_by(Match.matched_at.desc(), Match.id)
            .limit(limit)
            .offset(offset)
        )
        try:
            async with self._session_factory() as session:
                matches = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            log.exception("get_user_matches_failed")
            raise InternalError() from exc

        today = self._clock().date()
        items = []
        for match in matches:
            other = match.user2 if match.user1_id == user_id else match.user1
            items.append(
                MatchListItem(
                    match_id=match.id,
                    other_user=UserSummary.from_user(other, calculate_age(other.birth_date, today)),
                    matched_at=match.matched_at,
                    created_at=match.created_at,
                )
            )

        log.info("user_matches_retrieved", count=len(items))
        return items

    async def get_match_details(
        self, match_id: uuid.UUID, user_id: uuid.UUID
    ) -> MatchDetail:
        """Return an active match and the other participant's profile.

        Raises
        ------
        NotFoundError
            The match does not exist, is inactive, or ``user_id`` is not one
            of its participants.
        """
        log = logger.bind(match_id=str(match_id), user_id=str(user_id))

        stmt = (
            select(Match)
            .where(Match.id == match_id)
            .options(selectinload(Match.user1), selectinload(Match.user2))
        )
        try:
            async with self._session_factory() as session:
                match = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            log.exception("get_match_details_failed")
            raise InternalError() from exc

        if match is None or not match.is_active or not match.involves(user_id):
            log.warning("match_not_found")
            raise NotFoundError("Match not found.", match_id=match_id)

        other = match.user2 if match.user1_id == user_id else match.user1
        return MatchDetail(
            match_id=match.id,
            matched_at=match.matched_at,
            other_user=CandidateProfile.from_user(other),
            other_user_age=calculate_age(other.birth_date, self._clock().date()),
        )

    async def unmatch(self, match_id: uuid.UUID, user_id: uuid.UUID) -> UnmatchResult:
        """Deactivate an active match on behalf of one of its participants."""
        log = logger.bind(match_id=str(match_id), user_id=str(user_id))
        log.info("unmatch_start")

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    match = (
                        await session.execute(select(Match).where(Match.id == match_id))
                    ).scalar_one_or_none()
                    if match is None or not match.involves(user_id):
                        raise NotFoundError("Match not found.", match_id=match_id)

                    # Users before match, the same lock order as record_action.
                    users = await lock_users(session, (match.user1_id, match.user2_id))
                    await session.refresh(match, with_for_update=True)
                    if not match.is_active:
                        raise NotFoundError("Match not found.", match_id=match_id)

                    deactivate_match(match, users.values())
                    other_id = match.other_user_id(user_id)
                    result = UnmatchResult(match=MatchOut.model_validate(match))
        except MatchingError:
            raise
        except SQLAlchemyError as exc:
            log.exception("unmatch_failed")
            raise InternalError() from exc

        log.info("unmatch_complete", other_user_id=str(other_id))
        await dispatch_events(
            self._emitter,
            [(MATCH_REMOVED, other_id, {"match_id": str(match_id), "user_id": str(user_id)})],
        )
        return result
