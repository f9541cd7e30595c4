"""
Ember — Swipe actions, match detection and undo

Every write runs as one transaction that first row-locks both users in
canonical order (see ``lock_users``) and then re-checks the invariant it
protects:

  record_action     one action per (sender, receiver); reciprocal likes
                    produce exactly one active match for the pair
  undo_last_action  only the most recent action, only inside the undo window;
                    a match that depended on the undone like is deactivated

Counters on ``users`` (``total_likes_received``, ``total_matches``) are only
changed here and in ``MatchService.unmatch``; decrements never go below zero.
Events are emitted after commit and never affect the persisted outcome.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.config import Settings, get_settings
from app.models.action import Action
from app.models.match import Match, canonical_pair
from app.models.preferences import LIKE_KINDS, ActionKind
from app.models.user import User
from app.schemas.match import (
    ActionHistoryItem,
    ActionOut,
    ActionResult,
    LikerItem,
    MatchOut,
    UndoResult,
    WhoLikedMePage,
)
from app.schemas.user import UserSummary, main_photo_url
from app.services.events import (
    LIKE_REMOVED,
    LIKER_REMOVED,
    MATCH_REMOVED,
    NEW_MATCH,
    EventEmitter,
    PendingEvent,
    dispatch_events,
)
from app.services.match_service import deactivate_match, insert_or_get_match, lock_users
from app.services.scoring_service import as_utc, calculate_age
from app.utils.errors import (
    DuplicateActionError,
    InternalError,
    InvalidActionError,
    InvalidFilterError,
    MatchingError,
    NothingToUndoError,
    NotFoundError,
    UndoWindowExpiredError,
)

logger = structlog.get_logger("ember.action_service")

MAX_PAGE_SIZE = 50


class ActionService:
    """Record likes, super likes and passes; undo them; list incoming likes.

    Parameters
    ----------
    session_factory:
        Factory for the ``AsyncSession`` each operation runs in.
    emitter:
        Optional event emitter called after commit.
    settings:
        Application settings (undo window).
    clock:
        Source of "now"; timestamps written by this service come from it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: EventEmitter | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._emitter = emitter
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def undo_window(self) -> timedelta:
        return timedelta(seconds=self._settings.UNDO_WINDOW_SECONDS)

    # ── Swipes ────────────────────────────────────────────────────────────

    async def record_action(
        self,
        sender_id: uuid.UUID,
        receiver_id: uuid.UUID,
        kind: ActionKind | str = ActionKind.LIKE,
    ) -> ActionResult:
        """Record a swipe and create the match when the like is reciprocated.

        Raises
        ------
        InvalidActionError
            Unknown kind, or a user acting on themselves.
        NotFoundError
            Either user does not exist (or the receiver is deactivated).
        DuplicateActionError
            The sender already acted on the receiver.
        InternalError
            Any persistence failure; nothing is persisted.
        """
        try:
            kind = ActionKind(kind)
        except ValueError as exc:
            raise InvalidActionError(f"Unknown action kind: {kind}") from exc
        if sender_id == receiver_id:
            raise InvalidActionError("You cannot act on your own profile.")

        log = logger.bind(
            sender_id=str(sender_id), receiver_id=str(receiver_id), kind=kind.value
        )
        now = self._clock()
        events: list[PendingEvent] = []

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    users = await lock_users(session, (sender_id, receiver_id))
                    sender = users.get(sender_id)
                    receiver = users.get(receiver_id)
                    if sender is None:
                        raise NotFoundError("User not found.", user_id=sender_id)
                    if receiver is None or not receiver.is_active:
                        raise NotFoundError("User not found.", user_id=receiver_id)

                    if await self._find_action(session, sender_id, receiver_id) is not None:
                        raise DuplicateActionError(receiver_id=receiver_id)

                    # The sender row is locked, so max + 1 cannot race.
                    last_sequence = await session.scalar(
                        select(func.max(Action.sequence)).where(Action.sender_id == sender_id)
                    )
                    action = Action(
                        sender_id=sender_id,
                        receiver_id=receiver_id,
                        kind=kind,
                        sequence=(last_sequence or 0) + 1,
                        created_at=now,
                    )
                    try:
                        async with session.begin_nested():
                            session.add(action)
                    except IntegrityError as exc:
                        raise DuplicateActionError(receiver_id=receiver_id) from exc

                    reciprocal = await self._find_action(session, receiver_id, sender_id)
                    reciprocal_like = reciprocal is not None and reciprocal.kind.is_like

                    match: Match | None = None
                    if kind.is_like:
                        receiver.total_likes_received += 1
                        if reciprocal_like:
                            match, became_active = await insert_or_get_match(
                                session, sender_id, receiver_id, now
                            )
                            if became_active:
                                sender.total_matches += 1
                                receiver.total_matches += 1
                                events.extend(self._new_match_events(match, sender, receiver))
                    elif reciprocal_like:
                        # The pass hides the receiver's like from the sender's feed.
                        events.append(
                            (LIKER_REMOVED, sender_id, {"liker_id": str(receiver_id)})
                        )

                    result = ActionResult(
                        action=ActionOut.model_validate(action),
                        is_match=match is not None,
                        match=MatchOut.model_validate(match) if match is not None else None,
                    )
        except MatchingError:
            raise
        except SQLAlchemyError as exc:
            log.exception("record_action_failed")
            raise InternalError() from exc

        log.info("action_recorded", is_match=result.is_match)
        await dispatch_events(self._emitter, events)
        return result

    async def record_pass(self, sender_id: uuid.UUID, receiver_id: uuid.UUID) -> ActionResult:
        """Record a pass.  Never creates a match and never touches counters."""
        return await self.record_action(sender_id, receiver_id, ActionKind.PASS)

    # ── Undo ──────────────────────────────────────────────────────────────

    async def undo_last_action(self, user_id: uuid.UUID) -> UndoResult:
        """Retract the user's most recent action if it is inside the window.

        Raises
        ------
        NothingToUndoError
            The user has no recorded action.
        UndoWindowExpiredError
            The most recent action is older than ``UNDO_WINDOW_SECONDS``;
            nothing changes.
        InternalError
            Any persistence failure; nothing is persisted.
        """
        log = logger.bind(user_id=str(user_id))
        now = self._clock()
        events: list[PendingEvent] = []

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    latest = await self._latest_action(session, user_id)
                    if latest is None:
                        raise NothingToUndoError()

                    users = await lock_users(session, (user_id, latest.receiver_id))
                    # With the user locked no new action of theirs can appear,
                    # so the locked read below is the definitive latest one.
                    action = await self._latest_action(session, user_id, lock=True)
                    if action is None:
                        raise NothingToUndoError()
                    if action.receiver_id not in users:
                        users.update(await lock_users(session, (action.receiver_id,)))

                    age = now - as_utc(action.created_at)
                    if age > self.undo_window:
                        raise UndoWindowExpiredError(
                            action_id=action.id,
                            age_seconds=int(age.total_seconds()),
                            window_seconds=self._settings.UNDO_WINDOW_SECONDS,
                        )

                    user = users[user_id]
                    receiver = users[action.receiver_id]
                    match_deactivated = False

                    if action.kind.is_like:
                        receiver.total_likes_received = max(0, receiver.total_likes_received - 1)
                        events.append(
                            (LIKE_REMOVED, receiver.id, {"liker_id": str(user_id)})
                        )

                        reciprocal = await self._find_action(session, receiver.id, user_id)
                        if reciprocal is not None and reciprocal.kind.is_like:
                            match = await self._active_match(session, user_id, receiver.id)
                            if match is not None:
                                deactivate_match(match, (user, receiver))
                                match_deactivated = True
                                payload = {"match_id": str(match.id)}
                                events.append((MATCH_REMOVED, user.id, payload))
                                events.append((MATCH_REMOVED, receiver.id, payload))

                    undone = ActionOut.model_validate(action)
                    await session.delete(action)
        except MatchingError:
            raise
        except SQLAlchemyError as exc:
            log.exception("undo_last_action_failed")
            raise InternalError() from exc

        log.info(
            "action_undone",
            action_id=str(undone.id),
            kind=undone.kind.value,
            match_deactivated=match_deactivated,
        )
        await dispatch_events(self._emitter, events)
        return UndoResult(undone_action=undone, match_deactivated=match_deactivated)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_who_liked_me(
        self,
        user_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> WhoLikedMePage:
        """Users who liked ``user_id`` and have not been acted on in return."""
        self._check_page(limit, offset)
        log = logger.bind(user_id=str(user_id))

        acted_on = select(Action.receiver_id).where(Action.sender_id == user_id)
        incoming_likes = (
            Action.receiver_id == user_id,
            Action.kind.in_(LIKE_KINDS),
        )
        unacted = (*incoming_likes, Action.sender_id.not_in(acted_on))

        try:
            async with self._session_factory() as session:
                await self._require_user(session, user_id)

                likes = (
                    await session.execute(
                        select(Action)
                        .where(*unacted)
                        .options(selectinload(Action.sender))
                        .order_by(Action.created_at.desc(), Action.id)
                        .limit(limit)
                        .offset(offset)
                    )
                ).scalars().all()
                total = await session.scalar(
                    select(func.count()).select_from(Action).where(*incoming_likes)
                )
                unacted_count = await session.scalar(
                    select(func.count()).select_from(Action).where(*unacted)
                )
        except MatchingError:
            raise
        except SQLAlchemyError as exc:
            log.exception("get_who_liked_me_failed")
            raise InternalError() from exc

        today = self._clock().date()
        likers = [
            LikerItem(
                user_id=like.sender.id,
                display_name=like.sender.display_name,
                age=calculate_age(like.sender.birth_date, today),
                interests=[i.name for i in like.sender.interests],
                main_photo_url=main_photo_url(like.sender),
                kind=like.kind,
                liked_at=like.created_at,
            )
            for like in likes
        ]

        log.info("who_liked_me_retrieved", returned=len(likers), unacted=unacted_count)
        return WhoLikedMePage(
            likers=likers,
            total_likes_count=total or 0,
            unacted_likes_count=unacted_count or 0,
            limit=limit,
            offset=offset,
        )

    async def get_action_history(
        self,
        user_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ActionHistoryItem]:
        """The user's own actions, most recent first."""
        self._check_page(limit, offset)
        try:
            async with self._session_factory() as session:
                await self._require_user(session, user_id)
                actions = (
                    await session.execute(
                        select(Action)
                        .where(Action.sender_id == user_id)
                        .options(selectinload(Action.receiver))
                        .order_by(Action.sequence.desc())
                        .limit(limit)
                        .offset(offset)
                    )
                ).scalars().all()
        except MatchingError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("get_action_history_failed", user_id=str(user_id))
            raise InternalError() from exc

        today = self._clock().date()
        return [
            ActionHistoryItem(
                action=ActionOut.model_validate(a),
                receiver=UserSummary.from_user(
                    a.receiver, calculate_age(a.receiver.birth_date, today)
                ),
            )
            for a in actions
        ]

    # ── Private helpers ───────────────────────────────────────────────────

    @staticmethod
    def _check_page(limit: int, offset: int) -> None:
        if not 1 <= limit <= MAX_PAGE_SIZE or offset < 0:
            raise InvalidFilterError(
                f"limit must be between 1 and {MAX_PAGE_SIZE} and offset non-negative",
                limit=limit,
                offset=offset,
            )

    @staticmethod
    async def _require_user(session: AsyncSession, user_id: uuid.UUID) -> None:
        exists = await session.scalar(select(User.id).where(User.id == user_id))
        if exists is None:
            raise NotFoundError("User not found.", user_id=user_id)

    @staticmethod
    async def _find_action(
        session: AsyncSession, sender_id: uuid.UUID, receiver_id: uuid.UUID
    ) -> Action | None:
        return (
            await session.execute(
                select(Action).where(
                    Action.sender_id == sender_id,
                    Action.receiver_id == receiver_id,
                )
            )
        ).scalar_one_or_none()

    @staticmethod
    async def _latest_action(
        session: AsyncSession, user_id: uuid.UUID, lock: bool = False
    ) -> Action | None:
        stmt = (
            select(Action)
            .where(Action.sender_id == user_id)
            .order_by(Action.sequence.desc())
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def _active_match(
        session: AsyncSession, user_a: uuid.UUID, user_b: uuid.UUID
    ) -> Match | None:
        user1_id, user2_id = canonical_pair(user_a, user_b)
        return (
            await session.execute(
                select(Match)
                .where(
                    Match.user1_id == user1_id,
                    Match.user2_id == user2_id,
                    Match.is_active.is_(True),
                )
                .with_for_update()
            )
        ).scalar_one_or_none()

    @staticmethod
    def _new_match_events(match: Match, sender: User, receiver: User) -> list[PendingEvent]:
        return [
            (
                NEW_MATCH,
                user.id,
                {
                    "match_id": str(match.id),
                    "matched_user_id": str(other.id),
                    "matched_user_name": other.display_name,
                    "matched_at": match.matched_at.isoformat(),
                },
            )
            for user, other in ((sender, receiver), (receiver, sender))
        ]
