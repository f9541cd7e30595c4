"""
Ember — Action model (one directed swipe per ordered user pair).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.preferences import ActionKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Action(Base):
    __tablename__ = "user_actions"
    __table_args__ = (
        UniqueConstraint("sender_id", "receiver_id", name="uq_action_pair"),
        UniqueConstraint("sender_id", "sequence", name="uq_action_sender_sequence"),
        Index("ix_user_actions_receiver_kind", "receiver_id", "kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[ActionKind] = mapped_column(
        Enum(ActionKind, name="action_kind"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Per-sender insertion order; newest is highest"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    sender: Mapped["User"] = relationship("User", foreign_keys=[sender_id])
    receiver: Mapped["User"] = relationship("User", foreign_keys=[receiver_id])

    def __repr__(self) -> str:
        return f"<Action {self.sender_id} -> {self.receiver_id} kind={self.kind.value!r}>"
