"""
Ember — User model and profile satellites (photos, interests, gender
preferences).
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.database import Base, PortableJSON
from app.models.preferences import (
    Gender,
    GenderInterest,
    RelationshipType,
    gender_interest_from,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


user_interests = Table(
    "user_interests",
    Base.metadata,
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("interest_id", Uuid, ForeignKey("interests.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    password_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[Gender | None] = mapped_column(
        Enum(Gender, name="gender"), nullable=True
    )
    interested_in_everyone: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    # ── Profile ────────────────────────────────────────────────────
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    education: Mapped[str | None] = mapped_column(String, nullable=True)
    profession: Mapped[str | None] = mapped_column(String, nullable=True)
    height: Mapped[str | None] = mapped_column(String, nullable=True)
    smoking: Mapped[str | None] = mapped_column(String, nullable=True)
    drinking: Mapped[str | None] = mapped_column(String, nullable=True)
    languages: Mapped[list] = mapped_column(
        PortableJSON, default=list, nullable=False, comment="Array of language names"
    )
    relationship_types: Mapped[list] = mapped_column(
        PortableJSON, default=list, nullable=False, comment="Array of RelationshipType values"
    )
    location: Mapped[str | None] = mapped_column(String, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # ── Status ─────────────────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    is_premium: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Derived counters (maintained by the action service) ───────
    total_likes_received: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    total_matches: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=_utcnow, nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    photos: Mapped[list["Photo"]] = relationship(
        "Photo",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Photo.position",
        lazy="selectin",
    )
    interests: Mapped[list["Interest"]] = relationship(
        "Interest", secondary=user_interests, lazy="selectin"
    )
    gender_preferences: Mapped[list["GenderPreference"]] = relationship(
        "GenderPreference",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @validates("relationship_types")
    def _coerce_relationship_types(self, key, value):
        return [RelationshipType(v).value for v in (value or [])]

    @property
    def gender_interest(self) -> GenderInterest:
        return gender_interest_from(
            self.interested_in_everyone,
            (p.gender for p in self.gender_preferences),
        )

    @property
    def relationship_type_set(self) -> frozenset[RelationshipType]:
        return frozenset(RelationshipType(v) for v in self.relationship_types or [])

    @property
    def interest_ids(self) -> set[uuid.UUID]:
        return {i.id for i in self.interests}

    def __repr__(self) -> str:
        return f"<User {self.email!r} id={self.id}>"


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    url: Mapped[str] = mapped_column(String, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_main: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="photos")

    def __repr__(self) -> str:
        return f"<Photo user={self.user_id} pos={self.position}>"


class Interest(Base):
    __tablename__ = "interests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    category: Mapped[str | None] = mapped_column(String, nullable=True)

    def __repr__(self) -> str:
        return f"<Interest {self.name!r}>"


class GenderPreference(Base):
    """One row per gender a user is interested in (unless they chose everyone)."""

    __tablename__ = "user_gender_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "gender", name="uq_gender_preference"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    gender: Mapped[Gender] = mapped_column(Enum(Gender, name="gender"), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="gender_preferences")
