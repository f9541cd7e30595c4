"""Initial schema — users, profile satellites, actions and matches.

Revision ID: 001_initial
Revises:
Create Date: 2026-06-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


GENDER = postgresql.ENUM("MALE", "FEMALE", "OTHER", name="gender", create_type=False)
ACTION_KIND = postgresql.ENUM("LIKE", "PASS", "SUPER_LIKE", name="action_kind", create_type=False)


def upgrade() -> None:
    GENDER.create(op.get_bind(), checkfirst=True)
    ACTION_KIND.create(op.get_bind(), checkfirst=True)

    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String, unique=True, index=True, nullable=False),
        sa.Column("password_hash", sa.String, nullable=True),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("birth_date", sa.Date, nullable=False),
        sa.Column("gender", GENDER, nullable=True),
        sa.Column(
            "interested_in_everyone",
            sa.Boolean,
            server_default="false",
            nullable=False,
        ),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column("education", sa.String, nullable=True),
        sa.Column("profession", sa.String, nullable=True),
        sa.Column("height", sa.String, nullable=True),
        sa.Column("smoking", sa.String, nullable=True),
        sa.Column("drinking", sa.String, nullable=True),
        sa.Column(
            "languages",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Array of language names",
        ),
        sa.Column(
            "relationship_types",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Array of RelationshipType values",
        ),
        sa.Column("location", sa.String, nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column("is_premium", sa.Boolean, server_default="false", nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_likes_received", sa.Integer, server_default="0", nullable=False),
        sa.Column("total_matches", sa.Integer, server_default="0", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_users_active_last_active", "users", ["is_active", "last_active_at"]
    )

    # ── 2. photos ───────────────────────────────────────────────────
    op.create_table(
        "photos",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("url", sa.String, nullable=False),
        sa.Column("position", sa.Integer, server_default="0", nullable=False),
        sa.Column("is_main", sa.Boolean, server_default="false", nullable=False),
    )

    # ── 3. interests (reference table) + association ────────────────
    op.create_table(
        "interests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String, unique=True, nullable=False),
        sa.Column("category", sa.String, nullable=True),
    )
    op.create_table(
        "user_interests",
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "interest_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("interests.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # ── 4. user_gender_preferences ──────────────────────────────────
    op.create_table(
        "user_gender_preferences",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("gender", GENDER, nullable=False),
        sa.UniqueConstraint("user_id", "gender", name="uq_gender_preference"),
    )

    # ── 5. user_actions ─────────────────────────────────────────────
    op.create_table(
        "user_actions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "sender_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "receiver_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", ACTION_KIND, nullable=False),
        sa.Column(
            "sequence",
            sa.Integer,
            nullable=False,
            comment="Per-sender insertion order; newest is highest",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("sender_id", "receiver_id", name="uq_action_pair"),
        sa.UniqueConstraint("sender_id", "sequence", name="uq_action_sender_sequence"),
    )
    op.create_index(
        "ix_user_actions_receiver_kind", "user_actions", ["receiver_id", "kind"]
    )

    # ── 6. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user1_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "user2_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean, server_default="true", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "matched_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
            comment="Start of the current active period",
        ),
        sa.UniqueConstraint("user1_id", "user2_id", name="uq_match_pair"),
        sa.CheckConstraint("user1_id <> user2_id", name="ck_match_distinct_users"),
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_table("matches")

    op.drop_index("ix_user_actions_receiver_kind", table_name="user_actions")
    op.drop_table("user_actions")

    op.drop_table("user_gender_preferences")
    op.drop_table("user_interests")
    op.drop_table("interests")
    op.drop_table("photos")

    op.drop_index("ix_users_active_last_active", table_name="users")
    op.drop_table("users")

    ACTION_KIND.drop(op.get_bind(), checkfirst=True)
    GENDER.drop(op.get_bind(), checkfirst=True)
