from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional

from app.models.preferences import ActionKind
from app.schemas.user import CandidateProfile, UserSummary


class ActionCreate(BaseModel):
    sender_id: UUID
    target_id: UUID


class ActionOut(BaseModel):
    id: UUID
    sender_id: UUID
    receiver_id: UUID
    kind: ActionKind
    created_at: datetime

    model_config = {"from_attributes": True}


class MatchOut(BaseModel):
    id: UUID
    user1_id: UUID
    user2_id: UUID
    is_active: bool
    created_at: datetime
    matched_at: datetime

    model_config = {"from_attributes": True}


class ActionResult(BaseModel):
    action: ActionOut
    is_match: bool = False
    match: Optional[MatchOut] = None


class UndoResult(BaseModel):
    undone_action: ActionOut
    match_deactivated: bool = False


class LikerItem(BaseModel):
    user_id: UUID
    display_name: str
    age: Optional[int] = None
    interests: list[str] = []
    main_photo_url: Optional[str] = None
    kind: ActionKind
    liked_at: datetime


class WhoLikedMePage(BaseModel):
    likers: list[LikerItem]
    total_likes_count: int
    unacted_likes_count: int
    limit: int
    offset: int


class ActionHistoryItem(BaseModel):
    action: ActionOut
    receiver: UserSummary


class MatchListItem(BaseModel):
    match_id: UUID
    other_user: UserSummary
    matched_at: datetime
    created_at: datetime


class MatchDetail(BaseModel):
    match_id: UUID
    matched_at: datetime
    other_user: CandidateProfile
    other_user_age: Optional[int] = None


class UnmatchResult(BaseModel):
    match: MatchOut
