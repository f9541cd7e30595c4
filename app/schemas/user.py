from pydantic import BaseModel, Field
from uuid import UUID
from datetime import date, datetime
from typing import Optional

from app.models.preferences import Gender, RelationshipType


class PhotoOut(BaseModel):
    url: str
    position: int
    is_main: bool

    model_config = {"from_attributes": True}


class CandidateProfile(BaseModel):
    """Public view of a user.  Never carries email or credentials."""

    id: UUID
    display_name: str
    birth_date: date
    gender: Optional[Gender] = None
    bio: Optional[str] = None
    education: Optional[str] = None
    profession: Optional[str] = None
    height: Optional[str] = None
    smoking: Optional[str] = None
    drinking: Optional[str] = None
    languages: list[str] = []
    relationship_types: list[RelationshipType] = []
    location: Optional[str] = None
    is_premium: bool = False
    last_active_at: Optional[datetime] = None
    photos: list[PhotoOut] = []
    interests: list[str] = Field(default_factory=list, description="Interest names")

    model_config = {"from_attributes": True}

    @classmethod
    def from_user(cls, user) -> "CandidateProfile":
        return cls(
            id=user.id,
            display_name=user.display_name,
            birth_date=user.birth_date,
            gender=user.gender,
            bio=user.bio,
            education=user.education,
            profession=user.profession,
            height=user.height,
            smoking=user.smoking,
            drinking=user.drinking,
            languages=list(user.languages or []),
            relationship_types=list(user.relationship_types or []),
            location=user.location,
            is_premium=user.is_premium,
            last_active_at=user.last_active_at,
            photos=[PhotoOut.model_validate(p) for p in user.photos],
            interests=[i.name for i in user.interests],
        )


class UserSummary(BaseModel):
    """Compact user card used in match lists and action history."""

    id: UUID
    display_name: str
    age: Optional[int] = None
    location: Optional[str] = None
    main_photo_url: Optional[str] = None

    @classmethod
    def from_user(cls, user, age: Optional[int] = None) -> "UserSummary":
        return cls(
            id=user.id,
            display_name=user.display_name,
            age=age,
            location=user.location,
            main_photo_url=main_photo_url(user),
        )


def main_photo_url(user) -> Optional[str]:
    """URL of the photo flagged as main, falling back to the first one."""
    photos = list(user.photos)
    if not photos:
        return None
    main = next((p for p in photos if p.is_main), photos[0])
    return main.url
