import math

from pydantic import BaseModel, Field, field_validator, model_validator
from uuid import UUID
from typing import Any, Optional

from app.models.preferences import RelationshipType
from app.schemas.user import CandidateProfile

# Vocabulary value the mobile client sends when a preference is irrelevant.
ANY_VALUE = "Doesn't matter"


class AgeRange(BaseModel):
    min: int = Field(18, ge=18, le=120)
    max: int = Field(100, ge=18, le=120)

    @model_validator(mode="after")
    def _min_not_above_max(self) -> "AgeRange":
        if self.min > self.max:
            raise ValueError(f"age_range.min ({self.min}) exceeds age_range.max ({self.max})")
        return self


class DiscoveryFilters(BaseModel):
    """Discovery preferences.  Every value set is soft unless its strict flag
    is on; an empty set (or one containing ``ANY_VALUE``) accepts anyone."""

    age_range: Optional[AgeRange] = None
    max_distance_km: Optional[float] = None
    only_with_photos: bool = True
    strict_age: bool = False
    strict_distance: bool = False

    relationship_type: set[RelationshipType] = set()
    strict_relationship_type: bool = False
    education: set[str] = set()
    strict_education: bool = False
    smoking: set[str] = set()
    strict_smoking: bool = False
    drinking: set[str] = set()
    strict_drinking: bool = False
    languages: set[str] = set()
    strict_languages: bool = False

    strict_mode: bool = False

    model_config = {"extra": "forbid"}

    @field_validator("max_distance_km")
    @classmethod
    def _distance_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and (not math.isfinite(v) or v <= 0):
            raise ValueError(f"max_distance_km must be a positive finite number, got {v}")
        return v

    @field_validator("education", "smoking", "drinking", "languages")
    @classmethod
    def _any_value_is_wildcard(cls, v: set[str]) -> set[str]:
        return set() if ANY_VALUE in v else v

    @property
    def has_strict_filters(self) -> bool:
        return any((
            self.strict_age,
            self.strict_distance,
            self.strict_relationship_type,
            self.strict_education,
            self.strict_smoking,
            self.strict_drinking,
            self.strict_languages,
        ))


class ScoreBreakdown(BaseModel):
    mutual_interest: float = 0.0
    age_match: float = 0.0
    distance: float = 0.0
    interests: float = 0.0
    relationship_type: float = 0.0
    activity: float = 0.0
    completeness: float = 0.0
    premium: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.mutual_interest
            + self.age_match
            + self.distance
            + self.interests
            + self.relationship_type
            + self.activity
            + self.completeness
            + self.premium
        )


class ScoredCandidate(BaseModel):
    user: CandidateProfile
    age: Optional[int] = None
    distance_km: Optional[float] = None
    score: float
    score_breakdown: ScoreBreakdown
    shared_interest_count: int = 0
    matches_mutual_preference: bool = False


class DiscoveryRequest(BaseModel):
    limit: Optional[int] = None
    exclude_ids: list[UUID] = []
    filters: dict[str, Any] = Field(default_factory=dict, description="Validated by the discovery service")


class DiscoveryEligibility(BaseModel):
    eligible: bool
    missing_requirements: list[str] = []
