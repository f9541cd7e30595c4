"""
Ember — Candidate compatibility scoring.

Pure, database-free scoring of one candidate against a requester.  The total
score is the sum of eight independent, individually bounded terms:

  1. Mutual interest     0 | 100   both gender-interest directions hold
  2. Age fit             0 – 50    50 inside range, minus 5 per year outside
  3. Geographic fit      0 – 40    linear inside max distance, slow decay beyond
  4. Shared interests    0 – 30    10 per shared interest
  5. Relationship type   0 | 20    declared relationship types intersect
  6. Recent activity     0 | 5 | 10
  7. Profile complete    0 – 10    2 per populated field
  8. Premium boost       0 | 5     both users premium

Distances use the haversine formula on a 6371 km sphere.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone

from app.models.preferences import is_mutual_interest
from app.models.user import User
from app.schemas.discovery import AgeRange, ScoreBreakdown


EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Rounding can push ``a`` past 1.0 for near-antipodal points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.asin(math.sqrt(a))
    return EARTH_RADIUS_KM * c


def calculate_age(birth_date: date | None, today: date) -> int | None:
    """Whole years between ``birth_date`` and ``today``."""
    if birth_date is None:
        return None
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def user_distance_km(a: User, b: User) -> float | None:
    if None in (a.latitude, a.longitude, b.latitude, b.longitude):
        return None
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


@dataclass
class CandidateScore:
    """Everything the discovery feed needs to know about one candidate."""

    breakdown: ScoreBreakdown
    age: int | None
    distance_km: float | None
    shared_interest_count: int
    matches_mutual_preference: bool

    @property
    def total(self) -> float:
        return self.breakdown.total


class CompatibilityScorer:
    """Score candidates for a requester.

    Stateless; one instance is shared by every discovery request.
    """

    MUTUAL_INTEREST_POINTS: float = 100.0
    AGE_MAX_POINTS: float = 50.0
    AGE_PENALTY_PER_YEAR: float = 5.0
    DISTANCE_MAX_POINTS: float = 40.0
    DISTANCE_DECAY_KM_PER_POINT: float = 10.0
    INTEREST_POINTS_EACH: float = 10.0
    INTEREST_MAX_POINTS: float = 30.0
    RELATIONSHIP_TYPE_POINTS: float = 20.0
    ACTIVE_WEEK_POINTS: float = 10.0
    ACTIVE_MONTH_POINTS: float = 5.0
    COMPLETENESS_POINTS_EACH: float = 2.0
    COMPLETENESS_MIN_PHOTOS: int = 3
    PREMIUM_POINTS: float = 5.0

    # ── Public API ──────────────────────────────────────────────────

    def score(
        self,
        requester: User,
        candidate: User,
        age_range: AgeRange,
        max_distance_km: float,
        now: datetime,
    ) -> CandidateScore:
        mutual = is_mutual_interest(
            requester.gender_interest,
            requester.gender,
            candidate.gender_interest,
            candidate.gender,
        )
        age = calculate_age(candidate.birth_date, now.date())
        distance = user_distance_km(requester, candidate)
        shared = self.shared_interest_count(requester, candidate)

        breakdown = ScoreBreakdown(
            mutual_interest=self.MUTUAL_INTEREST_POINTS if mutual else 0.0,
            age_match=self._age_points(age, age_range),
            distance=self._distance_points(distance, max_distance_km),
            interests=self._interest_points(shared),
            relationship_type=self._relationship_points(requester, candidate),
            activity=self._activity_points(candidate.last_active_at, now),
            completeness=self._completeness_points(candidate),
            premium=(
                self.PREMIUM_POINTS
                if requester.is_premium and candidate.is_premium
                else 0.0
            ),
        )

        return CandidateScore(
            breakdown=breakdown,
            age=age,
            distance_km=distance,
            shared_interest_count=shared,
            matches_mutual_preference=mutual,
        )

    @staticmethod
    def shared_interest_count(requester: User, candidate: User) -> int:
        return len(requester.interest_ids & candidate.interest_ids)

    # ── Individual terms ────────────────────────────────────────────

    def _age_points(self, age: int | None, age_range: AgeRange) -> float:
        if age is None:
            return 0.0
        if age_range.min <= age <= age_range.max:
            return self.AGE_MAX_POINTS
        years_outside = age_range.min - age if age < age_range.min else age - age_range.max
        return max(0.0, self.AGE_MAX_POINTS - self.AGE_PENALTY_PER_YEAR * years_outside)

    def _distance_points(self, distance_km: float | None, max_distance_km: float) -> float:
        if distance_km is None:
            return 0.0
        if distance_km <= max_distance_km:
            return self.DISTANCE_MAX_POINTS * (1 - distance_km / max_distance_km)
        overshoot = distance_km - max_distance_km
        return max(0.0, self.DISTANCE_MAX_POINTS - overshoot / self.DISTANCE_DECAY_KM_PER_POINT)

    def _interest_points(self, shared: int) -> float:
        return min(self.INTEREST_MAX_POINTS, self.INTEREST_POINTS_EACH * shared)

    def _relationship_points(self, requester: User, candidate: User) -> float:
        if requester.relationship_type_set & candidate.relationship_type_set:
            return self.RELATIONSHIP_TYPE_POINTS
        return 0.0

    def _activity_points(self, last_active_at: datetime | None, now: datetime) -> float:
        last_active_at = as_utc(last_active_at)
        if last_active_at is None:
            return 0.0
        days_since = (now - last_active_at).days
        if days_since <= 7:
            return self.ACTIVE_WEEK_POINTS
        if days_since <= 30:
            return self.ACTIVE_MONTH_POINTS
        return 0.0

    def _completeness_points(self, candidate: User) -> float:
        populated = sum((
            bool(candidate.bio),
            bool(candidate.education),
            bool(candidate.profession),
            bool(candidate.height),
            len(candidate.photos) >= self.COMPLETENESS_MIN_PHOTOS,
        ))
        return self.COMPLETENESS_POINTS_EACH * populated
