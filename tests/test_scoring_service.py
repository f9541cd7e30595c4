"""Unit tests for CompatibilityScorer — the eight score terms and helpers."""
import math
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from app.models.preferences import Gender, RelationshipType
from app.models.user import GenderPreference, Interest, Photo, User
from app.schemas.discovery import AgeRange
from app.services.scoring_service import (
    CompatibilityScorer,
    as_utc,
    calculate_age,
    haversine_km,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
DEFAULT_RANGE = AgeRange(min=18, max=100)

HIKING = Interest(id=uuid.uuid4(), name="hiking")
JAZZ = Interest(id=uuid.uuid4(), name="jazz")
COOKING = Interest(id=uuid.uuid4(), name="cooking")
CHESS = Interest(id=uuid.uuid4(), name="chess")


def person(
    gender=Gender.FEMALE,
    interested_in=(Gender.MALE,),
    everyone=False,
    age=30,
    latitude=48.8566,
    longitude=2.3522,
    interests=(),
    photos=1,
    relationship_types=(),
    last_active_at=NOW,
    is_premium=False,
    **profile,
) -> User:
    """Transient user; nothing here touches a database."""
    user = User(
        id=uuid.uuid4(),
        display_name="Test",
        birth_date=date(NOW.year - age, 1, 15),
        gender=gender,
        interested_in_everyone=everyone,
        latitude=latitude,
        longitude=longitude,
        relationship_types=list(relationship_types),
        last_active_at=last_active_at,
        is_premium=is_premium,
        **profile,
    )
    user.gender_preferences = [GenderPreference(gender=g) for g in interested_in]
    user.interests = list(interests)
    user.photos = [Photo(url=f"p{i}.jpg", position=i, is_main=i == 0) for i in range(photos)]
    return user


@pytest.fixture
def scorer():
    return CompatibilityScorer()


@pytest.fixture
def requester():
    return person(gender=Gender.MALE, interested_in=(Gender.FEMALE,), interests=(HIKING, JAZZ, COOKING))


class TestHelpers:
    """Tests for distance, age and timestamp helpers."""

    def test_haversine_paris_london(self):
        """Paris to London is roughly 344 km."""
        assert 340 < haversine_km(48.8566, 2.3522, 51.5074, -0.1278) < 347

    def test_haversine_same_point_is_zero(self):
        assert haversine_km(10.0, 20.0, 10.0, 20.0) == pytest.approx(0.0)

    def test_haversine_near_antipodal_points(self):
        """Rounding just past the antipode still yields half the circumference."""
        d = haversine_km(
            80.05814743531747, 28.530813846926918,
            -80.05814743531747, -151.46918615307308,
        )
        assert d == pytest.approx(math.pi * 6371.0, rel=1e-6)

    def test_age_before_birthday(self):
        assert calculate_age(date(2000, 12, 31), date(2026, 6, 1)) == 25

    def test_age_on_birthday(self):
        assert calculate_age(date(2000, 6, 1), date(2026, 6, 1)) == 26

    def test_age_unknown(self):
        assert calculate_age(None, date(2026, 6, 1)) is None

    def test_as_utc_attaches_timezone_to_naive(self):
        assert as_utc(datetime(2026, 1, 1)).tzinfo is timezone.utc

    def test_as_utc_keeps_aware(self):
        aware = datetime(2026, 1, 1, tzinfo=timezone(timedelta(hours=2)))
        assert as_utc(aware) is aware


class TestMutualInterest:
    """Mutual gender interest is worth 100 points or nothing."""

    def test_both_directions(self, scorer, requester):
        result = scorer.score(requester, person(), DEFAULT_RANGE, 100, NOW)
        assert result.breakdown.mutual_interest == 100
        assert result.matches_mutual_preference is True

    def test_one_direction_only(self, scorer, requester):
        candidate = person(interested_in=(Gender.FEMALE,))
        result = scorer.score(requester, candidate, DEFAULT_RANGE, 100, NOW)
        assert result.breakdown.mutual_interest == 0
        assert result.matches_mutual_preference is False

    def test_everyone_accepts_undeclared_gender(self, scorer):
        requester = person(gender=None, everyone=True, interested_in=())
        candidate = person(everyone=True, interested_in=())
        result = scorer.score(requester, candidate, DEFAULT_RANGE, 100, NOW)
        assert result.matches_mutual_preference is True


class TestAgeTerm:
    """Age fit: 50 inside the range, minus 5 per year outside."""

    @pytest.mark.parametrize("age,expected", [(30, 50), (35, 50), (37, 40), (22, 35), (60, 0)])
    def test_age_points(self, scorer, requester, age, expected):
        result = scorer.score(requester, person(age=age), AgeRange(min=25, max=35), 100, NOW)
        assert result.breakdown.age_match == expected
        assert result.age == age


class TestDistanceTerm:
    """Geographic fit: linear inside the maximum, slow decay beyond it."""

    def _at(self, km):
        return person(latitude=48.8566 + km / 111.19492664455873)

    def test_same_place_scores_full(self, scorer, requester):
        result = scorer.score(requester, self._at(0), DEFAULT_RANGE, 100, NOW)
        assert result.breakdown.distance == pytest.approx(40.0)

    def test_half_way(self, scorer, requester):
        result = scorer.score(requester, self._at(50), DEFAULT_RANGE, 100, NOW)
        assert result.breakdown.distance == pytest.approx(20.0, abs=0.01)

    def test_beyond_maximum_decays_one_point_per_ten_km(self, scorer, requester):
        result = scorer.score(requester, self._at(150), DEFAULT_RANGE, 100, NOW)
        assert result.breakdown.distance == pytest.approx(35.0, abs=0.01)

    def test_non_increasing_beyond_maximum(self, scorer, requester):
        points = [
            scorer.score(requester, self._at(km), DEFAULT_RANGE, 100, NOW).breakdown.distance
            for km in (101, 120, 200, 400, 600, 1000)
        ]
        assert points == sorted(points, reverse=True)
        assert points[-1] == 0.0

    def test_unknown_location_scores_zero(self, scorer, requester):
        result = scorer.score(requester, person(latitude=None, longitude=None), DEFAULT_RANGE, 100, NOW)
        assert result.breakdown.distance == 0.0
        assert result.distance_km is None


class TestInterestTerm:
    """Shared interests: 10 points each, capped at 30."""

    def test_monotonic_in_shared_interests(self, scorer):
        requester = person(gender=Gender.MALE, interested_in=(Gender.FEMALE,),
                           interests=(HIKING, JAZZ, COOKING, CHESS))
        pools = [(), (HIKING,), (HIKING, JAZZ), (HIKING, JAZZ, COOKING), (HIKING, JAZZ, COOKING, CHESS)]
        totals = [
            scorer.score(requester, person(interests=p), DEFAULT_RANGE, 100, NOW)
            for p in pools
        ]
        assert [t.breakdown.interests for t in totals] == [0, 10, 20, 30, 30]
        assert [t.shared_interest_count for t in totals] == [0, 1, 2, 3, 4]
        assert [t.total for t in totals] == sorted(t.total for t in totals)


class TestSmallTerms:
    """Relationship type, activity, completeness and premium."""

    def test_relationship_type_overlap(self, scorer):
        requester = person(gender=Gender.MALE, interested_in=(Gender.FEMALE,),
                           relationship_types=[RelationshipType.SERIOUS, RelationshipType.MARRIAGE])
        same = person(relationship_types=["MARRIAGE"])
        other = person(relationship_types=["CASUAL"])
        assert scorer.score(requester, same, DEFAULT_RANGE, 100, NOW).breakdown.relationship_type == 20
        assert scorer.score(requester, other, DEFAULT_RANGE, 100, NOW).breakdown.relationship_type == 0

    @pytest.mark.parametrize("days,expected", [(0, 10), (7, 10), (8, 5), (30, 5), (31, 0)])
    def test_activity(self, scorer, requester, days, expected):
        candidate = person(last_active_at=NOW - timedelta(days=days))
        assert scorer.score(requester, candidate, DEFAULT_RANGE, 100, NOW).breakdown.activity == expected

    def test_activity_never_active(self, scorer, requester):
        candidate = person(last_active_at=None)
        assert scorer.score(requester, candidate, DEFAULT_RANGE, 100, NOW).breakdown.activity == 0

    def test_completeness(self, scorer, requester):
        sparse = person(photos=1)
        full = person(photos=3, bio="Hi", education="Masters", profession="Chef", height="170")
        assert scorer.score(requester, sparse, DEFAULT_RANGE, 100, NOW).breakdown.completeness == 0
        assert scorer.score(requester, full, DEFAULT_RANGE, 100, NOW).breakdown.completeness == 10

    def test_premium_needs_both(self, scorer):
        premium_requester = person(gender=Gender.MALE, interested_in=(Gender.FEMALE,), is_premium=True)
        assert scorer.score(premium_requester, person(is_premium=True), DEFAULT_RANGE, 100, NOW).breakdown.premium == 5
        assert scorer.score(premium_requester, person(), DEFAULT_RANGE, 100, NOW).breakdown.premium == 0


class TestTotal:

    def test_total_is_sum_of_terms(self, scorer, requester):
        result = scorer.score(requester, person(interests=(HIKING,)), DEFAULT_RANGE, 100, NOW)
        b = result.breakdown
        assert result.total == pytest.approx(
            b.mutual_interest + b.age_match + b.distance + b.interests
            + b.relationship_type + b.activity + b.completeness + b.premium
        )
        # mutual 100 + age 50 + distance 40 + 1 interest 10 + active 10
        assert result.total == pytest.approx(210.0)
