"""
Ember — Preference vocabularies and the gender-interest variant.

Gender interest is either a specific set of genders or "everyone"; matching
logic asks the variant whether it ``accepts`` a gender instead of checking a
sentinel string inside a list.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class RelationshipType(str, Enum):
    """What a user is looking for; a user may declare several."""

    CASUAL = "CASUAL"
    SERIOUS = "SERIOUS"
    FRIENDSHIP = "FRIENDSHIP"
    MARRIAGE = "MARRIAGE"
    NOT_SURE = "NOT_SURE"


class ActionKind(str, Enum):
    LIKE = "LIKE"
    PASS = "PASS"
    SUPER_LIKE = "SUPER_LIKE"

    @property
    def is_like(self) -> bool:
        return self in (ActionKind.LIKE, ActionKind.SUPER_LIKE)


LIKE_KINDS: tuple[ActionKind, ...] = (ActionKind.LIKE, ActionKind.SUPER_LIKE)


# ---------------------------------------------------------------------------
# Gender interest variant
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Everyone:
    """Interested in every gender, including undeclared ones."""

    def accepts(self, gender: Gender | None) -> bool:
        return True


@dataclass(frozen=True)
class Specific:
    genders: frozenset[Gender]

    def accepts(self, gender: Gender | None) -> bool:
        return gender is not None and gender in self.genders


GenderInterest = Union[Specific, Everyone]


def gender_interest_from(
    everyone: bool, genders: Iterable[Gender | str]
) -> GenderInterest:
    """Build the variant from its stored representation."""
    if everyone:
        return Everyone()
    return Specific(frozenset(Gender(g) for g in genders))


def is_mutual_interest(
    interest_a: GenderInterest,
    gender_a: Gender | None,
    interest_b: GenderInterest,
    gender_b: Gender | None,
) -> bool:
    """True when each side is interested in the other side's gender."""
    return interest_a.accepts(gender_b) and interest_b.accepts(gender_a)
