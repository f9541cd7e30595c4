"""
Ember — ORM model registry.

Importing every model here ensures that ``Base.metadata`` (``create_all`` in
the test suite and local tooling) discovers all tables automatically.
"""

from app.models.user import GenderPreference, Interest, Photo, User, user_interests
from app.models.action import Action
from app.models.match import Match

__all__ = [
    "User",
    "Photo",
    "Interest",
    "GenderPreference",
    "user_interests",
    "Action",
    "Match",
]
