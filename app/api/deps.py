"""
Ember — API dependencies

Services are built once by the application lifespan and stored on
``app.state``; routes receive them through these dependency functions so
tests can override them with ``app.dependency_overrides``.
"""

from fastapi import Request

from app.services.action_service import ActionService
from app.services.discovery_service import DiscoveryService
from app.services.match_service import MatchService


def get_discovery_service(request: Request) -> DiscoveryService:
    return request.app.state.discovery_service


def get_action_service(request: Request) -> ActionService:
    return request.app.state.action_service


def get_match_service(request: Request) -> MatchService:
    return request.app.state.match_service
