"""
Ember — Main API Router

Aggregates all sub-routers under a single prefix so that ``app.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from app.api import actions, discovery, matches

router = APIRouter()

router.include_router(discovery.router, prefix="/discovery", tags=["Discovery"])
router.include_router(actions.router, prefix="/actions", tags=["Actions"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
