"""
API v1 routes.
"""

from fastapi import APIRouter

from classdesk.api.v1 import courses, feed, participant, profile, threads

router = APIRouter()

# Static course paths before /courses/{code}
router.include_router(courses.router, prefix="/courses", tags=["Courses"])
router.include_router(threads.router, prefix="/courses", tags=["Threads"])
router.include_router(participant.router, prefix="/courses", tags=["Participant"])
router.include_router(feed.router, prefix="/courses", tags=["Feed"])
router.include_router(profile.router, prefix="/profile", tags=["Profile"])
