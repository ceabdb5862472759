"""
Course endpoints.
"""

from typing import List

from fastapi import APIRouter, status

from classdesk.api.deps import AssistantPrincipal, CurrentPrincipal, StoreDep
from classdesk.engines.courses import CourseService
from classdesk.schemas.common import SuccessResponse
from classdesk.schemas.course import (
    CourseCreate,
    CourseJoin,
    CourseJoinResponse,
    CourseResponse,
)

router = APIRouter()


@router.post("", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
async def create_course(data: CourseCreate, principal: AssistantPrincipal, store: StoreDep):
    """Create a course (SA only). The code must be unused."""
    course = await CourseService(store).create_course(
        code=data.code,
        title=data.title,
        password=data.password,
        created_by=principal.user_id,
        time_slot=data.time_slot,
        room=data.room,
    )
    return CourseResponse(**course)


@router.get("", response_model=List[CourseResponse])
async def list_courses(principal: AssistantPrincipal, store: StoreDep):
    """List courses, newest first."""
    return [CourseResponse(**c) for c in await CourseService(store).list_courses()]


@router.post("/join", response_model=CourseJoinResponse)
async def join_course(data: CourseJoin, principal: CurrentPrincipal, store: StoreDep):
    """Join a course by code and password; returns the caller's thread token."""
    course = await CourseService(store).join_course(data.code, data.password, principal)
    return CourseJoinResponse(**course)


@router.delete("/{code}", response_model=SuccessResponse)
async def delete_course(code: str, principal: AssistantPrincipal, store: StoreDep):
    """Delete a course and every thread in it (SA only)."""
    removed = await CourseService(store).delete_course(code, principal.user_id)
    return SuccessResponse(message=f"Course {code} deleted", data={"unlinked_rows": removed})
