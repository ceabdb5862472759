"""
Course and profile schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CourseCreate(BaseModel):
    """Course creation request."""

    code: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=1, max_length=128)
    time_slot: Optional[str] = Field(None, max_length=100)
    room: Optional[str] = Field(None, max_length=100)


class CourseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    title: str
    time_slot: Optional[str] = None
    room: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime


class CourseJoin(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=128)


class CourseJoinResponse(CourseResponse):
    """The joined course and the caller's thread token in it."""

    client_token: str


class ProfileUpdate(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=100)


class ProfileResponse(BaseModel):
    user_id: str
    display_name: str
    stored: bool = False
    updated_at: Optional[datetime] = None
