"""
Base model with common fields and utilities.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Uuid
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    # Use generic Uuid type for cross-database compatibility
    type_annotation_map = {
        uuid.UUID: Uuid(),
    }


def generate_uuid() -> uuid.UUID:
    """Generate a new UUID."""
    return uuid.uuid4()


def utcnow() -> datetime:
    """Timezone-aware UTC now; the store's clock for server-assigned timestamps."""
    return datetime.now(timezone.utc)
