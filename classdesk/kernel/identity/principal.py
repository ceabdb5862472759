"""
Identity principal and client token derivation.
"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional

from classdesk.config import get_settings

CLIENT_TOKEN_LENGTH = 32

# Value of the `app_metadata.role` claim granted to teaching assistants
ASSISTANT_ROLE = "sa"


@dataclass(frozen=True)
class Principal:
    """A stable user id and a human name, as issued by the identity provider."""

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_assistant(self) -> bool:
        return self.role == ASSISTANT_ROLE

    @property
    def display_name(self) -> str:
        return self.name or self.full_name or self.email or self.user_id


def derive_client_token(user_id: str, course_code: str, secret: Optional[str] = None) -> str:
    """
    Pseudonymous thread token for a participant in a course.

    Deterministic in (user_id, course_code), so the same participant lands in
    the same thread from any device, while SAs never see the raw user id.
    """
    key = (secret or get_settings().client_token_secret).encode("utf-8")
    digest = hmac.new(key, f"{user_id}:{course_code}".encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()[:CLIENT_TOKEN_LENGTH]
