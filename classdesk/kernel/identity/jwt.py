"""
Verification of identity tokens issued by the external identity provider.

Tokens are HS256-signed with the provider's shared secret and carry `sub`,
`email` and a `user_metadata` object with `name` / `full_name`. Issuing is
only used by tests and local tooling.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from pydantic import BaseModel, Field

from classdesk.config import get_settings
from classdesk.kernel.identity.principal import Principal


class IdentityTokenPayload(BaseModel):
    """Claims the service reads from an identity token."""

    sub: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
    app_metadata: Dict[str, Any] = Field(default_factory=dict)
    exp: datetime

    def to_principal(self) -> Principal:
        meta = self.user_metadata or {}
        return Principal(
            user_id=self.sub,
            email=self.email,
            name=meta.get("name") or None,
            full_name=meta.get("full_name") or None,
            role=(self.app_metadata or {}).get("role"),
        )


class IdentityVerifier:
    """Decode and check identity tokens."""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        settings = get_settings()
        self.secret_key = secret_key or settings.identity_secret
        self.algorithm = algorithm or settings.identity_algorithm

    def verify(self, token: str) -> Optional[Principal]:
        """
        Verify a token and return its principal.

        Returns None for bad signatures, expired tokens or missing claims.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_aud": False},
            )
            claims = IdentityTokenPayload(
                sub=payload["sub"],
                email=payload.get("email"),
                user_metadata=payload.get("user_metadata") or {},
                app_metadata=payload.get("app_metadata") or {},
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (JWTError, KeyError, ValueError):
            return None
        return claims.to_principal()

    def issue(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
        expires_delta: timedelta = timedelta(hours=1),
    ) -> str:
        """Create a token the way the identity provider would."""
        now = datetime.now(timezone.utc)
        metadata = {}
        if name:
            metadata["name"] = name
        if full_name:
            metadata["full_name"] = full_name
        payload = {
            "sub": user_id,
            "email": email,
            "user_metadata": metadata,
            "app_metadata": {"role": role} if role else {},
            "iat": now,
            "exp": now + expires_delta,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)


_verifier: Optional[IdentityVerifier] = None


def get_identity_verifier() -> IdentityVerifier:
    """Get or create the default verifier."""
    global _verifier
    if _verifier is None:
        _verifier = IdentityVerifier()
    return _verifier


def verify_identity_token(token: str) -> Optional[Principal]:
    """Verify a token with the default verifier."""
    return get_identity_verifier().verify(token)
