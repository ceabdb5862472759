"""
Identity - external principals, client tokens and course passwords.
"""

from classdesk.kernel.identity.password import PasswordHasher, verify_password, hash_password
from classdesk.kernel.identity.principal import ASSISTANT_ROLE, Principal, derive_client_token
from classdesk.kernel.identity.jwt import (
    IdentityTokenPayload,
    IdentityVerifier,
    get_identity_verifier,
    verify_identity_token,
)

__all__ = [
    "PasswordHasher",
    "verify_password",
    "hash_password",
    "ASSISTANT_ROLE",
    "Principal",
    "derive_client_token",
    "IdentityTokenPayload",
    "IdentityVerifier",
    "get_identity_verifier",
    "verify_identity_token",
]
