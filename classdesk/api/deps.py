"""
FastAPI dependencies for identity, the shared store and the engines.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from classdesk.kernel.identity.jwt import verify_identity_token
from classdesk.kernel.identity.principal import Principal
from classdesk.kernel.storage.blob import BlobStore
from classdesk.kernel.store.capabilities import Store


# Security scheme
security = HTTPBearer(auto_error=False)


def get_store(request: Request) -> Store:
    """The store built at startup (see main.lifespan)."""
    return request.app.state.store


def get_blobs(request: Request) -> BlobStore:
    return request.app.state.blobs


StoreDep = Annotated[Store, Depends(get_store)]
BlobsDep = Annotated[BlobStore, Depends(get_blobs)]


async def get_current_principal(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Principal:
    """Principal from the identity provider's bearer token, or 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = verify_identity_token(credentials.credentials)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def require_assistant(principal: CurrentPrincipal) -> Principal:
    """Require the caller to be an SA."""
    if not principal.is_assistant:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="SA access required",
        )
    return principal


AssistantPrincipal = Annotated[Principal, Depends(require_assistant)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)
