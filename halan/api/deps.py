from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from halan.models.user import Role
from halan.services.scope_service import ActorContext
from halan.utils.security import decode_token

bearer_scheme = HTTPBearer(auto_error=False)


def actor_from_token(token: Optional[str]) -> Optional[ActorContext]:
    """Build the actor from a bearer token carrying ``sub`` and ``role``"""
    if not token:
        return None
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    try:
        role = Role(str(payload.get("role", "")).lower())
    except ValueError:
        return None
    return ActorContext(role=role, id=str(payload["sub"]))


async def get_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> ActorContext:
    """Get the calling actor"""
    actor = actor_from_token(credentials.credentials if credentials else None)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


async def require_manager(actor: ActorContext = Depends(get_actor)) -> ActorContext:
    """Owner or supervisor"""
    if not actor.is_manager:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Owner or supervisor access required"
        )
    return actor


async def require_owner(actor: ActorContext = Depends(get_actor)) -> ActorContext:
    if actor.role != Role.OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Owner access required"
        )
    return actor
