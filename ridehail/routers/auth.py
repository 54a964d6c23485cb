from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from .. import models


# Identity is established upstream (gateway / identity provider) and passed
# through as headers: X-Actor-Id and X-Actor-Role.

@dataclass
class Actor:
    id: int
    role: models.UserRole


def get_current_actor(
    x_actor_id: str = Header(None),
    x_actor_role: str = Header(None),
) -> Actor:
    """Dependency to get the calling actor"""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor headers"
        )

    try:
        actor_id = int(x_actor_id)
        role = models.UserRole(x_actor_role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid actor headers"
        )

    return Actor(id=actor_id, role=role)


def require_role(*allowed_roles: models.UserRole):
    """Dependency factory to require specific roles"""
    def role_checker(actor: Actor = Depends(get_current_actor)):
        if actor.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return actor
    return role_checker


def require_self_or_admin(actor: Actor, driver_id: int) -> None:
    """Drivers may only act on their own record"""
    if actor.role == models.UserRole.DRIVER and actor.id != driver_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Drivers can only act on their own record"
        )
