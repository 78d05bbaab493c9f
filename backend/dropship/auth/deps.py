"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_actor       → decode JWT into an Actor (no DB hit)
  require_permission(...) → restrict to actors holding granular permissions

The resulting `Actor` is passed explicitly into every service call that
mutates state; services never look up "the current user" on their own.
"""

from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from dropship.auth.jwt import decode_token
from dropship.auth.permissions import has_permission
from dropship.middleware.exceptions import PermissionDeniedError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


@dataclass(frozen=True)
class Actor:
    """Authorization context for one request."""
    id: str
    name: str
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    def can(self, permission: str) -> bool:
        return has_permission(self.permissions, permission)


# Acts for cron jobs and the background scheduler
SYSTEM_ACTOR = Actor(id="system", name="System", role="system", permissions=frozenset({"*"}))


# ── Core actor dependency ───────────────────────────────────

async def get_current_actor(
    request: Request,
    token: str = Depends(oauth2_scheme),
) -> Actor:
    """Decode the JWT and return the acting user's context.

    The actor is also stashed on `request.state` so the exception handlers
    can include the actor id when logging failures.
    """
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor = Actor(
        id=user_id,
        name=payload.get("name") or user_id,
        role=payload.get("role", ""),
        permissions=frozenset(payload.get("permissions", [])),
    )
    request.state.actor = actor
    return actor


# ── Permission-based access control ─────────────────────────

def require_permission(*perms: str):
    """Dependency factory: restrict to actors who hold ALL listed permissions.

    Usage:
        @router.post("/{order_id}/cancel")
        async def cancel(actor: Actor = Depends(require_permission("dropship.cancel"))):
            ...
    """
    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        missing = [p for p in perms if not actor.can(p)]
        if missing:
            raise PermissionDeniedError(f"Missing permissions: {', '.join(missing)}")
        return actor

    return _check
