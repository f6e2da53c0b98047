from fastapi import Depends, Header, HTTPException, Query

from marketplace.config import settings
from marketplace.models import USER_ROLES


class Actor:
    """
    The authenticated party behind a request.

    Identity and role are verified by the upstream gateway and forwarded
    as ``X-Actor-Id`` / ``X-Actor-Role`` headers; this package trusts them
    and uses them only to scope record ownership.
    """

    def __init__(self, id: int, role: str) -> None:
        self.id = id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_actor(
    x_actor_id: int | None = Header(None),
    x_actor_role: str | None = Header(None),
) -> Actor:
    if x_actor_id is None or x_actor_role is None:
        raise HTTPException(status_code=401, detail="Missing actor identity")
    if x_actor_id <= 0 or x_actor_role not in USER_ROLES:
        raise HTTPException(status_code=401, detail="Invalid actor identity")
    return Actor(x_actor_id, x_actor_role)


def require_roles(*roles: str):
    """
    Dependency factory that admits actors holding one of *roles*.

    Administrators are always admitted.

    Usage in a router::

        @router.delete("/{review_id}")
        async def delete_review(actor: Actor = Depends(require_roles("admin"))):
            ...
    """

    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        if roles and not actor.is_admin and actor.role not in roles:
            raise HTTPException(status_code=403, detail="You do not have access to this resource")
        return actor

    return _check


class NotificationListParams:
    """
    Query parameters for the notification inbox.

    Attributes
    ----------
    limit:
        Maximum number of notifications returned, clamped to
        ``settings.MAX_NOTIFICATION_LIMIT``.
    unread_only:
        Return only notifications that have not been read yet.
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_NOTIFICATION_LIMIT,
            ge=1,
            description="Maximum number of notifications to return.",
        ),
        unread_only: bool = Query(
            False,
            description="Only return unread notifications.",
        ),
    ) -> None:
        self.limit = min(limit, settings.MAX_NOTIFICATION_LIMIT)
        self.unread_only = unread_only
