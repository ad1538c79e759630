"""
Role resolution and enforcement.

Roles are computed per request and never stored:

- OWNER (level 2): authenticated caller who authored the post in question
- USER (level 1): any authenticated caller
- GUEST (level 0): anonymous caller
"""
import logging
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_backend.context import RequestContext
from blog_backend.database import bounded
from blog_backend.errors import AuthorizationError
from blog_backend.models import Post

logger = logging.getLogger(__name__)


class Role(str, Enum):
    GUEST = "guest"
    USER = "user"
    OWNER = "owner"


ROLE_HIERARCHY: dict[Role, int] = {
    Role.GUEST: 0,
    Role.USER: 1,
    Role.OWNER: 2,
}


def has_permission(actual: Role | str, required: Role | str) -> bool:
    """
    True if *actual* is at least *required* (OWNER >= USER >= GUEST).

    Examples:
        >>> has_permission(Role.OWNER, Role.USER)
        True
        >>> has_permission("guest", "user")
        False
    """
    return ROLE_HIERARCHY[Role(actual)] >= ROLE_HIERARCHY[Role(required)]


async def get_role(
    db: AsyncSession, context: RequestContext, post_id: int | None = None
) -> Role:
    """
    Resolve the caller's role, optionally scoped to *post_id*.

    A post that does not exist resolves to USER rather than an error, so
    callers that need the post must check its existence themselves.
    """
    if not context.is_authenticated:
        return Role.GUEST
    if post_id is None:
        return Role.USER

    result = await bounded(db.execute(select(Post.author).where(Post.id == post_id)))
    author = result.scalar_one_or_none()
    if author is not None and author == context.username:
        return Role.OWNER
    return Role.USER


async def require_role(
    db: AsyncSession,
    context: RequestContext,
    required: Role | str,
    post_id: int | None = None,
) -> Role:
    """
    Return the caller's actual role if it satisfies *required*.

    Raises:
        AuthorizationError: carrying both the required and the actual role.
    """
    required = Role(required)
    actual = await get_role(db, context, post_id)
    if not has_permission(actual, required):
        raise AuthorizationError(required.value, actual.value)
    return actual
