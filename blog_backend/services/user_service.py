"""
User service: registration, login and per-user settings.

Registration writes to two stores: the credential hash goes to Redis and
the public profile to the ``users`` table.  The username is claimed in
Redis with ``HSETNX`` first, so of two concurrent signups only one proceeds.
There is no transaction spanning both stores, so a failed profile insert
is compensated by removing the credential record the same call claimed.
A crash between the two writes can still leave a credential record
without a profile row.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blog_backend.context import RequestContext
from blog_backend.credentials import CredentialStore
from blog_backend.database import bounded
from blog_backend.errors import NotFoundError, StorageError, ValidationError, opaque
from blog_backend.models import User
from blog_backend.permissions import Role, require_role
from blog_backend.schemas import UserSettings, UserSettingsUpdate
from blog_backend.security import (
    generate_salt,
    hash_password,
    issue_session_token,
    verify_password,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------

@opaque(False)
async def create_user(
    db: AsyncSession,
    credentials: CredentialStore,
    username: str,
    password: str,
    email: str | None = None,
) -> bool:
    """
    Register *username* with *password*.

    Returns False for an empty username or password (nothing is written),
    for an existing credential record, and for any storage failure.
    Not idempotent: a repeated call for the same username returns False.
    """
    if not username or not password:
        raise ValidationError("username and password are required")

    salt = generate_salt()
    if not await credentials.claim(username, salt):
        raise ValidationError(f"user {username!r} already exists")

    # From here on the credential key is ours; only this call may discard it.
    try:
        await credentials.set_hash(username, hash_password(username, salt, password))
        db.add(User(username=username, email=email or None))
        await bounded(db.flush())
    except (SQLAlchemyError, StorageError):
        await db.rollback()
        await credentials.discard(username)
        raise

    logger.info("Created user %s", username)
    return True


@opaque(None)
async def authenticate_user(
    credentials: CredentialStore, username: str, password: str
) -> str | None:
    """
    Return a signed session token if *password* matches, otherwise None.

    Unknown users and wrong passwords are indistinguishable to the caller.
    """
    if not username or not password:
        raise ValidationError("username and password are required")

    stored = await credentials.load(username)
    if stored is None:
        raise NotFoundError("unknown credentials")

    salt, expected_hash = stored
    if not verify_password(username, salt, password, expected_hash):
        raise ValidationError("unknown credentials")

    return issue_session_token(username)


# ---------------------------------------------------------------------------
# Blogs and settings
# ---------------------------------------------------------------------------

@opaque(list)
async def get_all_blogs(db: AsyncSession) -> list[dict]:
    """Return one ``{"name": username}`` entry per registered user."""
    result = await bounded(db.execute(select(User.username).order_by(User.username)))
    return [{"name": username} for username in result.scalars().all()]


@opaque(None)
async def get_user_settings(db: AsyncSession, context: RequestContext) -> UserSettings | None:
    await require_role(db, context, Role.USER)
    result = await bounded(db.execute(select(User).where(User.username == context.username)))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"no profile for {context.username!r}")
    return UserSettings.model_validate(user)


@opaque(False)
async def update_user_settings(
    db: AsyncSession, context: RequestContext, data: UserSettingsUpdate
) -> bool:
    """
    Apply the fields explicitly set in *data* to the caller's profile.

    Returns True iff the caller's profile row exists.
    """
    await require_role(db, context, Role.USER)

    values = data.model_dump(exclude_unset=True)
    result = await bounded(db.execute(select(User).where(User.username == context.username)))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"no profile for {context.username!r}")
    if values:
        await bounded(
            db.execute(update(User).where(User.id == user.id).values(**values))
        )
    return True
