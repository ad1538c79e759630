"""
Post service: creating, editing and deleting posts and comments.

Design notes
------------
- Every mutation passes through ``require_role`` first.  Replying needs
  USER on the parent (the parent must exist, its author is irrelevant);
  editing and deleting need OWNER.
- Deleting a post removes its whole subtree.  Ownership of the root
  authorizes removal of every descendant regardless of who wrote it.
  Deletion is not atomic: if a nested step fails, the records already
  removed stay removed and the call reports False.
- Reply notifications are queued on the session and handed to the
  ``NotificationDispatcher`` only after the transaction commits.  They are
  never awaited; their failures cannot affect the mutation.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.
"""
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from blog_backend.context import RequestContext
from blog_backend.database import bounded
from blog_backend.errors import NotFoundError, StorageError, ValidationError, opaque
from blog_backend.models import Post, utcnow
from blog_backend.notifications import REPLY_SUBJECT, NotificationDispatcher, reply_message
from blog_backend.permissions import Role, require_role
from blog_backend.schemas import PostAndComments
from blog_backend.services.comment_tree import get_post, unflatten

logger = logging.getLogger(__name__)


async def _find_post(db: AsyncSession, post_id: int) -> Post:
    result = await bounded(db.execute(select(Post).where(Post.id == post_id)))
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError(f"post {post_id} does not exist")
    return post


# ---------------------------------------------------------------------------
# Create / edit
# ---------------------------------------------------------------------------

@opaque(None)
async def create_post(
    db: AsyncSession,
    context: RequestContext,
    text: str,
    response_to: int | None = None,
    notifier: NotificationDispatcher | None = None,
) -> PostAndComments | None:
    """
    Create a root post, or a reply when *response_to* is given.

    Returns the new post as a single-node tree, or None when there is no
    text, no logged-in caller, or the parent does not exist.
    """
    if not context.is_authenticated:
        raise ValidationError("create_post requires a logged-in user")
    if not text:
        raise ValidationError("post text is required")

    parent: Post | None = None
    if response_to is not None:
        await require_role(db, context, Role.USER, response_to)
        parent = await _find_post(db, response_to)
    else:
        await require_role(db, context, Role.USER)

    post = Post(author=context.username, text=text, response_to=response_to, created_at=utcnow())
    db.add(post)
    await bounded(db.flush())

    if parent is not None and notifier is not None:
        notifier.dispatch_after_commit(
            db,
            parent.author,
            REPLY_SUBJECT,
            reply_message(parent.author, context.username, text),
        )

    return PostAndComments(
        id=post.id, author=post.author, text=post.text, created_at=post.created_at
    )


@opaque(None)
async def edit_post(
    db: AsyncSession, context: RequestContext, post_id: int, text: str
) -> PostAndComments | None:
    """
    Replace the text of *post_id* and bump its timestamp.

    Author and parent never change.  Returns the post with its comment
    tree, or None when the caller is not the owner or the post is gone.
    """
    if not text:
        raise ValidationError("post text is required")
    await require_role(db, context, Role.OWNER, post_id)

    result = await bounded(
        db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(text=text, created_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
    )
    if result.rowcount == 0:
        raise NotFoundError(f"post {post_id} does not exist")

    try:
        return unflatten(await get_post(db, post_id))[0]
    except ValueError as exc:
        raise StorageError(f"comment tree under post {post_id} is inconsistent") from exc


# ---------------------------------------------------------------------------
# Cascading delete
# ---------------------------------------------------------------------------

async def _delete_subtree(db: AsyncSession, post_id: int, visited: set[int]) -> int:
    """Delete *post_id* and everything below it; return the number removed."""
    visited.add(post_id)
    result = await bounded(db.execute(delete(Post).where(Post.id == post_id)))
    if result.rowcount == 0:
        raise NotFoundError(f"post {post_id} does not exist")

    children = await bounded(
        db.execute(select(Post.id).where(Post.response_to == post_id).order_by(Post.id))
    )
    removed = 1
    for child_id in children.scalars().all():
        if child_id not in visited:
            removed += await _delete_subtree(db, child_id, visited)
    return removed


@opaque(False)
async def delete_post(db: AsyncSession, context: RequestContext, post_id: int) -> bool:
    """
    Delete *post_id* together with all of its comments.

    Returns False (deleting nothing) when the caller does not own the post
    or the post does not exist.
    """
    await require_role(db, context, Role.OWNER, post_id)
    removed = await _delete_subtree(db, post_id, set())
    logger.info("%s deleted post %s (%d record(s))", context.username, post_id, removed)
    return True
