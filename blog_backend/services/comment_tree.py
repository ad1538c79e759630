"""
Comment tree service: turns the flat ``posts`` table into nested trees.

Queries here return *ancestor-first* flat lists: every post appears after
its parent.  ``unflatten`` relies on that ordering to build the trees in a
single pass.

Ordering
--------
- Root posts on a blog: newest first, ties broken by author.
- Comments under a post: oldest first, ties broken by author.
"""
from collections.abc import Iterable, Sequence

from sqlalchemy import asc, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_backend.database import bounded
from blog_backend.errors import NotFoundError, opaque
from blog_backend.models import Post
from blog_backend.schemas import PostAndComments, PostResponse


def unflatten(posts: Sequence[Post]) -> list[PostAndComments]:
    """
    Materialize an ancestor-first list of posts into a list of trees.

    A post becomes a root when it has no parent or when its parent is not
    part of *posts* at all.  A post whose parent appears *later* in
    *posts* is rejected with ``ValueError`` instead of being silently
    promoted to a root.
    """
    present = {post.id for post in posts}
    table: dict[int, PostAndComments] = {}
    roots: list[PostAndComments] = []

    for post in posts:
        node = table.get(post.id)
        if node is None:
            node = table[post.id] = PostAndComments()

        node.id = post.id
        node.author = post.author
        node.text = post.text
        node.created_at = post.created_at

        parent_id = post.response_to
        if parent_id is None or parent_id not in present:
            roots.append(node)
        elif parent_id in table:
            table[parent_id].children.append(node)
        else:
            raise ValueError(
                f"post {post.id} appears before its parent {parent_id}; "
                "input must be ordered ancestor-first"
            )
    return roots


# ---------------------------------------------------------------------------
# Flat queries
# ---------------------------------------------------------------------------

async def _direct_children(db: AsyncSession, post_id: int) -> list[Post]:
    q = (
        select(Post)
        .where(Post.response_to == post_id)
        .order_by(asc(Post.created_at), asc(Post.author))
    )
    result = await bounded(db.execute(q))
    return list(result.scalars().all())


async def get_comments(
    db: AsyncSession, post_id: int, _visited: set[int] | None = None
) -> list[Post]:
    """
    Return every descendant of *post_id*.

    A node's direct children are listed as one block, followed by each
    child's own descendants, so the result is ancestor-first.
    """
    visited = _visited if _visited is not None else {post_id}
    children = [c for c in await _direct_children(db, post_id) if c.id not in visited]
    visited.update(c.id for c in children)

    comments = list(children)
    for child in children:
        comments.extend(await get_comments(db, child.id, visited))
    return comments


async def get_post(db: AsyncSession, post_id: int) -> list[Post]:
    """Return ``[post] + get_comments(post)`` ready for ``unflatten``."""
    result = await bounded(db.execute(select(Post).where(Post.id == post_id)))
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError(f"post {post_id} does not exist")
    return [post, *await get_comments(db, post_id)]


def _concat(chunks: Iterable[list[Post]]) -> list[Post]:
    return [post for chunk in chunks for post in chunk]


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

@opaque(list)
async def get_posts(db: AsyncSession, username: str) -> list[PostAndComments]:
    """
    Return *username*'s blog: each root post with its full comment tree.

    Every subtree must resolve; one failing branch empties the result.
    """
    q = (
        select(Post.id)
        .where(Post.author == username, Post.response_to.is_(None))
        .order_by(desc(Post.created_at), asc(Post.author))
    )
    result = await bounded(db.execute(q))
    root_ids = result.scalars().all()

    # One session per request: branches resolve sequentially, never in parallel.
    subtrees = [await get_post(db, root_id) for root_id in root_ids]
    return unflatten(_concat(subtrees))


@opaque(list)
async def get_all_posts(db: AsyncSession, username: str) -> list[PostResponse]:
    """Return every post and comment written by *username*, newest first."""
    q = (
        select(Post)
        .where(Post.author == username)
        .order_by(desc(Post.created_at), asc(Post.author))
    )
    result = await bounded(db.execute(q))
    return [PostResponse.model_validate(p) for p in result.scalars().all()]
