from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blog_backend.context import RequestContext
from blog_backend.database import get_db
from blog_backend.dependencies import get_context, get_dispatcher, unsuccessful
from blog_backend.notifications import NotificationDispatcher
from blog_backend.schemas import PostAndComments, PostCreate, PostResponse, PostUpdate
from blog_backend.services import comment_tree, post_service

router = APIRouter(prefix="/api/v1", tags=["posts"])

@router.get("/blogs/{username}/posts", response_model=list[PostAndComments])
async def get_blog_posts(username: str, db: AsyncSession = Depends(get_db)):
    return await comment_tree.get_posts(db, username)

@router.get("/users/{username}/posts", response_model=list[PostResponse])
async def get_all_posts(username: str, db: AsyncSession = Depends(get_db)):
    return await comment_tree.get_all_posts(db, username)

@router.post("/posts", status_code=201, response_model=PostAndComments)
async def create_post(
    data: PostCreate,
    context: RequestContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_dispatcher),
):
    post = await post_service.create_post(db, context, data.text, data.response_to, notifier)
    if post is None:
        raise unsuccessful()
    return post

@router.put("/posts/{post_id}", response_model=PostAndComments)
async def edit_post(
    post_id: int,
    data: PostUpdate,
    context: RequestContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
):
    post = await post_service.edit_post(db, context, post_id, data.text)
    if post is None:
        raise unsuccessful()
    return post

@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    context: RequestContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
):
    if not await post_service.delete_post(db, context, post_id):
        raise unsuccessful()
