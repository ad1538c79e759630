from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blog_backend.context import RequestContext
from blog_backend.credentials import CredentialStore
from blog_backend.database import get_db
from blog_backend.dependencies import get_context, get_credential_store, unsuccessful
from blog_backend.schemas import (
    BlogResponse,
    Credentials,
    TokenResponse,
    UserCreate,
    UserSettings,
    UserSettingsUpdate,
)
from blog_backend.services import user_service

router = APIRouter(prefix="/api/v1", tags=["users"])

@router.post("/users", status_code=201)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    credentials: CredentialStore = Depends(get_credential_store),
):
    created = await user_service.create_user(
        db, credentials, data.username, data.password, data.email
    )
    if not created:
        raise unsuccessful()
    return {"created": True}

@router.post("/auth/token", response_model=TokenResponse)
async def authenticate(
    data: Credentials,
    credentials: CredentialStore = Depends(get_credential_store),
):
    token = await user_service.authenticate_user(credentials, data.username, data.password)
    if token is None:
        raise unsuccessful()
    return TokenResponse(token=token)

@router.get("/blogs", response_model=list[BlogResponse])
async def list_blogs(db: AsyncSession = Depends(get_db)):
    return await user_service.get_all_blogs(db)

@router.get("/users/me/settings", response_model=UserSettings)
async def read_settings(
    context: RequestContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
):
    user_settings = await user_service.get_user_settings(db, context)
    if user_settings is None:
        raise unsuccessful()
    return user_settings

@router.patch("/users/me/settings")
async def update_settings(
    data: UserSettingsUpdate,
    context: RequestContext = Depends(get_context),
    db: AsyncSession = Depends(get_db),
):
    if not await user_service.update_user_settings(db, context, data):
        raise unsuccessful()
    return {"updated": True}
