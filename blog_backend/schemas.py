from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- User ---

class UserCreate(BaseModel):
    username: str = Field("", max_length=100)
    password: str = ""
    email: str | None = Field(None, max_length=255)


class Credentials(BaseModel):
    username: str = ""
    password: str = ""


class TokenResponse(BaseModel):
    token: str | None


class UserSettings(BaseModel):
    email: str | None = None
    model_config = ConfigDict(from_attributes=True)


class UserSettingsUpdate(BaseModel):
    email: str | None = Field(None, max_length=255)


class BlogResponse(BaseModel):
    name: str


# --- Post ---

class PostCreate(BaseModel):
    text: str = ""
    response_to: int | None = None


class PostUpdate(BaseModel):
    text: str = ""


class PostResponse(BaseModel):
    """A single flat post record, parent pointer included."""

    id: int
    author: str
    text: str
    created_at: datetime
    response_to: int | None = None
    model_config = ConfigDict(from_attributes=True)


class PostAndComments(BaseModel):
    """A post with its materialized comment tree."""

    id: int | None = None
    author: str | None = None
    text: str | None = None
    created_at: datetime | None = None
    children: list["PostAndComments"] = []


PostAndComments.model_rebuild()
