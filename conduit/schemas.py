from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Bounded by the tags.name column width.
TagName = Annotated[str, Field(max_length=100)]


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (``tagList``) while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- User ---

class UserCreate(BaseModel):
    username: str = Field(max_length=100)
    email: str = Field(max_length=255)
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class UserResponse(UserCreate):
    id: int
    model_config = ConfigDict(from_attributes=True)


class Profile(BaseModel):
    """Public projection of a user as seen by the viewer."""

    username: str
    bio: str | None = None
    image: str | None = None
    following: bool = False


# --- Article requests ---

class ArticleFilter(BaseModel):
    """Listing filter: every field narrows the result set; ``None`` means no restriction."""

    tag: str | None = None
    author: str | None = None
    favorited: str | None = None
    limit: int = Field(20, ge=1)
    offset: int = Field(0, ge=0)


class ArticlePosted(CamelModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field("", max_length=500)
    body: str
    tag_list: list[TagName] = []


class ArticleUpdated(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=500)
    body: str | None = None
    # When given, replaces the article's tag set.
    tag_list: list[TagName] | None = None


# --- Article responses ---

class ArticleForResponse(CamelModel):
    slug: str
    title: str
    description: str
    body: str
    tag_list: list[str]
    created_at: str
    updated_at: str
    favorited: bool
    favorites_count: int = Field(ge=0)
    author: Profile


class ArticleResponse(CamelModel):
    article: ArticleForResponse


class ArticlesResponse(CamelModel):
    articles: list[ArticleForResponse]
    articles_count: int


class TagsResponse(BaseModel):
    tags: list[str]
