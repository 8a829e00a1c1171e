import math
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field, StringConstraints

from blog_cms.models import CommentStatus, PostStatus

TagName = Annotated[
    str, StringConstraints(strip_whitespace=True, to_lower=True, min_length=1, max_length=30)
]


# --- Category ---

class CategoryCreate(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
    description: str | None = Field(None, max_length=200)


class CategoryUpdate(BaseModel):
    name: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)
    ] | None = None
    description: str | None = Field(None, max_length=200)


# --- Tag ---

class TagCreate(BaseModel):
    name: TagName


class TagsCreate(BaseModel):
    names: list[TagName] = Field(max_length=10)


# --- Post ---

def _check_cover_image(value: str | None) -> str | None:
    if value is not None and not value.startswith(("http://", "https://")):
        raise ValueError("Invalid cover image URL")
    return value


CoverImage = Annotated[str, StringConstraints(max_length=500), AfterValidator(_check_cover_image)]


class PostCreate(BaseModel):
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    content: Any = None
    excerpt: str | None = Field(None, max_length=300)
    cover_image: CoverImage | None = None
    category_id: int
    tag_ids: list[int] = []
    status: PostStatus = PostStatus.DRAFT


class PostUpdate(BaseModel):
    title: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)
    ] | None = None
    content: Any = None
    excerpt: str | None = Field(None, max_length=300)
    cover_image: CoverImage | None = None
    category_id: int | None = None
    tag_ids: list[int] | None = None
    status: PostStatus | None = None


class PostListQuery(BaseModel):
    status: PostStatus | None = None
    category_slug: str | None = None
    tag_slug: str | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)


class PostSearchQuery(BaseModel):
    query: str = Field(min_length=1, max_length=100)
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)


# --- Comment ---

class CommentCreate(BaseModel):
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]
    post_id: int


class CommentListQuery(BaseModel):
    post_id: int | None = None
    status: CommentStatus | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


# --- User ---

class ProfileUpdate(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    bio: str | None = Field(None, max_length=500)


class UserListQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    search: str | None = None


class PageQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)


# --- Pagination ---

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total > 0 else 0,
        )


class Page(BaseModel):
    items: list
    pagination: Pagination

    @classmethod
    def empty(cls, page: int, limit: int) -> "Page":
        return cls(items=[], pagination=Pagination.build(page, limit, 0))
