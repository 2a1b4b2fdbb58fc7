from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict

from .models import Category, Role
from .utils import clean_text


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    name: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = Field(default=None)

    @field_validator("email")
    def normalize_email(cls, v: str):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("invalid email address")
        return v


class UserRead(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: Role = Role.USER

    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    email: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class BookRead(CamelModel):
    id: str
    title: str
    author: str
    description: Optional[str] = None
    category: Category
    cover_image: Optional[str] = None
    pdf_url: str
    file_name: str
    file_size: int
    total_pages: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class BookCreate(CamelModel):
    """Metadata persisted once the PDF is in object storage."""

    title: str = Field(..., min_length=1, max_length=300)
    author: str = Field(..., min_length=1, max_length=200)
    category: Category
    description: Optional[str] = None
    cover_image: Optional[str] = None
    pdf_url: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    file_size: int = Field(..., gt=0)

    @field_validator("title", "author")
    def required_text(cls, v: str):
        v = clean_text(v)
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("description", "cover_image")
    def optional_text(cls, v: Optional[str]):
        v = clean_text(v)
        return v or None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class BookPage(BaseModel):
    books: List[BookRead]
    pagination: Pagination


class BookCreated(BaseModel):
    message: str
    book: BookRead


class UploadUrlRequest(CamelModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., gt=0)
    file_type: str = Field(..., min_length=1)


class UploadUrlResponse(CamelModel):
    success: bool = True
    signed_url: str
    file_name: str
    file_size: int
    public_url: str


class DeleteResult(CamelModel):
    message: str
    file_deleted: bool
