import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text
from .db import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class Category(str, enum.Enum):
    FICTION = "FICTION"
    NON_FICTION = "NON_FICTION"
    SCIENCE = "SCIENCE"
    HISTORY = "HISTORY"
    BIOGRAPHY = "BIOGRAPHY"
    TECHNOLOGY = "TECHNOLOGY"
    PHILOSOPHY = "PHILOSOPHY"
    POLITICS = "POLITICS"
    BUSINESS = "BUSINESS"
    HEALTH = "HEALTH"
    EDUCATION = "EDUCATION"
    ROMANCE = "ROMANCE"
    MYSTERY = "MYSTERY"
    FANTASY = "FANTASY"
    OTHER = "OTHER"

    @property
    def label(self) -> str:
        # NON_FICTION -> "Non Fiction"
        return self.value.replace("_", " ").title()


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    role = Column(Enum(Role, native_enum=False, length=16), nullable=False, default=Role.USER, index=True)
    # Nullable for accounts provisioned by an external identity provider
    password_hash = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Book(Base):
    __tablename__ = "books"

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(Enum(Category, native_enum=False, length=32), nullable=False, index=True)
    cover_image = Column(String, nullable=True)
    pdf_url = Column(String, nullable=False)
    # Object-storage key; delete(file_name) removes exactly the object behind pdf_url
    file_name = Column(String, nullable=False, unique=True)
    file_size = Column(Integer, nullable=False)
    total_pages = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
