from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas


def create_user(db: Session, user: schemas.UserCreate, role: models.Role = models.Role.USER,
                password_hash: Optional[str] = None) -> models.User:
    db_user = models.User(email=user.email, name=user.name, role=role, password_hash=password_hash)
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError("email already registered") from e
    db.refresh(db_user)
    return db_user


def get_user(db: Session, user_id: str) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email.strip().lower()).first()


def _book_filter(search: str = "", category: Optional[models.Category] = None):
    clauses = []
    if search:
        # Parameterized and LIKE-escaped: "%" and "_" in the term match literally
        clauses.append(or_(
            models.Book.title.icontains(search, autoescape=True),
            models.Book.author.icontains(search, autoescape=True),
        ))
    if category is not None:
        clauses.append(models.Book.category == category)
    return and_(*clauses) if clauses else None


def list_books(db: Session, page: int = 1, limit: int = 12, search: str = "",
               category: Optional[models.Category] = None) -> Tuple[List[models.Book], int]:
    """Return one page of books, newest first, and the total number of matches."""
    where = _book_filter(search, category)

    stmt = select(models.Book)
    count_stmt = select(func.count()).select_from(models.Book)
    if where is not None:
        stmt = stmt.where(where)
        count_stmt = count_stmt.where(where)

    stmt = stmt.order_by(models.Book.created_at.desc(), models.Book.id).offset((page - 1) * limit).limit(limit)
    books = list(db.scalars(stmt).all())
    total = db.scalar(count_stmt) or 0
    return books, total


def get_book(db: Session, book_id: str) -> Optional[models.Book]:
    return db.get(models.Book, book_id)


def create_book(db: Session, book: schemas.BookCreate) -> models.Book:
    db_book = models.Book(
        title=book.title,
        author=book.author,
        description=book.description,
        category=book.category,
        cover_image=book.cover_image,
        pdf_url=book.pdf_url,
        file_name=book.file_name,
        file_size=book.file_size,
        # Page counting is not implemented
        total_pages=None,
    )
    db.add(db_book)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError("a book already references this file") from e
    db.refresh(db_book)
    return db_book


def delete_book(db: Session, book: models.Book) -> None:
    db.delete(book)
    db.commit()
