import logging
import math
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Form, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from . import crud, models, schemas
from .auth import (
    SESSION_COOKIE,
    create_access_token,
    hash_password,
    optional_user,
    require_admin,
    require_user,
    verify_password,
)
from .config import get_settings
from .db import Base, engine, get_db
from .errors import (
    BookVaultError,
    NotFound,
    Unauthorized,
    ValidationFailed,
    describe_validation_error,
    register_error_handlers,
)
from .logging_config import setup_logging
from .middleware import session_guard
from .storage import StorageError, StorageGateway, get_storage
from .utils import clean_text, is_safe_object_key, make_object_key, parse_positive_int

setup_logging()
logger = logging.getLogger(__name__)

# Create tables if not existing. Operators migrate older databases with migration/.
Base.metadata.create_all(bind=engine)

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 12
MIN_PASSWORD_LENGTH = 6

BASE_DIR = Path(__file__).resolve().parent

app = FastAPI(title="BookVault")
register_error_handlers(app)
app.middleware("http")(session_guard)

# UI setup
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.globals["categories"] = list(models.Category)
app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/storage")
def storage_health(admin: models.User = Depends(require_admin),
                   storage: StorageGateway = Depends(get_storage)):
    """Check that the books bucket exists and list what it holds."""
    buckets = storage.list_buckets()
    bucket = next((b for b in buckets if b.get("name") == storage.bucket), None)
    if bucket is None:
        return JSONResponse(
            status_code=404,
            content={
                "error": "Books bucket not found",
                "availableBuckets": [b.get("name") for b in buckets],
                "message": f'Please create a bucket named "{storage.bucket}" in your storage dashboard',
            },
        )
    files = storage.list_objects()
    return {
        "success": True,
        "bucketExists": True,
        "bucketName": bucket.get("name"),
        "bucketId": bucket.get("id"),
        "files": files,
    }


# -------------------- Auth --------------------

def _session_redirect(user: models.User, url: str) -> RedirectResponse:
    settings = get_settings()
    resp = RedirectResponse(url=url, status_code=303)
    resp.set_cookie(
        SESSION_COOKIE,
        create_access_token(user),
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
    )
    return resp


def _home_for(user: models.User) -> str:
    return "/admin" if user.role == models.Role.ADMIN else "/dashboard"


def _authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
    user = crud.get_user_by_email(db, email)
    if not user or not user.password_hash or not password:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


@app.post("/auth/login", response_model=schemas.Token)
async def auth_login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    user = _authenticate(db, payload.email, payload.password)
    if not user:
        raise Unauthorized("Incorrect email or password")
    return {"access_token": create_access_token(user), "token_type": "bearer"}


@app.get("/auth/me", response_model=schemas.UserRead)
async def auth_me(user: models.User = Depends(require_user)):
    return user


@app.get("/signin", response_class=HTMLResponse)
async def signin_page(request: Request, user: Optional[models.User] = Depends(optional_user)):
    return templates.TemplateResponse(request, "signin.html", {"user": user, "error": None, "email": ""})


@app.post("/signin")
async def signin(request: Request, email: str = Form(""), password: str = Form(""),
                 db: Session = Depends(get_db)):
    user = _authenticate(db, email, password)
    if not user:
        return templates.TemplateResponse(
            request, "signin.html",
            {"user": None, "error": "Invalid email or password", "email": email},
            status_code=401,
        )
    logger.info("User %s signed in", user.email)
    return _session_redirect(user, _home_for(user))


@app.get("/signup", response_class=HTMLResponse)
async def signup_page(request: Request, user: Optional[models.User] = Depends(optional_user)):
    return templates.TemplateResponse(request, "signup.html", {"user": user, "error": None, "email": "", "name": ""})


@app.post("/signup")
async def signup(request: Request, name: str = Form(""), email: str = Form(""), password: str = Form(""),
                 db: Session = Depends(get_db)):
    context = {"user": None, "email": email, "name": name}
    try:
        data = schemas.UserCreate(email=email, name=clean_text(name) or None, password=password)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        admin_email = get_settings().admin_email
        role = models.Role.ADMIN if admin_email and data.email == admin_email else models.Role.USER
        user = crud.create_user(db, data, role=role, password_hash=hash_password(password))
    except ValidationError as e:
        return templates.TemplateResponse(
            request, "signup.html", {**context, "error": describe_validation_error(e)}, status_code=400)
    except ValueError as e:
        return templates.TemplateResponse(request, "signup.html", {**context, "error": str(e)}, status_code=400)
    logger.info("Registered user %s with role %s", user.email, user.role.value)
    return _session_redirect(user, _home_for(user))


@app.api_route("/signout", methods=["GET", "POST"])
async def signout():
    resp = RedirectResponse(url="/", status_code=303)
    resp.delete_cookie(SESSION_COOKIE)
    return resp


# -------------------- Catalog API --------------------

def _parse_category(raw: Optional[str]) -> Optional[models.Category]:
    if not raw:
        return None
    try:
        return models.Category(raw)
    except ValueError:
        raise ValidationFailed(f"Invalid category: {raw}")


def _page_params(page: Optional[str], limit: Optional[str]):
    max_limit = get_settings().max_page_limit
    return (
        parse_positive_int(page, DEFAULT_PAGE),
        min(parse_positive_int(limit, DEFAULT_LIMIT), max_limit),
    )


def _book_page(db: Session, page: int, limit: int, search: str, category: Optional[models.Category]) -> dict:
    books, total = crud.list_books(db, page=page, limit=limit, search=search, category=category)
    return {
        "books": books,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    }


@app.get("/books", response_model=schemas.BookPage)
async def list_books(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    search: str = Query("", max_length=200),
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    page_no, page_size = _page_params(page, limit)
    return _book_page(db, page_no, page_size, clean_text(search), _parse_category(category))


@app.get("/books/{book_id}", response_model=schemas.BookRead)
async def get_book(book_id: str, db: Session = Depends(get_db)):
    book = crud.get_book(db, book_id)
    if not book:
        raise NotFound("Book not found")
    return book


# -------------------- Admin API --------------------

def check_file_size(file_size: int):
    max_bytes = get_settings().max_upload_bytes
    if file_size > max_bytes:
        raise ValidationFailed(
            f"File size too large. Maximum allowed size is {max_bytes / (1024 * 1024):.0f}MB. "
            f"Current file size: {file_size / (1024 * 1024):.2f}MB"
        )


def validate_pdf(file_size: int, file_type: Optional[str]):
    """Server-side upload checks; raise before any storage mutation."""
    check_file_size(file_size)
    if file_type != PDF_CONTENT_TYPE:
        raise ValidationFailed("Only PDF files are allowed")


def _book_created(book: models.Book) -> JSONResponse:
    body = schemas.BookCreated(message="Book uploaded successfully", book=schemas.BookRead.model_validate(book))
    return JSONResponse(status_code=201, content=body.model_dump(mode="json", by_alias=True))


async def _signed_upload(request: Request, storage: StorageGateway) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationFailed("Invalid JSON body")
    try:
        req = schemas.UploadUrlRequest.model_validate(body)
    except ValidationError as e:
        raise ValidationFailed(describe_validation_error(e))
    validate_pdf(req.file_size, req.file_type)

    key = make_object_key(req.file_name)
    signed_url = await run_in_threadpool(storage.create_signed_upload_url, key)
    logger.info("Issued signed upload URL for %s (%d bytes)", key, req.file_size)
    return schemas.UploadUrlResponse(
        signed_url=signed_url,
        file_name=key,
        file_size=req.file_size,
        public_url=storage.public_url(key),
    ).model_dump(by_alias=True)


async def _proxied_upload(request: Request, db: Session, storage: StorageGateway) -> JSONResponse:
    max_bytes = get_settings().max_upload_bytes
    form = await request.form()
    pdf_file = form.get("pdfFile")
    if not isinstance(pdf_file, UploadFile) or not pdf_file.filename:
        raise ValidationFailed("Missing required fields: pdfFile")

    # Read at most one byte past the ceiling; anything longer is oversize
    data = await pdf_file.read(max_bytes + 1)
    validate_pdf(len(data), pdf_file.content_type)

    key = make_object_key(pdf_file.filename)
    fields = {name: form.get(name) for name in ("title", "author", "category", "description", "coverImage")}
    fields = {name: value for name, value in fields.items() if isinstance(value, str) and value.strip()}
    try:
        metadata = schemas.BookCreate.model_validate({
            **fields,
            "pdfUrl": storage.public_url(key),
            "fileName": key,
            "fileSize": len(data),
        })
    except ValidationError as e:
        raise ValidationFailed(describe_validation_error(e))

    await run_in_threadpool(storage.upload, key, data, content_type=PDF_CONTENT_TYPE)
    try:
        book = await run_in_threadpool(crud.create_book, db, metadata)
    except Exception:
        logger.error("Stored %s but failed to persist its metadata; object is orphaned", key, exc_info=True)
        raise
    logger.info("Book %s uploaded via server (%s)", book.id, key)
    return _book_created(book)


@app.post("/admin/upload")
async def admin_upload(
    request: Request,
    admin: models.User = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
):
    """Issue a signed upload URL (JSON body) or take the whole file (multipart)."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("multipart/form-data"):
            return await _proxied_upload(request, db, storage)
        return await _signed_upload(request, storage)
    except BookVaultError:
        raise
    except Exception:
        logger.error("Upload failed", exc_info=True)
        raise BookVaultError()


@app.post("/admin/books", status_code=201, response_model=schemas.BookCreated)
def admin_create_book(
    payload: schemas.BookCreate,
    admin: models.User = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
):
    check_file_size(payload.file_size)
    if not is_safe_object_key(payload.file_name):
        raise ValidationFailed("Invalid file name")
    if payload.pdf_url != storage.public_url(payload.file_name):
        raise ValidationFailed("pdfUrl does not match the uploaded file")
    try:
        book = crud.create_book(db, payload)
    except ValueError as e:
        raise ValidationFailed(str(e))
    except Exception:
        logger.error("Book metadata save failed", exc_info=True)
        raise BookVaultError()
    logger.info("Book %s saved by %s", book.id, admin.email)
    return {"message": "Book uploaded successfully", "book": book}


@app.delete("/admin/books", response_model=schemas.DeleteResult)
def admin_delete_book(
    id: Optional[str] = Query(None),
    admin: models.User = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: StorageGateway = Depends(get_storage),
):
    if not id:
        raise ValidationFailed("Book ID required")
    book = crud.get_book(db, id)
    if not book:
        raise NotFound("Book not found")

    # Best effort: a storage failure never blocks removing the row
    try:
        file_deleted = storage.remove(book.file_name)
        if not file_deleted:
            logger.warning("Storage object %s was already missing", book.file_name)
    except StorageError:
        logger.warning("Could not delete storage object %s", book.file_name, exc_info=True)
        file_deleted = False

    crud.delete_book(db, book)
    logger.info("Book %s deleted by %s (file deleted: %s)", id, admin.email, file_deleted)
    return {"message": "Book deleted successfully", "fileDeleted": file_deleted}


# -------------------- UI Views --------------------

@app.get("/", response_class=HTMLResponse)
async def landing(request: Request, user: Optional[models.User] = Depends(optional_user)):
    return templates.TemplateResponse(request, "index.html", {"user": user})


@app.get("/dashboard", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    page: Optional[str] = None,
    search: str = Query("", max_length=200),
    category: str = "",
    user: Optional[models.User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    if user is None:
        return RedirectResponse(url="/signin", status_code=303)
    page_no, _ = _page_params(page, None)
    search = clean_text(search)
    error = None
    try:
        selected = _parse_category(category)
    except ValidationFailed as e:
        selected, error = None, e.message
    result = _book_page(db, page_no, DEFAULT_LIMIT, search, selected)
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "user": user,
            "books": result["books"],
            "pagination": result["pagination"],
            "search": search,
            "category": selected.value if selected else "",
            "error": error,
        },
    )


@app.get("/book/{book_id}", response_class=HTMLResponse)
async def book_reader(
    request: Request,
    book_id: str,
    page: Optional[str] = None,
    user: Optional[models.User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    if user is None:
        return RedirectResponse(url="/signin", status_code=303)
    book = crud.get_book(db, book_id)
    if not book:
        return RedirectResponse(url="/dashboard", status_code=303)
    # Cosmetic counter: the embedded viewer decides what is actually shown
    current = parse_positive_int(page, 1)
    if book.total_pages:
        current = min(current, book.total_pages)
    return templates.TemplateResponse(
        request,
        "reader.html",
        {
            "user": user,
            "book": book,
            "current_page": current,
            "viewer_src": f"{book.pdf_url}#page={current}&view=FitH&toolbar=0&navpanes=0&scrollbar=0",
        },
    )


@app.get("/admin", response_class=HTMLResponse)
async def admin_dashboard(
    request: Request,
    user: Optional[models.User] = Depends(optional_user),
    db: Session = Depends(get_db),
):
    if user is None:
        return RedirectResponse(url="/signin", status_code=303)
    if user.role != models.Role.ADMIN:
        return RedirectResponse(url="/dashboard", status_code=303)
    settings = get_settings()
    books, total = crud.list_books(db, page=1, limit=settings.max_page_limit)
    return templates.TemplateResponse(
        request,
        "admin.html",
        {
            "user": user,
            "books": books,
            "total": total,
            "max_upload_mb": settings.max_upload_bytes // (1024 * 1024),
            "max_upload_bytes": settings.max_upload_bytes,
            "storage_anon_key": settings.storage_anon_key,
        },
    )
