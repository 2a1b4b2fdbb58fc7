import os
from typing import Generator

# Keep the app's import-time create_all away from the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bookvault import config, crud, models, schemas
from bookvault.auth import SESSION_COOKIE, create_access_token, hash_password
from bookvault.db import Base, get_db
from bookvault.main import app
from bookvault.storage import StorageError, get_storage

PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


class FakeStorage:
    """In-memory stand-in for the storage gateway."""

    base_url = "http://storage.test"
    bucket = "books"

    def __init__(self):
        self.objects = {}
        self.signed = []
        self.fail_upload = False
        self.fail_sign = False
        self.fail_remove = False

    def public_url(self, key):
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{key}"

    def upload(self, key, data, content_type="application/octet-stream"):
        if self.fail_upload:
            raise StorageError("Failed to upload PDF file")
        self.objects[key] = data
        return key

    def create_signed_upload_url(self, key):
        if self.fail_sign:
            raise StorageError("Failed to generate upload URL")
        self.signed.append(key)
        return f"{self.base_url}/storage/v1/object/upload/sign/{self.bucket}/{key}?token=t-{len(self.signed)}"

    def remove(self, key):
        if self.fail_remove:
            raise StorageError("Failed to delete PDF file")
        return self.objects.pop(key, None) is not None

    def list_buckets(self):
        return [{"id": self.bucket, "name": self.bucket}]

    def list_objects(self, prefix="", limit=100):
        return [{"name": k} for k in sorted(self.objects) if k.startswith(prefix)][:limit]


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def storage():
    return FakeStorage()


@pytest.fixture(scope="function")
def settings():
    """Settings for the test; override fields with ``config.set_settings(settings._replace(...))``."""
    current = config.load_settings()._replace(admin_email="admin@example.com", session_secret="test-secret")
    config.set_settings(current)
    yield current
    config.set_settings(None)


@pytest.fixture(scope="function")
def client(db_session, storage, settings):
    # Override dependencies to use the same session and the fake storage
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session, settings):
    def _make(email="reader@example.com", role=models.Role.USER, password="password123", name="Reader"):
        user = crud.create_user(
            db_session,
            schemas.UserCreate(email=email, name=name),
            role=role,
            password_hash=hash_password(password),
        )
        return user, create_access_token(user)
    return _make


@pytest.fixture
def admin_headers(make_user):
    _, token = make_user(email="admin@example.com", role=models.Role.ADMIN, name="Admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(make_user):
    _, token = make_user()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login(client):
    """Attach a session cookie to the test client, as a browser would hold it."""
    def _login(token):
        client.cookies.set(SESSION_COOKIE, token)
    return _login


@pytest.fixture
def make_book(db_session, storage):
    counter = {"n": 0}

    def _make(title="Book", author="Author", category=models.Category.FICTION, stored=True, **extra):
        counter["n"] += 1
        key = f"{1700000000000 + counter['n']}-book{counter['n']}.pdf"
        if stored:
            storage.objects[key] = PDF_BYTES
        data = schemas.BookCreate(
            title=title,
            author=author,
            category=category,
            pdf_url=storage.public_url(key),
            file_name=key,
            file_size=extra.pop("file_size", len(PDF_BYTES)),
            **extra,
        )
        return crud.create_book(db_session, data)
    return _make
