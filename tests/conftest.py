"""
Shared pytest fixtures — in‑memory SQLite, stubbed backend proxy, FastAPI TestClient.
"""
import io
import json
import os
import tempfile

# Keep the app's own engine/data dir away from the working tree
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="spendsmart-test-"))

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from spendsmart.database import Base, get_db  # noqa: E402
from spendsmart.deps import get_backend_client, get_data_dir  # noqa: E402
from spendsmart.models import ReceiptModel  # noqa: E402,F401
from spendsmart.main import app  # noqa: E402
from spendsmart.pipeline.backend import BackendClient  # noqa: E402

BACKEND_URL = "http://backend.test"

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


def ai_reply(payload) -> dict:
    """Wrap a receipt payload the way the generate endpoint does."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {"response": {"text": text}}


def upload_reply(url: str = "https://img.example/r.jpg", provider: str = "cloudinary") -> dict:
    return {"success": True, "data": {"url": url, "provider": provider}}


class BackendStub:
    """Callable for ``httpx.MockTransport`` with per-path canned responses."""

    def __init__(self):
        self.routes: dict[str, tuple] = {}
        self.calls: list[tuple[str, dict, httpx.Headers]] = []

    def on(self, path: str, status: int = 200, json=None, exc: Exception | None = None,
           content=None, headers=None):
        self.routes[path] = (status, json, exc, content, headers)
        return self

    def bodies(self, path: str) -> list[dict]:
        return [body for p, body, _ in self.calls if p == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else {}
        self.calls.append((path, body, request.headers))
        if path not in self.routes:
            return httpx.Response(404, json={"error": "not found"})
        status, payload, exc, content, headers = self.routes[path]
        if exc is not None:
            raise exc
        if content is not None:
            return httpx.Response(status, content=content, headers=headers)
        return httpx.Response(status, json=payload, headers=headers)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def stub():
    return BackendStub()


@pytest.fixture()
def backend(stub):
    http = httpx.AsyncClient(transport=httpx.MockTransport(stub), base_url=BACKEND_URL)
    return BackendClient(http, auth_token="test-token", secret_key="test-secret")


@pytest.fixture()
def make_image():
    def _make(width: int = 640, height: int = 480, fmt: str = "PNG") -> bytes:
        buf = io.BytesIO()
        Image.new("RGB", (width, height), color=(200, 180, 160)).save(buf, format=fmt)
        return buf.getvalue()

    return _make


@pytest.fixture()
def client(db, backend, tmp_path):
    def _override_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_backend_client] = lambda: backend
    app.dependency_overrides[get_data_dir] = lambda: tmp_path
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
