"""Shared pytest fixtures for all tests."""
import sys
from pathlib import Path
from typing import Any, Optional

import pytest

# Add src/backend to path for imports (but don't import app yet)
sys.path.insert(0, str(Path(__file__).parent.parent / "src" / "backend"))

from external_clients import Deadline  # noqa: E402
from models import PaperMetadata  # noqa: E402


SAMPLE_WIKI_JSON = (
    '[{"id": "overview", "title": "Overview", "content": "A transformer."},'
    ' {"id": "methodology", "title": "Methodology", "children":'
    ' [{"id": "attention", "title": "Scaled Dot-Product Attention", "content": "softmax(QK^T)V"}]}]'
)


class FakeStore:
    """In-memory stand-in for the db module."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.lookups = 0
        self.upserts = 0

    def get_paper_by_arxiv_id(self, arxiv_id: str) -> Optional[dict[str, Any]]:
        self.lookups += 1
        return self.rows.get(arxiv_id)

    def upsert_paper(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.upserts += 1
        existing = self.rows.get(payload["arxiv_id"])
        row_id = existing["id"] if existing else len(self.rows) + 1
        self.rows[payload["arxiv_id"]] = {"id": row_id, **payload}
        return self.rows[payload["arxiv_id"]]


class FakeStorage:
    """In-memory stand-in for PdfStorage."""

    base_url = "https://storage.example.co"
    bucket = "papers"

    def __init__(self, objects: Optional[dict[str, bytes]] = None, conditional_upload: bool = False) -> None:
        self.objects = dict(objects or {})
        self.conditional_upload = conditional_upload
        self.uploads: list[tuple[str, bool]] = []
        self.listed: set[str] = set()

    def public_url(self, object_path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{object_path}"

    def download(self, object_path: str, deadline: Deadline) -> Optional[bytes]:
        return self.objects.get(object_path)

    def exists(self, object_path: str, deadline: Deadline) -> bool:
        return object_path in self.objects or object_path in self.listed

    def upload(self, object_path: str, content: bytes, deadline: Deadline, upsert: bool = True) -> bool:
        self.uploads.append((object_path, upsert))
        if not upsert and object_path in self.listed:
            return False
        self.objects[object_path] = content
        return True


class FakeBackend:
    """Generation backend that returns canned text or raises."""

    def __init__(self, name: str, response: str = "", error: Optional[Exception] = None,
                 configured: bool = True, model: str = "fake-model") -> None:
        self.name = name
        self.response = response
        self.error = error
        self.configured = configured
        self.model = model
        self.calls = 0
        self.contexts: list[Any] = []

    def generate(self, context: Any, deadline: Deadline) -> str:
        self.calls += 1
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return self.response


class Recorder:
    """Callable that records its calls and returns a fixed value."""

    def __init__(self, result: Any = None, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[Any, ...]] = []

    def __call__(self, *args: Any) -> Any:
        self.calls.append(args)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def client():
    """Create a test client that returns HTTP responses instead of raising exceptions.

    The app is imported lazily so unit tests do not pull in FastAPI.
    """
    from fastapi.testclient import TestClient
    from app import app
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def sample_arxiv_id():
    """Sample arXiv ID for testing (Attention Is All You Need paper)."""
    return "1706.03762"


@pytest.fixture
def sample_metadata():
    return PaperMetadata(
        title="Attention Is All You Need",
        abstract="The dominant sequence transduction models are based on recurrent networks.",
        authors=("Ashish Vaswani", "Noam Shazeer"),
        category="cs.CL",
        published="2017-06-12T17:57:34+00:00",
    )


@pytest.fixture
def deadline():
    return Deadline(60)


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_storage():
    return FakeStorage()
