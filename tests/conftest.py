"""Pytest fixtures for ePaper pipeline tests."""

import io
import threading
from datetime import date

import fitz  # PyMuPDF
import pytest
from PIL import Image

from epaper_pipeline.config import PipelineConfig
from epaper_pipeline.db import create_db_engine, create_session_factory, init_db
from epaper_pipeline.db.models import Edition, Issue, Page, SubEdition
from epaper_pipeline.exceptions import RasterizationError, StorageError
from epaper_pipeline.pipeline import IssueIngestionOrchestrator
from epaper_pipeline.storage.object_storage import ObjectStorage
from epaper_pipeline.transformers.rasterizer import Rasterizer, count_pdf_pages
from schemas import AdminContext

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"
EDITION_X = "edition-x"
SUB_EDITION_1 = "sub-edition-1"
EDITION_B = "edition-b"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_pdf(pages: int = 1) -> bytes:
    """Build a minimal PDF with *pages* US Letter pages."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=612, height=792)
        page.insert_text((72, 100), f"Page {i + 1} content")
    data = doc.tobytes()
    doc.close()
    return data


def make_png(width: int = 60, height: int = 80, color=(200, 30, 30), mode: str = "RGB") -> bytes:
    """Build a solid-color PNG."""
    if mode == "RGBA" and len(color) == 3:
        color = (*color, 128)
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class RecordingStorage(ObjectStorage):
    """In-memory object storage that records every call.

    Keys listed in ``fail_put`` / ``fail_delete`` raise StorageError.
    """

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.puts: list[str] = []
        self.deletes: list[str] = []
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()
        self._lock = threading.Lock()

    def public_url(self, key: str) -> str:
        return f"https://cdn.test/{key}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        with self._lock:
            self.puts.append(key)
            if key in self.fail_put:
                raise StorageError(f"simulated put failure for {key}", key=key)
            self.objects[key] = data
            self.content_types[key] = content_type
        return self.public_url(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self.deletes.append(key)
            if key in self.fail_delete:
                raise StorageError(f"simulated delete failure for {key}", key=key)
            self.objects.pop(key, None)

    def get(self, key: str) -> bytes:
        with self._lock:
            if key not in self.objects:
                raise StorageError(f"missing {key}", key=key)
            return self.objects[key]


class FakeRasterizer(Rasterizer):
    """Produces one small PNG per PDF page without an external tool."""

    def __init__(self):
        self.calls: list[tuple[int, int | None]] = []
        self.fail_with: Exception | None = None

    def rasterize(self, pdf_bytes: bytes, dpi: int = 150, max_pages: int | None = None):
        self.calls.append((dpi, max_pages))
        if self.fail_with is not None:
            raise self.fail_with
        total = count_pdf_pages(pdf_bytes) or 0
        if max_pages:
            total = min(total, max_pages)
        if total == 0:
            raise RasterizationError("pdftoppm produced no PNG pages.")
        return [make_png(color=(10 * n % 255, 100, 150)) for n in range(1, total + 1)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    """In-memory SQLite engine with the schema created."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the in-memory database, with a seeded catalog."""
    factory = create_session_factory(engine=engine)
    with factory.begin() as session:
        session.add_all([
            Edition(id=EDITION_X, tenant_id=TENANT_A, name="Edition X", slug="edition-x"),
            Edition(
                id="edition-gone",
                tenant_id=TENANT_A,
                name="Retired",
                slug="retired",
                is_deleted=True,
            ),
            Edition(id=EDITION_B, tenant_id=TENANT_B, name="Edition B", slug="edition-b"),
        ])
        session.flush()
        session.add(
            SubEdition(
                id=SUB_EDITION_1,
                tenant_id=TENANT_A,
                edition_id=EDITION_X,
                name="District 1",
                slug="district-1",
            )
        )
    return factory


@pytest.fixture
def ctx():
    """Admin context for tenant A."""
    return AdminContext(tenant_id=TENANT_A, user_id="user-1")


@pytest.fixture
def other_ctx():
    """Admin context for tenant B."""
    return AdminContext(tenant_id=TENANT_B, user_id="user-2")


@pytest.fixture
def storage():
    """Recording in-memory storage."""
    return RecordingStorage()


@pytest.fixture
def rasterizer():
    """Fake rasterizer producing one PNG per PDF page."""
    return FakeRasterizer()


@pytest.fixture
def masters_only_config():
    """Pipeline config with derivative generation switched off."""
    return PipelineConfig(generate_derivatives=False)


@pytest.fixture
def orchestrator(session_factory, storage, rasterizer, masters_only_config):
    """Orchestrator that uploads page masters only."""
    return IssueIngestionOrchestrator(
        session_factory, storage, rasterizer, config=masters_only_config
    )


@pytest.fixture
def derivative_orchestrator(session_factory, storage, rasterizer):
    """Orchestrator with WebP and JPEG derivatives enabled."""
    return IssueIngestionOrchestrator(
        session_factory, storage, rasterizer, config=PipelineConfig()
    )


@pytest.fixture
def issue_id(session_factory):
    """A four-page issue for tenant A, inserted directly."""
    with session_factory.begin() as session:
        issue = Issue(
            tenant_id=TENANT_A,
            issue_date=date(2026, 1, 12),
            target_kind="edition",
            target_id=EDITION_X,
            pdf_url="https://cdn.test/issue.pdf",
            cover_image_url="https://cdn.test/page-0001.png",
            page_count=4,
        )
        issue.pages.extend(
            Page(page_number=n, image_url=f"https://cdn.test/page-{n:04d}.png")
            for n in range(1, 5)
        )
        session.add(issue)
        session.flush()
        return issue.id
