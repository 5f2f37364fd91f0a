"""Tests for the issue ingestion orchestrator."""

import threading
from datetime import date

import pytest
from sqlalchemy import func, select

from epaper_pipeline.config import PipelineConfig
from epaper_pipeline.db.models import Clip, Issue, Page
from epaper_pipeline.exceptions import (
    NotFoundError,
    RasterizationError,
    StorageError,
    UnsupportedTypeError,
    ValidationError,
)
from epaper_pipeline.pipeline import IssueIngestionOrchestrator
from epaper_pipeline.storage.keys import IssueKeys
from schemas.source import PdfUpload
from schemas.target import EditionTarget, SubEditionTarget

from conftest import EDITION_B, EDITION_X, SUB_EDITION_1, TENANT_A, make_pdf

DATE = "2026-01-12"


def _upload(pages: int) -> PdfUpload:
    return PdfUpload(make_pdf(pages), filename="issue.pdf", content_type="application/pdf")


def _count(session_factory, model) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


def _keys(target=EditionTarget(EDITION_X)) -> IssueKeys:
    return IssueKeys(TENANT_A, target, date(2026, 1, 12))


class TestUploadIssue:
    """Tests for IssueIngestionOrchestrator.upload_issue()."""

    def test_first_ingestion(self, orchestrator, ctx, storage, session_factory):
        """A 12-page PDF creates one issue with 12 ordered pages."""
        issue = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(12))

        assert issue.page_count == 12
        assert [p.page_number for p in issue.pages] == list(range(1, 13))
        assert issue.cover_image_url == issue.pages[0].image_url
        assert issue.cover_image_url.endswith("/2026-01-12/pages/page-0001.png")
        assert issue.pdf_url.endswith("/edition/edition-x/2026-01-12/issue.pdf")
        assert issue.target == EditionTarget(EDITION_X)
        assert issue.uploaded_by_user_id == "user-1"
        assert issue.source_page_count == 12
        assert not issue.is_truncated
        assert _count(session_factory, Page) == 12
        assert storage.content_types[_keys().pdf_key] == "application/pdf"

    def test_replace_with_fewer_pages(self, orchestrator, ctx, storage, session_factory):
        """Re-ingesting 10 pages over 12 deletes exactly the two orphaned pages."""
        target = EditionTarget(EDITION_X)
        first = orchestrator.upload_issue(ctx, DATE, target, _upload(12))
        storage.deletes.clear()

        second = orchestrator.upload_issue(ctx, DATE, target, _upload(10))

        keys = _keys()
        assert second.id == first.id
        assert second.page_count == 10
        assert len(second.pages) == 10
        assert second.cover_image_url == second.pages[0].image_url
        assert _count(session_factory, Issue) == 1
        assert _count(session_factory, Page) == 10
        assert sorted(storage.deletes) == [keys.page_key(11), keys.page_key(12)]

    def test_replace_with_more_pages_deletes_nothing(self, orchestrator, ctx, storage):
        """Growing an issue leaves no orphans."""
        target = EditionTarget(EDITION_X)
        orchestrator.upload_issue(ctx, DATE, target, _upload(2))

        issue = orchestrator.upload_issue(ctx, DATE, target, _upload(3))

        assert issue.page_count == 3
        assert storage.deletes == []

    def test_replace_keeps_clips(self, orchestrator, ctx, session_factory):
        """Replacement updates the issue in place, so its clips survive."""
        target = EditionTarget(EDITION_X)
        issue = orchestrator.upload_issue(ctx, DATE, target, _upload(2))
        with session_factory.begin() as session:
            session.add(
                Clip(
                    issue_id=issue.id, page_number=1, x=0, y=0, width=10, height=10,
                    created_by="user-1", updated_by="user-1",
                )
            )

        orchestrator.upload_issue(ctx, DATE, target, _upload(2))

        assert _count(session_factory, Clip) == 1

    def test_orphan_cleanup_failure_is_swallowed(self, orchestrator, ctx, storage, caplog):
        """A failed orphan delete is logged, and the ingestion still succeeds."""
        target = EditionTarget(EDITION_X)
        orchestrator.upload_issue(ctx, DATE, target, _upload(3))
        storage.fail_delete.add(_keys().page_key(3))

        issue = orchestrator.upload_issue(ctx, DATE, target, _upload(1))

        assert issue.page_count == 1
        assert "Failed to delete" in caplog.text

    def test_unexpected_cleanup_error_is_swallowed(
        self, orchestrator, ctx, storage, session_factory, monkeypatch, caplog
    ):
        """Any error from a backend during orphan cleanup is logged, never raised."""
        target = EditionTarget(EDITION_X)
        orchestrator.upload_issue(ctx, DATE, target, _upload(3))

        def broken_delete(key):
            raise ValueError(f"backend rejected {key}")

        monkeypatch.setattr(storage, "delete", broken_delete)

        issue = orchestrator.upload_issue(ctx, DATE, target, _upload(1))

        assert issue.page_count == 1
        assert _count(session_factory, Page) == 1
        assert "backend rejected" in caplog.text

    def test_derivatives_and_cover_preview(self, derivative_orchestrator, ctx, storage):
        """With derivatives on, pages and cover carry WebP and JPEG URLs."""
        issue = derivative_orchestrator.upload_issue(
            ctx, DATE, EditionTarget(EDITION_X), _upload(2)
        )

        keys = _keys()
        assert issue.pages[0].delivery_image_url.endswith("page-0001.webp")
        assert issue.pages[1].preview_image_url.endswith("page-0002.jpg")
        assert issue.cover_image_url_delivery == issue.pages[0].delivery_image_url
        assert issue.cover_preview_url.endswith("pages/cover-og.jpg")
        assert keys.cover_preview_key in storage.objects

    def test_derivative_orphans_are_deleted(self, derivative_orchestrator, ctx, storage):
        """Orphaned pages lose their recorded derivatives too."""
        target = EditionTarget(EDITION_X)
        derivative_orchestrator.upload_issue(ctx, DATE, target, _upload(3))
        storage.deletes.clear()

        derivative_orchestrator.upload_issue(ctx, DATE, target, _upload(2))

        keys = _keys()
        assert sorted(storage.deletes) == sorted(
            [keys.page_key(3), keys.delivery_key(3), keys.preview_key(3)]
        )

    def test_sub_edition_target(self, orchestrator, ctx):
        """Sub-edition issues use their own key space."""
        issue = orchestrator.upload_issue(
            ctx, DATE, SubEditionTarget(SUB_EDITION_1), _upload(1)
        )

        assert issue.target_kind == "sub-edition"
        assert "/sub-edition/sub-edition-1/" in issue.pdf_url

    def test_edition_and_sub_edition_are_distinct_issues(self, orchestrator, ctx, session_factory):
        """The same date can have an edition issue and a sub-edition issue."""
        orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(1))
        orchestrator.upload_issue(ctx, DATE, SubEditionTarget(SUB_EDITION_1), _upload(1))

        assert _count(session_factory, Issue) == 2

    def test_page_cap_truncation_is_reported(
        self, session_factory, storage, rasterizer, ctx, caplog
    ):
        """A page cap keeps the first pages and flags the truncation."""
        config = PipelineConfig(max_pages=3, generate_derivatives=False)
        orchestrator = IssueIngestionOrchestrator(
            session_factory, storage, rasterizer, config=config
        )

        issue = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(5))

        assert rasterizer.calls == [(150, 3)]
        assert issue.page_count == 3
        assert issue.source_page_count == 5
        assert issue.is_truncated
        assert "truncated to 3 of 5 pages" in caplog.text

    @pytest.mark.parametrize("bad_date", ["2026-1-12", "12/01/2026", "2026-02-30", ""])
    def test_invalid_date(self, orchestrator, ctx, storage, bad_date):
        """Malformed or impossible dates fail before any write."""
        with pytest.raises(ValidationError):
            orchestrator.upload_issue(ctx, bad_date, EditionTarget(EDITION_X), _upload(1))

        assert storage.puts == []

    def test_missing_target(self, orchestrator, ctx, storage):
        """A target is required."""
        with pytest.raises(ValidationError):
            orchestrator.upload_issue(ctx, DATE, None, _upload(1))
        assert storage.puts == []

    @pytest.mark.parametrize("edition_id", ["missing", "edition-gone", EDITION_B])
    def test_unknown_deleted_or_foreign_target(self, orchestrator, ctx, storage, edition_id):
        """Targets must exist, be live and belong to the tenant."""
        with pytest.raises(NotFoundError):
            orchestrator.upload_issue(ctx, DATE, EditionTarget(edition_id), _upload(1))
        assert storage.puts == []

    def test_rejected_pdf_writes_nothing(self, orchestrator, ctx, storage, session_factory):
        """Intake rejections happen before any storage or database write."""
        upload = PdfUpload(b"%PDF-1.7", filename="cover.png", content_type="image/png")

        with pytest.raises(UnsupportedTypeError):
            orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), upload)

        assert storage.puts == []
        assert _count(session_factory, Issue) == 0

    def test_rasterizer_failure_creates_no_issue(
        self, orchestrator, ctx, rasterizer, session_factory
    ):
        """A conversion failure leaves no issue row."""
        rasterizer.fail_with = RasterizationError("pdftoppm failed (exit 1). boom", exit_code=1)

        with pytest.raises(RasterizationError):
            orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(2))

        assert _count(session_factory, Issue) == 0

    def test_page_upload_failure_creates_no_issue(
        self, orchestrator, ctx, storage, session_factory
    ):
        """A failed page master write is fatal and leaves no issue row."""
        storage.fail_put.add(_keys().page_key(2))

        with pytest.raises(StorageError):
            orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(3))

        assert _count(session_factory, Issue) == 0
        assert _count(session_factory, Page) == 0

    def test_failed_replace_keeps_previous_issue(
        self, orchestrator, ctx, storage, session_factory
    ):
        """A failing re-ingestion leaves the existing issue untouched."""
        target = EditionTarget(EDITION_X)
        orchestrator.upload_issue(ctx, DATE, target, _upload(4))
        storage.fail_put.add(_keys().page_key(1))

        with pytest.raises(StorageError):
            orchestrator.upload_issue(ctx, DATE, target, _upload(2))

        assert orchestrator.find_issue(ctx, DATE, target).page_count == 4
        assert _count(session_factory, Page) == 4

    def test_lost_create_race_becomes_replace(
        self, orchestrator, ctx, session_factory, monkeypatch
    ):
        """A unique-constraint clash on create is retried as a replace."""
        target = EditionTarget(EDITION_X)
        original_find = orchestrator._find
        raced = threading.Event()

        def find_after_competitor(session, ctx_, day, target_):
            if not raced.is_set():
                raced.set()
                # A competing request commits the same key first
                with session_factory.begin() as other:
                    other.add(
                        Issue(
                            tenant_id=TENANT_A,
                            issue_date=day,
                            target_kind=target_.kind,
                            target_id=target_.id,
                            pdf_url="https://cdn.test/other.pdf",
                            page_count=7,
                        )
                    )
                return None
            return original_find(session, ctx_, day, target_)

        monkeypatch.setattr(orchestrator, "_find", find_after_competitor)

        issue = orchestrator.upload_issue(ctx, DATE, target, _upload(2))

        assert issue.page_count == 2
        assert _count(session_factory, Issue) == 1


class TestLookup:
    """Tests for find_issue(), get_issue(), list_issues() and check_exists()."""

    def test_find_and_get(self, orchestrator, ctx):
        """Issues can be found by key and fetched by id."""
        created = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(2))

        assert orchestrator.find_issue(ctx, DATE, EditionTarget(EDITION_X)).id == created.id
        assert orchestrator.get_issue(ctx, created.id).page_count == 2

    def test_find_missing(self, orchestrator, ctx):
        """A missing key is NOT_FOUND."""
        with pytest.raises(NotFoundError):
            orchestrator.find_issue(ctx, DATE, EditionTarget(EDITION_X))

    def test_get_other_tenant(self, orchestrator, ctx, other_ctx):
        """Another tenant's issue is NOT_FOUND."""
        created = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(1))

        with pytest.raises(NotFoundError):
            orchestrator.get_issue(other_ctx, created.id)

    def test_list_issues_for_date(self, orchestrator, ctx, other_ctx):
        """Listing returns only the tenant's issues for that date."""
        orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(1))
        orchestrator.upload_issue(ctx, DATE, SubEditionTarget(SUB_EDITION_1), _upload(1))
        orchestrator.upload_issue(ctx, "2026-01-13", EditionTarget(EDITION_X), _upload(1))

        issues = orchestrator.list_issues(ctx, DATE)

        assert len(issues) == 2
        assert {i.target_kind for i in issues} == {"edition", "sub-edition"}
        assert orchestrator.list_issues(other_ctx, DATE) == []

    def test_check_exists_when_absent(self, orchestrator, ctx):
        """No issue means safe to upload."""
        check = orchestrator.check_exists(ctx, DATE, EditionTarget(EDITION_X))

        assert check.exists is False
        assert check.can_upload
        assert check.message == "No existing issue found. Safe to upload."
        assert check.issue is None

    def test_check_exists_when_present(self, orchestrator, ctx, storage):
        """An existing issue is reported with replace/delete hints."""
        orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(3))
        puts_before = len(storage.puts)

        check = orchestrator.check_exists(ctx, DATE, EditionTarget(EDITION_X))

        assert check.exists is True
        assert check.issue.page_count == 3
        assert check.action.can_replace and check.action.can_delete
        assert len(storage.puts) == puts_before


class TestDeleteIssue:
    """Tests for IssueIngestionOrchestrator.delete_issue()."""

    def test_deletes_objects_then_row(self, derivative_orchestrator, ctx, storage, session_factory):
        """PDF, pages, derivatives and cover preview are removed with the row."""
        issue = derivative_orchestrator.upload_issue(
            ctx, DATE, EditionTarget(EDITION_X), _upload(2)
        )
        with session_factory.begin() as session:
            session.add(
                Clip(
                    issue_id=issue.id, page_number=1, x=0, y=0, width=10, height=10,
                    created_by="user-1", updated_by="user-1",
                )
            )

        result = derivative_orchestrator.delete_issue(ctx, issue.id)

        keys = _keys()
        assert set(result.attempted_keys) == {
            keys.pdf_key,
            keys.page_key(1),
            keys.page_key(2),
            keys.delivery_key(1),
            keys.delivery_key(2),
            keys.preview_key(1),
            keys.preview_key(2),
            keys.cover_preview_key,
        }
        assert result.failed_keys == []
        assert storage.objects == {}
        assert _count(session_factory, Issue) == 0
        assert _count(session_factory, Page) == 0
        assert _count(session_factory, Clip) == 0

    def test_storage_failures_do_not_block(self, orchestrator, ctx, storage, session_factory):
        """Failed object deletions are reported and the row still goes."""
        issue = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(2))
        storage.fail_delete.add(_keys().pdf_key)

        result = orchestrator.delete_issue(ctx, issue.id)

        assert result.failed_keys == [_keys().pdf_key]
        assert _count(session_factory, Issue) == 0

    def test_unexpected_error_during_issue_delete(
        self, orchestrator, ctx, storage, session_factory, monkeypatch
    ):
        """Unexpected backend errors are reported as failed keys."""
        issue = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(1))

        def broken_delete(key):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(storage, "delete", broken_delete)

        result = orchestrator.delete_issue(ctx, issue.id)

        assert sorted(result.failed_keys) == sorted(result.attempted_keys)
        assert _count(session_factory, Issue) == 0

    def test_other_tenant(self, orchestrator, ctx, other_ctx, storage):
        """Deleting another tenant's issue is NOT_FOUND and touches nothing."""
        issue = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(1))

        with pytest.raises(NotFoundError):
            orchestrator.delete_issue(other_ctx, issue.id)

        assert storage.deletes == []


class TestRegenerateDerivatives:
    """Tests for IssueIngestionOrchestrator.regenerate_derivatives()."""

    def test_rebuilds_from_masters(self, derivative_orchestrator, ctx, storage):
        """Derivatives are re-encoded from stored masters, which stay unchanged."""
        issue = derivative_orchestrator.upload_issue(
            ctx, DATE, EditionTarget(EDITION_X), _upload(2)
        )
        keys = _keys()
        master = storage.objects[keys.page_key(1)]
        del storage.objects[keys.delivery_key(1)]
        storage.puts.clear()

        refreshed = derivative_orchestrator.regenerate_derivatives(ctx, issue.id)

        assert keys.delivery_key(1) in storage.objects
        assert storage.objects[keys.page_key(1)] == master
        assert keys.page_key(1) not in storage.puts
        assert refreshed.pages[0].delivery_image_url.endswith("page-0001.webp")
        assert refreshed.cover_preview_url.endswith("cover-og.jpg")

    def test_disabled_without_derivatives(self, orchestrator, ctx):
        """Masters-only pipelines refuse to regenerate."""
        issue = orchestrator.upload_issue(ctx, DATE, EditionTarget(EDITION_X), _upload(1))

        with pytest.raises(ValidationError):
            orchestrator.regenerate_derivatives(ctx, issue.id)

    def test_missing_master(self, derivative_orchestrator, ctx, storage):
        """A lost master is a storage failure."""
        issue = derivative_orchestrator.upload_issue(
            ctx, DATE, EditionTarget(EDITION_X), _upload(1)
        )
        del storage.objects[_keys().page_key(1)]

        with pytest.raises(StorageError):
            derivative_orchestrator.regenerate_derivatives(ctx, issue.id)
