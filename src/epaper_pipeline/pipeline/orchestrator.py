"""Issue ingestion orchestrator.

Runs one PDF through intake, rasterization, page upload and persistence,
and owns the replace semantics for an existing (tenant, date, target) issue.
"""

import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from epaper_pipeline.config import PipelineConfig
from epaper_pipeline.db.models import Edition, Issue, Page, SubEdition
from epaper_pipeline.exceptions import (
    NotFoundError,
    RasterizationError,
    ValidationError,
)
from epaper_pipeline.intake.pdf_fetcher import PdfFetcher
from epaper_pipeline.storage.keys import PDF_CONTENT_TYPE, IssueKeys
from epaper_pipeline.storage.object_storage import ObjectStorage
from epaper_pipeline.transformers.derivatives import DerivativeEncoder
from epaper_pipeline.transformers.rasterizer import Rasterizer, count_pdf_pages
from schemas.context import AdminContext
from schemas.issue import DeletionResult, ExistenceAction, ExistenceCheck, IssueView
from schemas.source import PdfSource
from schemas.target import EditionTarget, SubEditionTarget, Target, target_for

from .concurrency import indexed_parallel_map
from .inputs import parse_issue_date
from .uploader import PageUploader, UploadedPage

logger = logging.getLogger(__name__)


class IssueIngestionOrchestrator:
    """Ingests issue PDFs and manages the resulting issue records.

    Storage writes happen before the database transaction and are not part
    of it: a failed ingestion can leave overwritten objects behind but never
    a partially written issue row.

    Attributes:
        session_factory: Factory for database sessions
        storage: Object storage that receives the PDF, pages and derivatives
        rasterizer: Backend that renders PDF pages to PNG
        fetcher: PDF intake for uploads and remote URLs
        config: Pipeline settings
        uploader: Page uploader bound to storage and the derivative encoder
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        storage: ObjectStorage,
        rasterizer: Rasterizer,
        fetcher: PdfFetcher | None = None,
        config: PipelineConfig | None = None,
        encoder: DerivativeEncoder | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            session_factory: Factory for database sessions
            storage: Destination object storage
            rasterizer: PDF rasterizer backend
            fetcher: PDF intake; one is built from the config when omitted
            config: Pipeline settings (defaults apply when omitted)
            encoder: Derivative encoder; built from the config when omitted.
                     Ignored when derivative generation is disabled.
        """
        self.session_factory = session_factory
        self.storage = storage
        self.rasterizer = rasterizer
        self.config = config or PipelineConfig()
        self.fetcher = fetcher or PdfFetcher(
            max_bytes=self.config.pdf_max_bytes, timeout=self.config.fetch_timeout
        )
        if self.config.generate_derivatives:
            encoder = encoder or DerivativeEncoder.from_config(self.config)
        else:
            encoder = None
        self.uploader = PageUploader(storage, encoder, self.config.upload_concurrency)

    def _keys(self, tenant_id: str, target: Target, issue_date: date) -> IssueKeys:
        return IssueKeys(tenant_id, target, issue_date, root=self.config.storage_root)

    def _issue_keys(self, issue: Issue) -> IssueKeys:
        target = target_for(issue.target_kind, issue.target_id)
        return self._keys(issue.tenant_id, target, issue.issue_date)

    def _require_target(self, target: object) -> Target:
        if not isinstance(target, (EditionTarget, SubEditionTarget)):
            raise ValidationError(
                "Either an edition or a sub-edition is required", code="INVALID_TARGET"
            )
        return target

    def _resolve_target(self, session: Session, ctx: AdminContext, target: Target) -> None:
        """Check that the target exists, is live and belongs to the tenant."""
        if isinstance(target, EditionTarget):
            found = session.scalar(
                select(Edition.id).where(
                    Edition.id == target.id,
                    Edition.tenant_id == ctx.tenant_id,
                    Edition.is_deleted.is_(False),
                )
            )
            if found is None:
                raise NotFoundError("Edition not found", code="EDITION_NOT_FOUND")
        else:
            found = session.scalar(
                select(SubEdition.id).where(
                    SubEdition.id == target.id,
                    SubEdition.tenant_id == ctx.tenant_id,
                    SubEdition.is_deleted.is_(False),
                )
            )
            if found is None:
                raise NotFoundError("Sub-edition not found", code="SUB_EDITION_NOT_FOUND")

    def _find(
        self, session: Session, ctx: AdminContext, issue_date: date, target: Target
    ) -> Issue | None:
        return session.scalar(
            select(Issue).where(
                Issue.tenant_id == ctx.tenant_id,
                Issue.issue_date == issue_date,
                Issue.target_kind == target.kind,
                Issue.target_id == target.id,
            )
        )

    def _get(self, session: Session, ctx: AdminContext, issue_id: str) -> Issue:
        issue = session.scalar(
            select(Issue).where(Issue.id == issue_id, Issue.tenant_id == ctx.tenant_id)
        )
        if issue is None:
            raise NotFoundError("Issue not found", code="ISSUE_NOT_FOUND")
        return issue

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def upload_issue(
        self,
        ctx: AdminContext,
        issue_date: str | date,
        target: Target,
        source: PdfSource,
    ) -> IssueView:
        """Ingest a PDF as the issue for (tenant, date, target).

        An existing issue for the same key is replaced in place: its pages
        are recreated, and page objects beyond the new page count are
        deleted from storage once the database has been updated.

        Args:
            ctx: Caller context
            issue_date: Issue date as ``YYYY-MM-DD``
            target: Edition or sub-edition the issue belongs to
            source: Uploaded PDF bytes or a PDF URL

        Returns:
            The created or replaced issue with its pages

        Raises:
            ValidationError: On a malformed date, missing target or rejected PDF
            NotFoundError: If the target does not exist for the tenant
            UpstreamError: If fetching, rasterizing or uploading fails
        """
        day = parse_issue_date(issue_date)
        target = self._require_target(target)
        with self.session_factory() as session:
            self._resolve_target(session, ctx, target)

        pdf_bytes = self.fetcher.load(source)
        keys = self._keys(ctx.tenant_id, target, day)
        logger.info(
            f"Ingesting {len(pdf_bytes)} byte PDF for {ctx.tenant_id} "
            f"{target.kind} {target.id} on {day.isoformat()}"
        )

        pdf_url = self.storage.put(keys.pdf_key, pdf_bytes, PDF_CONTENT_TYPE)
        source_page_count = count_pdf_pages(pdf_bytes)

        pngs = self.rasterizer.rasterize(
            pdf_bytes, dpi=self.config.dpi, max_pages=self.config.max_pages
        )
        if not pngs:
            raise RasterizationError("PDF conversion produced no pages.")

        pages = self.uploader.upload_pages(keys, pngs)
        cover_preview_url = self.uploader.upload_cover_preview(keys, pngs[0])

        if source_page_count is not None and source_page_count > len(pages):
            logger.warning(
                f"Issue for {target.kind} {target.id} on {day.isoformat()} truncated to "
                f"{len(pages)} of {source_page_count} pages by the page cap"
            )

        persist_args = (ctx, keys, pdf_url, pages, cover_preview_url, source_page_count)
        try:
            view, orphan_keys = self._persist(*persist_args)
        except IntegrityError:
            logger.warning(
                f"Concurrent ingestion created {keys.prefix} first; replacing it"
            )
            view, orphan_keys = self._persist(*persist_args)

        if orphan_keys:
            failed = self._delete_objects(orphan_keys)
            logger.info(
                f"Cleaned up {len(orphan_keys) - len(failed)} of {len(orphan_keys)} "
                f"orphaned page objects under {keys.page_prefix}"
            )
        return view

    def _persist(
        self,
        ctx: AdminContext,
        keys: IssueKeys,
        pdf_url: str,
        pages: Sequence[UploadedPage],
        cover_preview_url: str | None,
        source_page_count: int | None,
    ) -> tuple[IssueView, list[str]]:
        """Create or replace the issue row and its pages in one transaction.

        Returns:
            The persisted issue and the storage keys left orphaned by a
            replacement with fewer pages
        """
        cover = pages[0]
        orphan_keys: list[str] = []
        with self.session_factory.begin() as session:
            issue = self._find(session, ctx, keys.issue_date, keys.target)
            if issue is None:
                issue = Issue(
                    tenant_id=ctx.tenant_id,
                    issue_date=keys.issue_date,
                    target_kind=keys.target.kind,
                    target_id=keys.target.id,
                )
                session.add(issue)
                action = "Created"
            else:
                for old in issue.pages:
                    if old.page_number <= len(pages):
                        continue
                    orphan_keys.append(keys.page_key(old.page_number))
                    if old.delivery_image_url:
                        orphan_keys.append(keys.delivery_key(old.page_number))
                    if old.preview_image_url:
                        orphan_keys.append(keys.preview_key(old.page_number))
                issue.pages.clear()
                session.flush()
                action = "Replaced"

            issue.pdf_url = pdf_url
            issue.cover_image_url = cover.image_url
            issue.cover_image_url_delivery = cover.delivery_image_url
            issue.cover_preview_url = cover_preview_url
            issue.page_count = len(pages)
            issue.source_page_count = source_page_count
            issue.uploaded_by_user_id = ctx.user_id
            issue.pages.extend(
                Page(
                    page_number=page.page_number,
                    image_url=page.image_url,
                    delivery_image_url=page.delivery_image_url,
                    preview_image_url=page.preview_image_url,
                )
                for page in pages
            )
            session.flush()
            view = IssueView.model_validate(issue)

        logger.info(f"{action} issue {view.id} with {view.page_count} pages")
        return view, orphan_keys

    def _delete_objects(self, keys: Sequence[str]) -> list[str]:
        """Delete objects best-effort; return the keys whose deletion failed."""

        def delete(key: str) -> bool:
            try:
                self.storage.delete(key)
                return True
            except Exception as e:
                logger.warning(f"Failed to delete {key}: {e}")
                return False

        outcomes = indexed_parallel_map(
            list(keys), delete, workers=self.config.upload_concurrency
        )
        return [key for key, ok in zip(keys, outcomes) if not ok]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_issue(
        self, ctx: AdminContext, issue_date: str | date, target: Target
    ) -> IssueView:
        """Fetch the issue for (tenant, date, target).

        Raises:
            NotFoundError: If there is no such issue
        """
        day = parse_issue_date(issue_date)
        target = self._require_target(target)
        with self.session_factory() as session:
            issue = self._find(session, ctx, day, target)
            if issue is None:
                raise NotFoundError("Issue not found", code="ISSUE_NOT_FOUND")
            return IssueView.model_validate(issue)

    def get_issue(self, ctx: AdminContext, issue_id: str) -> IssueView:
        """Fetch an issue by id within the caller's tenant."""
        with self.session_factory() as session:
            return IssueView.model_validate(self._get(session, ctx, issue_id))

    def list_issues(self, ctx: AdminContext, issue_date: str | date) -> list[IssueView]:
        """List the tenant's issues for one date, newest first."""
        day = parse_issue_date(issue_date)
        with self.session_factory() as session:
            issues = session.scalars(
                select(Issue)
                .where(Issue.tenant_id == ctx.tenant_id, Issue.issue_date == day)
                .order_by(Issue.created_at.desc())
            )
            return [IssueView.model_validate(issue) for issue in issues]

    def check_exists(
        self, ctx: AdminContext, issue_date: str | date, target: Target
    ) -> ExistenceCheck:
        """Report whether an upload for this key would replace an issue."""
        day = parse_issue_date(issue_date)
        target = self._require_target(target)
        with self.session_factory() as session:
            issue = self._find(session, ctx, day, target)
            if issue is None:
                return ExistenceCheck(
                    exists=False, message="No existing issue found. Safe to upload."
                )
            view = IssueView.model_validate(issue)

        return ExistenceCheck(
            exists=True,
            message=(
                f"Issue already exists for {day.isoformat()} "
                f"with {view.page_count} pages"
            ),
            issue=view,
            action=ExistenceAction(),
        )

    # ------------------------------------------------------------------
    # Deletion and maintenance
    # ------------------------------------------------------------------

    def delete_issue(self, ctx: AdminContext, issue_id: str) -> DeletionResult:
        """Delete an issue's storage objects, then the issue and its children.

        Object deletions are best-effort; failures are logged and reported
        in the result but do not stop the row from being removed.
        """
        with self.session_factory() as session:
            issue = self._get(session, ctx, issue_id)
            keys = self._issue_keys(issue)
            object_keys = [keys.pdf_key]
            for page in issue.pages:
                object_keys.append(keys.page_key(page.page_number))
                if page.delivery_image_url:
                    object_keys.append(keys.delivery_key(page.page_number))
                if page.preview_image_url:
                    object_keys.append(keys.preview_key(page.page_number))
            if issue.cover_preview_url:
                object_keys.append(keys.cover_preview_key)

        failed = self._delete_objects(object_keys)

        with self.session_factory.begin() as session:
            session.delete(self._get(session, ctx, issue_id))

        logger.info(
            f"Deleted issue {issue_id} ({len(object_keys)} objects, {len(failed)} failed)"
        )
        return DeletionResult(
            issue_id=issue_id, attempted_keys=object_keys, failed_keys=failed
        )

    def regenerate_derivatives(self, ctx: AdminContext, issue_id: str) -> IssueView:
        """Re-encode every page's derivatives from the stored masters.

        Raises:
            ValidationError: If derivative generation is disabled
            StorageError: If a page master cannot be read back
        """
        if self.uploader.encoder is None:
            raise ValidationError(
                "Derivative generation is disabled", code="DERIVATIVES_DISABLED"
            )

        with self.session_factory() as session:
            issue = self._get(session, ctx, issue_id)
            keys = self._issue_keys(issue)
            page_numbers = [page.page_number for page in issue.pages]

        rebuilt = self.uploader.rebuild_derivatives(keys, page_numbers)
        cover_preview_url = None
        if page_numbers:
            cover_png = self.storage.get(keys.page_key(page_numbers[0]))
            cover_preview_url = self.uploader.upload_cover_preview(keys, cover_png)

        by_number = {page.page_number: page for page in rebuilt}
        with self.session_factory.begin() as session:
            issue = self._get(session, ctx, issue_id)
            for page in issue.pages:
                fresh = by_number.get(page.page_number)
                if fresh is None:
                    continue
                page.delivery_image_url = fresh.delivery_image_url
                page.preview_image_url = fresh.preview_image_url
            if issue.pages:
                issue.cover_image_url_delivery = issue.pages[0].delivery_image_url
            issue.cover_preview_url = cover_preview_url
            session.flush()
            view = IssueView.model_validate(issue)

        logger.info(f"Regenerated derivatives for {len(rebuilt)} pages of issue {issue_id}")
        return view

