"""Article clip management: validated rectangles with a soft-delete lifecycle.

Clips move ACTIVE -> INACTIVE only. Any change to a clip's geometry drops
its cached ClipAssets in the same transaction.
"""

import logging
from collections.abc import Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from epaper_pipeline.db.models import Clip, Issue, utcnow
from epaper_pipeline.exceptions import NotFoundError, ValidationError
from schemas.clip import (
    ClipCandidate,
    ClipMetadata,
    ClipSource,
    ClipState,
    ClipUpdate,
    ClipView,
    PageSize,
)
from schemas.context import AdminContext

from .geometry import placeholder_layout, validate_clip_geometry, validate_page_number

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
GEOMETRY_FIELDS = ("page_number", "x", "y", "width", "height")
METADATA_FIELDS = ("column", "title", "article_ref")


class ClipManager:
    """Create, edit, soft-delete and list article clips.

    Every lookup is scoped to the caller's tenant; a clip or issue owned by
    another tenant is reported as not found.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def _get_issue(self, session: Session, ctx: AdminContext, issue_id: str) -> Issue:
        issue = session.scalar(
            select(Issue).where(Issue.id == issue_id, Issue.tenant_id == ctx.tenant_id)
        )
        if issue is None:
            raise NotFoundError("Issue not found", code="ISSUE_NOT_FOUND")
        return issue

    def _get_clip(self, session: Session, ctx: AdminContext, clip_id: str) -> Clip:
        clip = session.scalar(
            select(Clip)
            .join(Issue, Clip.issue_id == Issue.id)
            .where(Clip.id == clip_id, Issue.tenant_id == ctx.tenant_id)
        )
        if clip is None:
            raise NotFoundError("Clip not found", code="CLIP_NOT_FOUND")
        return clip

    def _check(
        self,
        issue: Issue,
        page_number: int,
        x: float,
        y: float,
        width: float,
        height: float,
        page_size: PageSize | None,
    ) -> str | None:
        return validate_page_number(page_number, issue.page_count) or validate_clip_geometry(
            x, y, width, height, page_size
        )

    def create_clip(
        self,
        ctx: AdminContext,
        issue_id: str,
        page_number: int,
        x: float,
        y: float,
        width: float,
        height: float,
        metadata: ClipMetadata | None = None,
        page_size: PageSize | None = None,
    ) -> ClipView:
        """Create a manual clip.

        Args:
            ctx: Caller context
            issue_id: Issue the clip belongs to
            page_number: 1-based page number
            x: Left edge in PDF points
            y: Bottom edge in PDF points
            width: Width in PDF points
            height: Height in PDF points
            metadata: Optional column, title and article reference
            page_size: Declared page size; the default ceiling applies when None

        Returns:
            The persisted clip

        Raises:
            NotFoundError: If the issue does not exist for the tenant
            ValidationError: If the rectangle or page number is out of bounds
        """
        metadata = metadata or ClipMetadata()
        with self.session_factory.begin() as session:
            issue = self._get_issue(session, ctx, issue_id)
            error = self._check(issue, page_number, x, y, width, height, page_size)
            if error:
                raise ValidationError(error, code="INVALID_CLIP")

            clip = Clip(
                issue_id=issue.id,
                page_number=page_number,
                x=x,
                y=y,
                width=width,
                height=height,
                column=metadata.column,
                title=metadata.title,
                article_ref=metadata.article_ref,
                source=ClipSource.MANUAL,
                state=ClipState.ACTIVE,
                created_by=ctx.actor,
                updated_by=ctx.actor,
            )
            session.add(clip)
            session.flush()
            logger.debug(f"Created clip {clip.id} on issue {issue.id} page {page_number}")
            return ClipView.model_validate(clip)

    def update_clip(
        self,
        ctx: AdminContext,
        clip_id: str,
        changes: ClipUpdate,
        page_size: PageSize | None = None,
    ) -> ClipView:
        """Apply a partial update to an active clip.

        Only fields explicitly set on ``changes`` are applied. When any
        geometry field is supplied the merged rectangle is re-validated; when
        any geometry value actually changes, the clip's cached assets are
        deleted in the same transaction.

        Raises:
            NotFoundError: If the clip does not exist for the tenant
            ValidationError: If the clip is inactive or the new geometry is invalid
        """
        supplied = changes.model_fields_set
        with self.session_factory.begin() as session:
            clip = self._get_clip(session, ctx, clip_id)
            if clip.state is not ClipState.ACTIVE:
                raise ValidationError("Inactive clips cannot be edited", code="CLIP_INACTIVE")

            merged = {}
            for field in GEOMETRY_FIELDS:
                value = getattr(changes, field)
                if field not in supplied or value is None:
                    value = getattr(clip, field)
                merged[field] = value

            geometry_supplied = any(field in supplied for field in GEOMETRY_FIELDS)
            if geometry_supplied:
                error = self._check(clip.issue, page_size=page_size, **merged)
                if error:
                    raise ValidationError(error, code="INVALID_CLIP")

            geometry_changed = any(
                merged[field] != getattr(clip, field) for field in GEOMETRY_FIELDS
            )
            for field, value in merged.items():
                setattr(clip, field, value)
            for field in METADATA_FIELDS:
                if field in supplied:
                    setattr(clip, field, getattr(changes, field))
            clip.updated_by = ctx.actor

            if geometry_changed and clip.assets:
                logger.debug(f"Invalidating {len(clip.assets)} cached assets of clip {clip.id}")
                clip.assets.clear()

            session.flush()
            return ClipView.model_validate(clip)

    def delete_clip(
        self, ctx: AdminContext, clip_id: str, reason: str | None = None
    ) -> ClipView:
        """Soft-delete a clip, recording who removed it, when and why.

        Deleting a clip that is already inactive leaves it unchanged.
        """
        with self.session_factory.begin() as session:
            clip = self._get_clip(session, ctx, clip_id)
            if clip.state is ClipState.ACTIVE:
                clip.state = ClipState.INACTIVE
                clip.deleted_at = utcnow()
                clip.deleted_by = ctx.actor
                clip.deletion_reason = reason
                clip.updated_by = ctx.actor
                session.flush()
                logger.debug(f"Soft-deleted clip {clip.id}")
            return ClipView.model_validate(clip)

    def bulk_create_clips(
        self,
        ctx: AdminContext,
        issue_id: str,
        candidates: Sequence[ClipCandidate],
        source: ClipSource = ClipSource.MANUAL,
        page_size: PageSize | None = None,
    ) -> list[ClipView]:
        """Validate every candidate, then persist them all in one batch.

        Raises:
            ValidationError: If the batch is empty or any candidate is invalid;
                             the message names the first failing index
        """
        if not candidates:
            raise ValidationError(
                "clips array is required and must be non-empty", code="INVALID_CLIP"
            )
        source = ClipSource(source)

        with self.session_factory.begin() as session:
            issue = self._get_issue(session, ctx, issue_id)
            for index, candidate in enumerate(candidates):
                error = self._check(
                    issue,
                    candidate.page_number,
                    candidate.x,
                    candidate.y,
                    candidate.width,
                    candidate.height,
                    page_size,
                )
                if error:
                    raise ValidationError(f"Clip {index}: {error}", code="INVALID_CLIP")

            clips = [
                self._new_clip(issue, candidate, source, ctx.actor) for candidate in candidates
            ]
            session.add_all(clips)
            session.flush()
            logger.info(f"Created {len(clips)} {source.value} clips on issue {issue.id}")
            return [ClipView.model_validate(clip) for clip in clips]

    def detect_clips(self, ctx: AdminContext, issue_id: str) -> list[ClipView]:
        """Replace the issue's automatic clips with a fresh placeholder layout.

        Previously active auto clips are deactivated; manual and imported
        clips are left untouched. Each page gets a left and a right column.
        """
        with self.session_factory.begin() as session:
            issue = self._get_issue(session, ctx, issue_id)
            now = utcnow()
            result = session.execute(
                update(Clip)
                .where(
                    Clip.issue_id == issue.id,
                    Clip.source == ClipSource.AUTO,
                    Clip.state == ClipState.ACTIVE,
                )
                .values(
                    state=ClipState.INACTIVE,
                    deleted_at=now,
                    deleted_by=SYSTEM_ACTOR,
                    deletion_reason="superseded by detection",
                    updated_by=SYSTEM_ACTOR,
                    updated_at=now,
                )
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount:
                logger.info(
                    f"Deactivated {result.rowcount} previous auto clips for issue {issue.id}"
                )

            clips = [
                self._new_clip(issue, candidate, ClipSource.AUTO, SYSTEM_ACTOR)
                for candidate in placeholder_layout(issue.page_count)
            ]
            session.add_all(clips)
            session.flush()
            logger.info(f"Detected {len(clips)} placeholder clips for issue {issue.id}")
            return [ClipView.model_validate(clip) for clip in clips]

    def list_clips(
        self,
        ctx: AdminContext,
        issue_id: str,
        include_inactive: bool = False,
        page_number: int | None = None,
    ) -> list[ClipView]:
        """List an issue's clips by page, then top-to-bottom, then left-to-right.

        PDF space puts the origin at the bottom-left, so top-to-bottom is
        descending ``y``.
        """
        with self.session_factory() as session:
            issue = self._get_issue(session, ctx, issue_id)
            query = select(Clip).where(Clip.issue_id == issue.id)
            if not include_inactive:
                query = query.where(Clip.state == ClipState.ACTIVE)
            if page_number is not None:
                query = query.where(Clip.page_number == page_number)
            query = query.order_by(Clip.page_number.asc(), Clip.y.desc(), Clip.x.asc())
            return [ClipView.model_validate(clip) for clip in session.scalars(query)]

    def get_clip(self, ctx: AdminContext, clip_id: str) -> ClipView:
        """Fetch a single clip, active or not."""
        with self.session_factory() as session:
            return ClipView.model_validate(self._get_clip(session, ctx, clip_id))

    def _new_clip(
        self, issue: Issue, candidate: ClipCandidate, source: ClipSource, actor: str
    ) -> Clip:
        return Clip(
            issue_id=issue.id,
            page_number=candidate.page_number,
            x=candidate.x,
            y=candidate.y,
            width=candidate.width,
            height=candidate.height,
            column=candidate.column,
            title=candidate.title,
            article_ref=candidate.article_ref,
            source=source,
            confidence=candidate.confidence,
            state=ClipState.ACTIVE,
            created_by=actor,
            updated_by=actor,
        )
