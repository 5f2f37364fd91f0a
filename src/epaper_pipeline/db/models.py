"""SQLAlchemy models for issues, pages, clips and the read-only catalog."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from schemas.clip import ClipSource, ClipState


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class Edition(Base):
    """State-level publication edition (catalog, read-only here)."""

    __tablename__ = "editions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class SubEdition(Base):
    """District-level sub-edition of an edition (catalog, read-only here)."""

    __tablename__ = "sub_editions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    edition_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("editions.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Issue(Base):
    """One tenant's PDF issue for one date and one catalog target."""

    __tablename__ = "epaper_pdf_issues"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "issue_date",
            "target_kind",
            "target_id",
            name="uq_issue_tenant_date_target",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    # "edition" or "sub-edition"
    target_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False)
    pdf_url: Mapped[str] = mapped_column(Text, nullable=False)
    cover_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_image_url_delivery: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_preview_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    uploaded_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    pages: Mapped[list["Page"]] = relationship(
        back_populates="issue",
        cascade="all, delete-orphan",
        order_by="Page.page_number",
    )
    clips: Mapped[list["Clip"]] = relationship(
        back_populates="issue", cascade="all, delete-orphan"
    )


class Page(Base):
    """A rasterized page of an issue."""

    __tablename__ = "epaper_pdf_pages"
    __table_args__ = (
        UniqueConstraint("issue_id", "page_number", name="uq_page_issue_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    issue_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("epaper_pdf_issues.id", ondelete="CASCADE"), nullable=False
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    preview_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    issue: Mapped[Issue] = relationship(back_populates="pages")


class Clip(Base):
    """Rectangular article region on one page of an issue, in PDF points."""

    __tablename__ = "epaper_article_clips"
    __table_args__ = (
        Index("ix_clip_issue_page", "issue_id", "page_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    issue_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("epaper_pdf_issues.id", ondelete="CASCADE"), nullable=False
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    x: Mapped[float] = mapped_column(Float, nullable=False)
    y: Mapped[float] = mapped_column(Float, nullable=False)
    width: Mapped[float] = mapped_column(Float, nullable=False)
    height: Mapped[float] = mapped_column(Float, nullable=False)
    column: Mapped[str | None] = mapped_column(String(64), nullable=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    article_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source: Mapped[ClipSource] = mapped_column(
        Enum(ClipSource, native_enum=False, values_callable=_enum_values, length=16),
        nullable=False,
        default=ClipSource.MANUAL,
    )
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    state: Mapped[ClipState] = mapped_column(
        Enum(ClipState, native_enum=False, values_callable=_enum_values, length=16),
        nullable=False,
        default=ClipState.ACTIVE,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deleted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deletion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    issue: Mapped[Issue] = relationship(back_populates="clips")
    assets: Mapped[list["ClipAsset"]] = relationship(
        back_populates="clip", cascade="all, delete-orphan"
    )


class ClipAsset(Base):
    """Cached rendering of a clip's current geometry."""

    __tablename__ = "epaper_clip_assets"
    __table_args__ = (UniqueConstraint("clip_id", "type", name="uq_clip_asset_type"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    clip_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("epaper_article_clips.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    clip: Mapped[Clip] = relationship(back_populates="assets")
