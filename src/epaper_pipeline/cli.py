"""Command-line interface for epaper-pipeline."""

import argparse
import logging
import os
import sys
from pathlib import Path

from epaper_pipeline.clips import ClipManager
from epaper_pipeline.config import PipelineConfig, StorageConfig
from epaper_pipeline.db import create_db_engine, create_session_factory, init_db
from epaper_pipeline.db.session import DEFAULT_DATABASE_URL
from epaper_pipeline.exceptions import EpaperError
from epaper_pipeline.intake import PdfFetcher
from epaper_pipeline.pipeline import IssueIngestionOrchestrator, target_from_ids
from epaper_pipeline.storage import create_object_storage
from epaper_pipeline.transformers import create_rasterizer
from schemas import AdminContext, PdfUpload, PdfUrl


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def _context(args: argparse.Namespace) -> AdminContext | None:
    if not args.tenant:
        return None
    return AdminContext(tenant_id=args.tenant, user_id=args.user)


def _build_orchestrator(
    args: argparse.Namespace, fetcher: PdfFetcher, config: PipelineConfig
) -> IssueIngestionOrchestrator:
    storage = create_object_storage(StorageConfig.from_env())
    return IssueIngestionOrchestrator(
        session_factory=create_session_factory(args.database_url),
        storage=storage,
        rasterizer=create_rasterizer(config),
        fetcher=fetcher,
        config=config,
    )


def init_database(args: argparse.Namespace) -> int:
    """Execute the init-db command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        engine = create_db_engine(args.database_url)
        init_db(engine)
        engine.dispose()
        return 0

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1


def upload_issue(args: argparse.Namespace) -> int:
    """Execute the upload-issue command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    ctx = _context(args)
    if ctx is None:
        logger.error("A tenant is required (--tenant or EPAPER_TENANT_ID)")
        return 1

    if (args.pdf is None) == (args.url is None):
        logger.error("Specify exactly one of --pdf or --url")
        return 1

    if args.pdf is not None:
        pdf_path = args.pdf.resolve()
        if not pdf_path.exists():
            logger.error(f"PDF not found: {pdf_path}")
            return 1
        source = PdfUpload(data=pdf_path.read_bytes(), filename=pdf_path.name)
    else:
        source = PdfUrl(args.url)

    try:
        target = target_from_ids(args.edition, args.sub_edition)
        config = PipelineConfig.from_env()
        with PdfFetcher(
            max_bytes=config.pdf_max_bytes, timeout=config.fetch_timeout
        ) as fetcher:
            orchestrator = _build_orchestrator(args, fetcher, config)
            issue = orchestrator.upload_issue(ctx, args.date, target, source)

        logger.info(f"Uploaded issue: {issue.id}")
        logger.info(f"  Date: {issue.issue_date.isoformat()}")
        logger.info(f"  Target: {issue.target_kind} {issue.target_id}")
        logger.info(f"  Pages: {issue.page_count}")
        logger.info(f"  PDF: {issue.pdf_url}")
        logger.info(f"  Cover: {issue.cover_image_url}")
        if issue.is_truncated:
            logger.warning(
                f"  Truncated: {issue.page_count} of {issue.source_page_count} pages"
            )

        return 0

    except EpaperError as e:
        logger.error(f"Failed to upload issue ({e.kind}): {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Failed to upload issue: {e}")
        return 1


def check_issue(args: argparse.Namespace) -> int:
    """Execute the check-issue command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    ctx = _context(args)
    if ctx is None:
        logger.error("A tenant is required (--tenant or EPAPER_TENANT_ID)")
        return 1

    try:
        target = target_from_ids(args.edition, args.sub_edition)
        config = PipelineConfig.from_env()
        with PdfFetcher() as fetcher:
            orchestrator = _build_orchestrator(args, fetcher, config)
            check = orchestrator.check_exists(ctx, args.date, target)

        logger.info(check.message)
        if check.issue is not None:
            logger.info(f"  Issue: {check.issue.id}")
            logger.info(f"  Pages: {check.issue.page_count}")
            logger.info(f"  Suggestion: {check.action.suggestion}")

        return 0

    except EpaperError as e:
        logger.error(f"Failed to check issue ({e.kind}): {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Failed to check issue: {e}")
        return 1


def delete_issue(args: argparse.Namespace) -> int:
    """Execute the delete-issue command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    ctx = _context(args)
    if ctx is None:
        logger.error("A tenant is required (--tenant or EPAPER_TENANT_ID)")
        return 1

    try:
        config = PipelineConfig.from_env()
        with PdfFetcher() as fetcher:
            orchestrator = _build_orchestrator(args, fetcher, config)
            result = orchestrator.delete_issue(ctx, args.issue_id)

        logger.info(f"Deleted issue: {result.issue_id}")
        logger.info(f"  Objects: {len(result.attempted_keys)}")
        if result.failed_keys:
            logger.warning(f"  Failed deletions: {len(result.failed_keys)}")
            for key in result.failed_keys:
                logger.warning(f"    - {key}")

        return 0

    except EpaperError as e:
        logger.error(f"Failed to delete issue ({e.kind}): {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Failed to delete issue: {e}")
        return 1


def list_clips(args: argparse.Namespace) -> int:
    """Execute the list-clips command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    ctx = _context(args)
    if ctx is None:
        logger.error("A tenant is required (--tenant or EPAPER_TENANT_ID)")
        return 1

    try:
        manager = ClipManager(create_session_factory(args.database_url))
        clips = manager.list_clips(
            ctx,
            args.issue_id,
            include_inactive=args.include_inactive,
            page_number=args.page,
        )

        logger.info(f"Clips for issue {args.issue_id}: {len(clips)}")
        for clip in clips:
            state = "" if clip.is_active else " (inactive)"
            logger.info(
                f"  p{clip.page_number} [{clip.x:g}, {clip.y:g}, {clip.width:g}x{clip.height:g}] "
                f"{clip.source.value} {clip.column or '-'} {clip.id}{state}"
            )

        return 0

    except EpaperError as e:
        logger.error(f"Failed to list clips ({e.kind}): {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Failed to list clips: {e}")
        return 1


def detect_clips(args: argparse.Namespace) -> int:
    """Execute the detect-clips command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    ctx = _context(args)
    if ctx is None:
        logger.error("A tenant is required (--tenant or EPAPER_TENANT_ID)")
        return 1

    try:
        manager = ClipManager(create_session_factory(args.database_url))
        clips = manager.detect_clips(ctx, args.issue_id)

        logger.info(f"Detected clips for issue {args.issue_id}: {len(clips)}")
        return 0

    except EpaperError as e:
        logger.error(f"Failed to detect clips ({e.kind}): {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Failed to detect clips: {e}")
        return 1


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--date",
        required=True,
        help="Issue date (ISO format: YYYY-MM-DD)",
    )
    parser.add_argument(
        "--edition",
        default=None,
        help="Edition id the issue belongs to",
    )
    parser.add_argument(
        "--sub-edition",
        default=None,
        help="Sub-edition id the issue belongs to",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog="epaper-pipeline",
        description="Ingest ePaper issue PDFs and manage article clips",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--database-url",
        default=os.environ.get("EPAPER_DATABASE_URL", DEFAULT_DATABASE_URL),
        help=f"SQLAlchemy database URL (default: $EPAPER_DATABASE_URL or {DEFAULT_DATABASE_URL})",
    )
    parser.add_argument(
        "--tenant",
        default=os.environ.get("EPAPER_TENANT_ID"),
        help="Tenant to act on (default: $EPAPER_TENANT_ID)",
    )
    parser.add_argument(
        "--user",
        default=os.environ.get("EPAPER_USER_ID"),
        help="Acting user id recorded on uploads and clips",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    init_parser = subparsers.add_parser(
        "init-db",
        help="Create the database tables",
        description="Create the issue, page, clip and catalog tables if they do not exist.",
    )
    init_parser.set_defaults(func=init_database)

    upload_parser = subparsers.add_parser(
        "upload-issue",
        help="Ingest a PDF as the issue for a date and target",
        description="Rasterize an issue PDF, upload its pages and record the issue, replacing any existing issue for the same date and target.",
    )
    _add_target_arguments(upload_parser)
    upload_parser.add_argument(
        "--pdf",
        type=Path,
        default=None,
        help="Path to a local PDF file",
    )
    upload_parser.add_argument(
        "--url",
        default=None,
        help="Public http(s) URL of the PDF",
    )
    upload_parser.set_defaults(func=upload_issue)

    check_parser = subparsers.add_parser(
        "check-issue",
        help="Check whether an issue exists for a date and target",
        description="Report whether uploading for a date and target would replace an existing issue.",
    )
    _add_target_arguments(check_parser)
    check_parser.set_defaults(func=check_issue)

    delete_parser = subparsers.add_parser(
        "delete-issue",
        help="Delete an issue and its stored objects",
        description="Delete an issue's PDF, page images and derivatives from storage, then remove the issue record.",
    )
    delete_parser.add_argument(
        "--issue-id",
        required=True,
        help="Issue to delete",
    )
    delete_parser.set_defaults(func=delete_issue)

    list_parser = subparsers.add_parser(
        "list-clips",
        help="List the article clips of an issue",
        description="List clips ordered by page, top to bottom, then left to right.",
    )
    list_parser.add_argument(
        "--issue-id",
        required=True,
        help="Issue whose clips to list",
    )
    list_parser.add_argument(
        "--page",
        type=int,
        default=None,
        help="Only list clips on this page",
    )
    list_parser.add_argument(
        "--include-inactive",
        action="store_true",
        help="Include soft-deleted clips",
    )
    list_parser.set_defaults(func=list_clips)

    detect_parser = subparsers.add_parser(
        "detect-clips",
        help="Generate placeholder auto clips for an issue",
        description="Deactivate the issue's previous auto clips and create a two-column placeholder layout per page.",
    )
    detect_parser.add_argument(
        "--issue-id",
        required=True,
        help="Issue to detect clips for",
    )
    detect_parser.set_defaults(func=detect_clips)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
