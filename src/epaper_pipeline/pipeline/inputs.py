"""Parsing of caller-supplied issue identity."""

import re
from datetime import date, datetime

from epaper_pipeline.exceptions import ValidationError
from schemas.target import EditionTarget, SubEditionTarget, Target

ISSUE_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_issue_date(value: str | date) -> date:
    """Parse a strict ``YYYY-MM-DD`` issue date.

    Raises:
        ValidationError: If the value is malformed or not a real calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISSUE_DATE_PATTERN.match(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD", code="INVALID_DATE")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value}", code="INVALID_DATE") from e


def target_from_ids(
    edition_id: str | None = None, sub_edition_id: str | None = None
) -> Target:
    """Build a target from a pair of optional identifiers.

    Raises:
        ValidationError: Unless exactly one identifier is given
    """
    if edition_id and sub_edition_id:
        raise ValidationError(
            "Specify either edition or sub-edition, not both", code="INVALID_TARGET"
        )
    if edition_id:
        return EditionTarget(edition_id)
    if sub_edition_id:
        return SubEditionTarget(sub_edition_id)
    raise ValidationError(
        "Either an edition or a sub-edition is required", code="INVALID_TARGET"
    )
