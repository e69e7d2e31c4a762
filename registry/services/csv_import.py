"""
CSV import stages shared by every wizard: Parse -> Propose Mapping -> Validate.

The parser is deliberately naive: lines are split on commas with no quoting
or escaping, so a value containing a comma misaligns its row and the row is
dropped by the field-count check.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

logger = logging.getLogger(__name__)

DELIMITER = ","

_LINE_BREAK = re.compile(r"\r?\n")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CSVImportError(Exception):
    """Base class for every failure an import run can report to the user."""


class CSVParseError(CSVImportError):
    """The uploaded text could not be read as a header row plus data rows."""


class NoRowsError(CSVImportError):
    """The file has a header row but no usable data rows."""


class MappingError(CSVImportError):
    """The column mapping is missing a required field or reuses a field."""


class NothingToImportError(CSVImportError):
    """Every candidate record already exists (or none could be resolved)."""


class SubmitError(CSVImportError):
    """The store rejected the batch write; nothing from the run was kept."""


# ---------------------------------------------------------------------------
# Stage 1: parse
# ---------------------------------------------------------------------------


@dataclass
class ParsedCSV:
    """Headers plus the rows whose field count matched the header count."""

    headers: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)
    dropped_count: int = 0

    @property
    def row_count(self) -> int:
        return len(self.rows)


def parse_csv_text(file_content: str) -> ParsedCSV:
    """
    Split raw text into headers and rows.

    Blank lines are discarded. Rows with a different number of fields than
    the header line are dropped and only counted.

    Raises:
        CSVParseError: If there is no header line at all, or two columns
            share a header (rows are keyed by header).
    """
    lines = [line for line in _LINE_BREAK.split(file_content) if line.strip()]
    if not lines:
        raise CSVParseError(
            "Failed to parse CSV file. Please check the format and try again."
        )

    headers = [header.strip() for header in lines[0].split(DELIMITER)]
    if not any(headers):
        raise CSVParseError("The CSV header row is empty.")
    repeated = [header for header, count in Counter(headers).items() if count > 1]
    if repeated:
        raise CSVParseError(
            "Repeated column header(s): " + ", ".join(repr(h) for h in repeated)
        )

    parsed = ParsedCSV(headers=headers)
    for line in lines[1:]:
        values = [value.strip() for value in line.split(DELIMITER)]
        if len(values) != len(headers):
            parsed.dropped_count += 1
            continue
        parsed.rows.append(dict(zip(headers, values)))

    logger.debug(
        "Parsed CSV: %d headers, %d rows kept, %d rows dropped",
        len(headers),
        parsed.row_count,
        parsed.dropped_count,
    )
    return parsed


def require_rows(parsed: ParsedCSV) -> ParsedCSV:
    """Raise NoRowsError when the parse produced nothing to import."""
    if not parsed.rows:
        raise NoRowsError("The CSV file contains no data rows.")
    return parsed


# ---------------------------------------------------------------------------
# Stage 2: propose a mapping
# ---------------------------------------------------------------------------


def propose_mapping(
    headers: list[str],
    keyword_table: list[tuple[str, tuple[str, ...]]],
    exact_table: Optional[dict[str, str]] = None,
) -> dict[str, Optional[str]]:
    """
    Suggest a field tag for each header.

    ``keyword_table`` is ordered; the first tag with a keyword contained in the
    lower-cased header wins. ``exact_table`` maps whole lower-cased headers to
    a tag and is checked alongside the keyword of the same tag. Headers that
    match nothing map to ``None`` (ignored), and so does a header whose tag
    was already claimed by an earlier header.
    """
    exact_table = exact_table or {}
    mapping: dict[str, Optional[str]] = {}
    claimed: set[str] = set()
    for header in headers:
        lowered = header.lower()
        proposed = None
        for tag, keywords in keyword_table:
            if any(keyword in lowered for keyword in keywords) or (
                exact_table.get(lowered) == tag
            ):
                proposed = tag
                break
        if proposed in claimed:
            proposed = None
        if proposed:
            claimed.add(proposed)
        mapping[header] = proposed
    return mapping


# ---------------------------------------------------------------------------
# Stage 3: validate the mapping
# ---------------------------------------------------------------------------


def validate_mapping(
    mapping: dict[str, Optional[str]],
    allowed_fields: list[str],
    required_fields: list[str],
    field_labels: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """
    Check a header -> tag mapping and return it without ignored headers.

    Raises:
        MappingError: If a tag is unknown, a required tag is missing, or a
            tag is claimed by more than one header.
    """
    field_labels = field_labels or {}
    assigned = {header: tag for header, tag in mapping.items() if tag}

    unknown = sorted({tag for tag in assigned.values() if tag not in allowed_fields})
    if unknown:
        raise MappingError(f"Unknown field(s) in mapping: {', '.join(unknown)}")

    for required in required_fields:
        if required not in assigned.values():
            label = field_labels.get(required, required)
            raise MappingError(f"{label} field must be mapped")

    counts = Counter(assigned.values())
    if any(count > 1 for count in counts.values()):
        raise MappingError("Each field can only be mapped once")

    return assigned


# ---------------------------------------------------------------------------
# Field coercion helpers (never raise)
# ---------------------------------------------------------------------------

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d-%m-%Y",
    "%m/%d/%Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
)


def parse_optional_date(value: Optional[str]) -> Optional[date]:
    """Parse a date permissively; anything unreadable resolves to None."""
    if not value or not value.strip():
        return None
    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(cleaned).date()
    except ValueError:
        return None


def parse_decimal_or_zero(value: Optional[str]) -> Decimal:
    """Parse a number, falling back to zero for blank or unreadable text."""
    if not value:
        return Decimal("0")
    try:
        number = Decimal(value.strip())
    except InvalidOperation:
        return Decimal("0")
    if not number.is_finite():
        return Decimal("0")
    return number


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportOutcome:
    """Counts reported once per successful run."""

    inserted_count: int
    duplicate_count: int
