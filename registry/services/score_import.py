"""
Exam score CSV import for a single exam.

Rows name a student by admission number. Only active students are matched;
rows that cannot be matched are skipped and counted. Existing scores for the
same (student, exam) are overwritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from django.db import DatabaseError, transaction

from registry.models import Exam, ImportRecord
from registry.services.csv_import import (
    NothingToImportError,
    SubmitError,
    parse_csv_text,
    parse_decimal_or_zero,
    propose_mapping,
    require_rows,
    validate_mapping,
)
from registry.services.repositories import DjangoScoreRepository, ScoreRepository

logger = logging.getLogger(__name__)


SCORE_FIELDS = [
    "student_id",
    "score",
    "did_not_sit",
]

REQUIRED_FIELDS = [
    "student_id",
    "score",
]

FIELD_LABELS: dict[str, str] = {
    "student_id": "Student (admission number)",
    "score": "Score",
    "did_not_sit": "Did Not Sit",
}

KEYWORD_TABLE: list[tuple[str, tuple[str, ...]]] = [
    ("student_id", ("admission", "student")),
    ("score", ("score", "mark", "grade")),
    ("did_not_sit", ("absent", "not_sit", "dns", "did_not_sit")),
]

EXACT_HEADERS: dict[str, str] = {
    "id": "student_id",
}

SAMPLE_CSV = """\
admission_number,student_name,score,did_not_sit
ST001,John Doe,85,false
ST002,Jane Smith,92,false
ST003,Sam Johnson,76,false
ST004,Emma Williams,0,true
ST005,Alex Brown,88,false
"""

# StudentExamScore.score is DecimalField(max_digits=6, decimal_places=2).
SCORE_PLACES = Decimal("0.01")
SCORE_LIMIT = Decimal("10000")


def propose_score_mapping(headers: list[str]) -> dict[str, Optional[str]]:
    return propose_mapping(headers, KEYWORD_TABLE, EXACT_HEADERS)


def validate_score_mapping(mapping: dict[str, Optional[str]]) -> dict[str, str]:
    return validate_mapping(mapping, SCORE_FIELDS, REQUIRED_FIELDS, FIELD_LABELS)


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


@dataclass
class ScoreRecord:
    admission_number: str = ""
    score: Decimal = Decimal("0")
    did_not_sit: bool = False
    student_pk: Optional[int] = None
    raw_data: dict[str, Any] = field(default_factory=dict)


def _parse_score(value: str) -> Decimal:
    """Scores the column cannot hold are treated as unreadable."""
    try:
        score = parse_decimal_or_zero(value).quantize(SCORE_PLACES)
    except InvalidOperation:
        return Decimal("0")
    if abs(score) >= SCORE_LIMIT:
        return Decimal("0")
    return score


def _parse_flag(value: str) -> bool:
    return value.strip().lower() == "true" or value.strip() == "1"


def transform_score_rows(
    rows: list[dict[str, str]],
    mapping: dict[str, str],
) -> list[ScoreRecord]:
    """Unreadable or out-of-range scores become 0; only "true" or "1" marks a did-not-sit."""
    records: list[ScoreRecord] = []
    for raw_row in rows:
        record = ScoreRecord(raw_data=dict(raw_row))
        for header, tag in mapping.items():
            value = raw_row.get(header, "")
            if tag == "student_id":
                record.admission_number = value
            elif tag == "score":
                record.score = _parse_score(value)
            elif tag == "did_not_sit":
                record.did_not_sit = _parse_flag(value)
        records.append(record)
    return records


def resolve_students(
    records: list[ScoreRecord],
    repository: ScoreRepository,
) -> tuple[list[ScoreRecord], list[ScoreRecord]]:
    """
    Attach student primary keys; return (matched, unmatched).

    When the same student appears more than once, the last row wins.
    """
    lookup = repository.active_students_by_admission_number(
        r.admission_number for r in records
    )
    by_student: dict[int, ScoreRecord] = {}
    unmatched: list[ScoreRecord] = []
    for record in records:
        pk = lookup.get(record.admission_number)
        if pk is None:
            unmatched.append(record)
            continue
        record.student_pk = pk
        by_student[pk] = record
    return list(by_student.values()), unmatched


# ---------------------------------------------------------------------------
# Preview / confirm
# ---------------------------------------------------------------------------


@dataclass
class ScoreImportPreview:
    records: list[ScoreRecord]
    mapping: dict[str, str]
    unmatched_numbers: list[str] = field(default_factory=list)
    dropped_count: int = 0

    @property
    def total_count(self) -> int:
        return len(self.records)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched_numbers)

    @property
    def matched_count(self) -> int:
        return self.total_count - self.unmatched_count


@dataclass(frozen=True)
class ScoreImportOutcome:
    saved_count: int
    unmatched_count: int


def preview_score_import(
    file_content: str,
    column_mapping: dict[str, Optional[str]],
    repository: Optional[ScoreRepository] = None,
) -> ScoreImportPreview:
    repository = repository or DjangoScoreRepository()
    parsed = require_rows(parse_csv_text(file_content))
    mapping = validate_score_mapping(column_mapping)
    records = transform_score_rows(parsed.rows, mapping)
    _matched, unmatched = resolve_students(records, repository)
    return ScoreImportPreview(
        records=records,
        mapping=mapping,
        unmatched_numbers=[r.admission_number for r in unmatched],
        dropped_count=parsed.dropped_count,
    )


def confirm_score_import(
    exam: Exam,
    file_content: str,
    column_mapping: dict[str, Optional[str]],
    filename: str,
    user=None,
    repository: Optional[ScoreRepository] = None,
) -> ScoreImportOutcome:
    """
    Upsert the scores of every matched row for ``exam``.

    Raises:
        NothingToImportError: If no row names an active student.
        SubmitError: If the store rejects the write; nothing is kept.
    """
    repository = repository or DjangoScoreRepository()
    parsed = require_rows(parse_csv_text(file_content))
    mapping = validate_score_mapping(column_mapping)
    records = transform_score_rows(parsed.rows, mapping)

    matched, unmatched = resolve_students(records, repository)
    if not matched:
        raise NothingToImportError(
            "No valid student records found. Please check that admission "
            "numbers match existing students."
        )

    try:
        with transaction.atomic():
            saved = repository.upsert_scores(exam, matched, user=user)
            ImportRecord.objects.create(
                filename=filename,
                import_type=ImportRecord.ImportType.EXAM_SCORES,
                exam=exam,
                imported_by=user if getattr(user, "is_authenticated", False) else None,
                column_mapping=mapping,
                inserted_count=saved,
                skipped_count=len(unmatched),
            )
    except DatabaseError as e:
        logger.exception("Score import %r for exam %s failed", filename, exam.pk)
        raise SubmitError(str(e)) from e

    logger.info(
        "Score import %r for exam %s: %d saved, %d unmatched",
        filename,
        exam.pk,
        saved,
        len(unmatched),
    )
    return ScoreImportOutcome(saved_count=saved, unmatched_count=len(unmatched))
