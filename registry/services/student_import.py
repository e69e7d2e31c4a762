"""
Student CSV import: Upload -> Map Columns -> Preview -> Confirm.

Rows are keyed by admission number. Students whose admission number already
exists are skipped; a run where every row is a duplicate is reported as a
failure rather than as an empty success.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from django.conf import settings
from django.db import DatabaseError, transaction

from registry.models import ImportRecord, Student
from registry.services.csv_import import (
    ImportOutcome,
    NothingToImportError,
    SubmitError,
    parse_csv_text,
    parse_optional_date,
    propose_mapping,
    require_rows,
    validate_mapping,
)
from registry.services.repositories import DjangoStudentRepository, StudentRepository

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Field tags
# ---------------------------------------------------------------------------

STUDENT_FIELDS = [
    "admission_number",
    "name",
    "gender",
    "current_grade",
    "admission_date",
    "dob",
    "status",
]

REQUIRED_FIELDS = [
    "admission_number",
    "name",
]

FIELD_LABELS: dict[str, str] = {
    "admission_number": "Admission Number",
    "name": "Name",
    "gender": "Gender",
    "current_grade": "Current Grade",
    "admission_date": "Admission Date",
    "dob": "Date of Birth",
    "status": "Status",
}

# Checked in order; the first tag with a matching keyword wins. Admission
# date comes first because "adm" would otherwise claim it.
KEYWORD_TABLE: list[tuple[str, tuple[str, ...]]] = [
    ("admission_date", ("admission_date", "join")),
    ("admission_number", ("admission_number", "adm")),
    ("name", ("name", "student")),
    ("gender", ("gender", "sex")),
    ("current_grade", ("grade", "class")),
    ("dob", ("dob", "birth")),
    ("status", ("status",)),
]

SAMPLE_CSV = """\
admission_number,name,gender,current_grade,admission_date,dob,status
STUD001,John Doe,Male,Grade 3,2023-01-15,2016-05-10,Active
STUD002,Jane Smith,Female,Grade 5,2022-09-01,2013-11-21,Active
STUD003,Michael Johnson,Male,Grade 1,2024-01-10,2018-03-15,Active
"""


def propose_student_mapping(headers: list[str]) -> dict[str, Optional[str]]:
    """Default header -> field tag guesses for the mapping step."""
    return propose_mapping(headers, KEYWORD_TABLE)


def validate_student_mapping(mapping: dict[str, Optional[str]]) -> dict[str, str]:
    return validate_mapping(mapping, STUDENT_FIELDS, REQUIRED_FIELDS, FIELD_LABELS)


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


@dataclass
class StudentRecord:
    """A student built from one CSV row; optional fields absent when unmapped."""

    admission_number: str = ""
    name: str = ""
    gender: str = Student.Gender.MALE
    current_grade: str = ""
    admission_date: Optional[date] = None
    dob: Optional[date] = None
    status: str = Student.DEFAULT_STATUS
    raw_data: dict[str, Any] = field(default_factory=dict)


def _normalise_gender(value: str) -> str:
    if value.strip().lower() in ("m", "male"):
        return Student.Gender.MALE
    return Student.Gender.FEMALE


def transform_student_rows(
    rows: list[dict[str, str]],
    mapping: dict[str, str],
) -> list[StudentRecord]:
    """
    Apply a validated mapping to every row.

    Never fails a row: unreadable dates become None, unknown genders become
    Female, a blank status becomes Active.
    """
    records: list[StudentRecord] = []
    for raw_row in rows:
        record = StudentRecord(raw_data=dict(raw_row))
        for header, tag in mapping.items():
            value = raw_row.get(header, "")
            if tag == "admission_number":
                record.admission_number = value
            elif tag == "name":
                record.name = value
            elif tag == "current_grade":
                record.current_grade = value
            elif tag == "gender":
                record.gender = _normalise_gender(value)
            elif tag == "admission_date":
                record.admission_date = parse_optional_date(value)
            elif tag == "dob":
                record.dob = parse_optional_date(value)
            elif tag == "status":
                record.status = value or Student.DEFAULT_STATUS
        records.append(record)
    return records


# ---------------------------------------------------------------------------
# Duplicate detection
# ---------------------------------------------------------------------------


def partition_new_students(
    records: list[StudentRecord],
    repository: StudentRepository,
) -> tuple[list[StudentRecord], list[StudentRecord]]:
    """Split records into (new, already existing) with one store lookup."""
    existing = repository.existing_admission_numbers(
        r.admission_number for r in records
    )
    new = [r for r in records if r.admission_number not in existing]
    duplicates = [r for r in records if r.admission_number in existing]
    logger.info(
        "Student import dedup: %d new, %d already exist", len(new), len(duplicates)
    )
    return new, duplicates


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


@dataclass
class StudentImportPreview:
    """Everything the preview step shows before anything is written."""

    records: list[StudentRecord]
    mapping: dict[str, str]
    total_count: int = 0
    dropped_count: int = 0
    duplicate_numbers: set[str] = field(default_factory=set)
    duplicate_count: int = 0
    new_count: int = 0

    def __post_init__(self):
        self.duplicate_count = sum(
            1 for r in self.records if r.admission_number in self.duplicate_numbers
        )
        self.new_count = self.total_count - self.duplicate_count

    @property
    def sample_rows(self) -> list[tuple[list[str], bool]]:
        """First few rows as (mapped cell values, already exists) pairs."""
        rows = []
        for record in self.records[: settings.REGISTRY_IMPORT_PREVIEW_ROWS]:
            cells = [record.raw_data.get(header, "") for header in self.mapping]
            rows.append((cells, record.admission_number in self.duplicate_numbers))
        return rows

    @property
    def columns(self) -> list[tuple[str, str]]:
        """(field label, source header) pairs for the mapped columns."""
        return [
            (FIELD_LABELS.get(tag, tag), header) for header, tag in self.mapping.items()
        ]


def preview_student_import(
    file_content: str,
    column_mapping: dict[str, Optional[str]],
    repository: Optional[StudentRepository] = None,
) -> StudentImportPreview:
    """Run every stage up to dedup without writing anything."""
    repository = repository or DjangoStudentRepository()
    parsed = require_rows(parse_csv_text(file_content))
    mapping = validate_student_mapping(column_mapping)
    records = transform_student_rows(parsed.rows, mapping)
    duplicate_numbers = repository.existing_admission_numbers(
        r.admission_number for r in records
    )
    return StudentImportPreview(
        records=records,
        mapping=mapping,
        total_count=len(records),
        dropped_count=parsed.dropped_count,
        duplicate_numbers=duplicate_numbers,
    )


# ---------------------------------------------------------------------------
# Confirm import
# ---------------------------------------------------------------------------


def confirm_student_import(
    file_content: str,
    column_mapping: dict[str, Optional[str]],
    filename: str,
    user=None,
    repository: Optional[StudentRepository] = None,
) -> ImportOutcome:
    """
    Parse, validate, dedup and insert the new students in one transaction.

    Raises:
        CSVParseError, NoRowsError, MappingError: Before anything is read
            from the store.
        NothingToImportError: If every admission number already exists.
        SubmitError: If the store rejects the write; nothing is kept.
    """
    repository = repository or DjangoStudentRepository()
    parsed = require_rows(parse_csv_text(file_content))
    mapping = validate_student_mapping(column_mapping)
    records = transform_student_rows(parsed.rows, mapping)

    new_records, duplicates = partition_new_students(records, repository)
    if not new_records:
        raise NothingToImportError(
            "All students in this CSV already exist in the database"
        )

    try:
        with transaction.atomic():
            import_record = ImportRecord.objects.create(
                filename=filename,
                import_type=ImportRecord.ImportType.STUDENTS,
                imported_by=user if getattr(user, "is_authenticated", False) else None,
                column_mapping=mapping,
            )
            inserted = repository.insert_students(
                new_records, user=user, import_record=import_record
            )
            if not inserted:
                raise NothingToImportError(
                    "All students in this CSV already exist in the database"
                )
            import_record.inserted_count = inserted
            import_record.skipped_count = len(records) - inserted
            import_record.save(update_fields=["inserted_count", "skipped_count"])
    except DatabaseError as e:
        logger.exception("Student import %r failed while writing", filename)
        raise SubmitError(str(e)) from e

    # Rows that lost a race to a concurrent import count as duplicates.
    outcome = ImportOutcome(
        inserted_count=inserted,
        duplicate_count=len(duplicates) + (len(new_records) - inserted),
    )
    logger.info(
        "Student import %r: %d inserted, %d duplicates skipped",
        filename,
        outcome.inserted_count,
        outcome.duplicate_count,
    )
    return outcome
