"""
Store access used by the import pipelines.

The pipelines only talk to the store through these two small protocols, so
the parse/map/dedup logic can be exercised against an in-memory stand-in.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional, Protocol

from django.conf import settings
from django.utils import timezone

from registry.models import Exam, ImportRecord, Student, StudentExamScore
from registry.services.slugs import generate_slug, slugify_name

if TYPE_CHECKING:
    from registry.services.score_import import ScoreRecord
    from registry.services.student_import import StudentRecord

logger = logging.getLogger(__name__)

SLUG_ATTEMPTS = 3


class StudentRepository(Protocol):
    def existing_admission_numbers(self, admission_numbers: Iterable[str]) -> set[str]:
        ...

    def insert_students(
        self,
        records: list[StudentRecord],
        user=None,
        import_record: Optional[ImportRecord] = None,
    ) -> int:
        ...


class ScoreRepository(Protocol):
    def active_students_by_admission_number(
        self, admission_numbers: Iterable[str]
    ) -> dict[str, int]:
        ...

    def upsert_scores(self, exam: Exam, records: list[ScoreRecord], user=None) -> int:
        ...


# ---------------------------------------------------------------------------
# Django ORM implementations
# ---------------------------------------------------------------------------


def _acting_user(user):
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return user


class DjangoStudentRepository:
    """Students table, accessed through the ORM."""

    def existing_admission_numbers(self, admission_numbers: Iterable[str]) -> set[str]:
        keys = set(admission_numbers)
        if not keys:
            return set()
        return set(
            Student.objects.filter(admission_number__in=keys).values_list(
                "admission_number", flat=True
            )
        )

    def _taken_slugs(self, records: list[StudentRecord]) -> set[str]:
        bases = {slugify_name(r.name) for r in records} - {""}
        taken: set[str] = set()
        for base in bases:
            taken.update(
                Student.objects.filter(slug__startswith=base).values_list(
                    "slug", flat=True
                )
            )
        return taken

    def _build_students(
        self,
        records: list[StudentRecord],
        actor,
        import_record: Optional[ImportRecord],
    ) -> list[Student]:
        taken = self._taken_slugs(records)
        students = []
        for record in records:
            slug = generate_slug(record.name, taken)
            if slug:
                taken.add(slug)
            students.append(
                Student(
                    admission_number=record.admission_number,
                    name=record.name,
                    slug=slug or None,
                    gender=record.gender,
                    current_grade=record.current_grade,
                    admission_date=record.admission_date,
                    dob=record.dob,
                    status=record.status,
                    import_record=import_record,
                    created_by=actor,
                    updated_by=actor,
                )
            )
        return students

    def insert_students(
        self,
        records: list[StudentRecord],
        user=None,
        import_record: Optional[ImportRecord] = None,
    ) -> int:
        """
        Insert records, ignoring any that collide with an existing row.

        Returns the number of rows actually written. Rows whose admission
        number was claimed by a concurrent import are skipped. The
        conflict-ignore insert also skips rows whose slug was claimed
        concurrently; those are retried with freshly generated slugs.
        """
        actor = _acting_user(user)
        pending = list(records)
        for attempt in range(1, SLUG_ATTEMPTS + 1):
            Student.objects.bulk_create(
                self._build_students(pending, actor, import_record),
                ignore_conflicts=True,
            )
            stored = self.existing_admission_numbers(
                r.admission_number for r in pending
            )
            pending = [r for r in pending if r.admission_number not in stored]
            if not pending:
                break
            logger.warning(
                "Slug conflict left %d student(s) unwritten (attempt %d of %d)",
                len(pending),
                attempt,
                SLUG_ATTEMPTS,
            )

        if import_record is not None:
            return Student.objects.filter(import_record=import_record).count()
        return len(
            self.existing_admission_numbers(r.admission_number for r in records)
        )


class DjangoScoreRepository:
    """Exam scores table, accessed through the ORM."""

    def __init__(self, batch_size: Optional[int] = None):
        self.batch_size = batch_size or settings.REGISTRY_SCORE_BATCH_SIZE

    def active_students_by_admission_number(
        self, admission_numbers: Iterable[str]
    ) -> dict[str, int]:
        keys = set(admission_numbers)
        if not keys:
            return {}
        return dict(
            Student.objects.filter(
                admission_number__in=keys,
                status=Student.DEFAULT_STATUS,
            ).values_list("admission_number", "pk")
        )

    def upsert_scores(self, exam: Exam, records: list[ScoreRecord], user=None) -> int:
        """Insert or update one score per (student, exam), in batches."""
        actor = _acting_user(user)
        now = timezone.now()
        scores = [
            StudentExamScore(
                exam=exam,
                student_id=record.student_pk,
                score=record.score,
                did_not_sit=record.did_not_sit,
                created_by=actor,
                updated_by=actor,
                updated_at=now,
            )
            for record in records
        ]
        StudentExamScore.objects.bulk_create(
            scores,
            batch_size=self.batch_size,
            update_conflicts=True,
            unique_fields=["student", "exam"],
            update_fields=["score", "did_not_sit", "updated_by", "updated_at"],
        )
        logger.info(
            "Upserted %d scores for exam %s in batches of %d",
            len(scores),
            exam.pk,
            self.batch_size,
        )
        return len(scores)
