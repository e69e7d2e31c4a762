from decimal import Decimal

from django.conf import settings
from django.db import models

from .exam import Exam
from .student import Student


class StudentExamScore(models.Model):
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="scores")
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="exam_scores"
    )
    score = models.DecimalField(max_digits=6, decimal_places=2, default=Decimal("0"))
    did_not_sit = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["student__name"]
        constraints = [
            models.UniqueConstraint(
                fields=["student", "exam"],
                name="unique_student_exam_score",
            )
        ]

    def __str__(self):
        if self.did_not_sit:
            return f"{self.student} - {self.exam}: did not sit"
        return f"{self.student} - {self.exam}: {self.score}"
