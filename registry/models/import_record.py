from django.conf import settings
from django.db import models


class ImportRecord(models.Model):
    class ImportType(models.TextChoices):
        STUDENTS = "STUDENTS", "Students"
        EXAM_SCORES = "EXAM_SCORES", "Exam scores"

    filename = models.CharField(max_length=255)
    imported_at = models.DateTimeField(auto_now_add=True)
    import_type = models.CharField(max_length=20, choices=ImportType.choices)
    exam = models.ForeignKey(
        "registry.Exam",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="import_records",
    )
    imported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    inserted_count = models.PositiveIntegerField(default=0)
    skipped_count = models.PositiveIntegerField(default=0)
    column_mapping = models.JSONField(blank=True, default=dict)

    class Meta:
        ordering = ["-imported_at"]

    def __str__(self):
        return f"{self.filename} ({self.imported_at:%Y-%m-%d %H:%M})"
