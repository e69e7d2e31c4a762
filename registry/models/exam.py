from django.db import models


class Exam(models.Model):
    name = models.CharField(max_length=200)
    exam_date = models.DateField(null=True, blank=True)
    academic_year = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-exam_date", "name"]

    def __str__(self):
        if self.academic_year:
            return f"{self.name} ({self.academic_year})"
        return self.name
