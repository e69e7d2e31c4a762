"""Exam listing views."""

from __future__ import annotations

from django.db.models import Avg, Count, Q
from django.shortcuts import get_object_or_404, render
from django.views.decorators.http import require_GET

from registry.models import Exam


@require_GET
def exam_list(request):
    exams = Exam.objects.annotate(score_count=Count("scores"))
    return render(request, "registry/exams/list.html", {"exams": exams})


@require_GET
def exam_detail(request, pk):
    """Exam detail with every recorded score."""
    exam = get_object_or_404(Exam, pk=pk)
    scores = exam.scores.select_related("student")
    summary = scores.aggregate(
        average=Avg("score", filter=Q(did_not_sit=False)),
        sat=Count("pk", filter=Q(did_not_sit=False)),
        absent=Count("pk", filter=Q(did_not_sit=True)),
    )
    return render(
        request,
        "registry/exams/detail.html",
        {"exam": exam, "scores": scores, "summary": summary},
    )
