"""Student listing views."""

from __future__ import annotations

from django.db.models import Q
from django.shortcuts import get_object_or_404, render
from django.views.decorators.http import require_GET

from registry.models import ImportRecord, Student


@require_GET
def student_list(request):
    """List students with search by name/admission number and status filter."""
    students = Student.objects.all()

    query = request.GET.get("q", "").strip()
    if query:
        students = students.filter(
            Q(name__icontains=query) | Q(admission_number__icontains=query)
        )

    status = request.GET.get("status")
    if status:
        students = students.filter(status=status)

    statuses = (
        Student.objects.order_by("status").values_list("status", flat=True).distinct()
    )
    recent_imports = ImportRecord.objects.filter(
        import_type=ImportRecord.ImportType.STUDENTS
    )[:5]

    return render(
        request,
        "registry/students/list.html",
        {
            "students": students,
            "statuses": statuses,
            "current_query": query,
            "current_status": status or "",
            "recent_imports": recent_imports,
        },
    )


@require_GET
def student_detail(request, slug):
    student = get_object_or_404(Student, slug=slug)
    scores = student.exam_scores.select_related("exam").order_by("-exam__exam_date")
    return render(
        request,
        "registry/students/detail.html",
        {"student": student, "scores": scores},
    )
