from django.urls import path

from registry.views.exams import exam_detail, exam_list
from registry.views.imports import (
    score_import_mapping,
    score_import_preview,
    score_import_sample,
    score_import_upload,
    student_import_mapping,
    student_import_preview,
    student_import_sample,
    student_import_upload,
)
from registry.views.students import student_detail, student_list

app_name = "registry"

urlpatterns = [
    # Students
    path("", student_list, name="student_list"),
    path("students/<slug:slug>/", student_detail, name="student_detail"),
    # Exams
    path("exams/", exam_list, name="exam_list"),
    path("exams/<int:pk>/", exam_detail, name="exam_detail"),
    # Student CSV import
    path("import/students/upload/", student_import_upload, name="student_import_upload"),
    path(
        "import/students/mapping/",
        student_import_mapping,
        name="student_import_mapping",
    ),
    path(
        "import/students/preview/",
        student_import_preview,
        name="student_import_preview",
    ),
    path(
        "import/students/sample/",
        student_import_sample,
        name="student_import_sample",
    ),
    # Exam score CSV import
    path(
        "exams/<int:exam_id>/scores/upload/",
        score_import_upload,
        name="score_import_upload",
    ),
    path(
        "exams/<int:exam_id>/scores/mapping/",
        score_import_mapping,
        name="score_import_mapping",
    ),
    path(
        "exams/<int:exam_id>/scores/preview/",
        score_import_preview,
        name="score_import_preview",
    ),
    path(
        "exams/<int:exam_id>/scores/sample/",
        score_import_sample,
        name="score_import_sample",
    ),
]
