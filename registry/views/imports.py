"""CSV import wizards: students, and exam scores for one exam."""

from __future__ import annotations

from django.contrib import messages
from django.http import HttpResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.views.decorators.http import require_GET, require_http_methods

from registry.forms import ColumnMappingForm, CSVUploadForm, mapping_choices
from registry.models import Exam
from registry.services import score_import, student_import
from registry.services.csv_import import (
    CSVImportError,
    NoRowsError,
    NothingToImportError,
    parse_csv_text,
    require_rows,
)

SAMPLE_ROW_COUNT = 5


class ImportSession:
    """The uploaded text, filename and mapping kept between wizard steps."""

    def __init__(self, request, prefix: str):
        self.session = request.session
        self.prefix = prefix

    def _key(self, name: str) -> str:
        return f"{self.prefix}_{name}"

    @property
    def content(self) -> str | None:
        return self.session.get(self._key("content"))

    @property
    def filename(self) -> str:
        return self.session.get(self._key("filename"), "unknown.csv")

    @property
    def mapping(self) -> dict | None:
        return self.session.get(self._key("mapping"))

    def start(self, content: str, filename: str, mapping: dict) -> None:
        self.session[self._key("content")] = content
        self.session[self._key("filename")] = filename
        self.session[self._key("mapping")] = mapping
        self.session[self._key("mapping_confirmed")] = False

    def confirm_mapping(self, mapping: dict) -> None:
        self.session[self._key("mapping")] = mapping
        self.session[self._key("mapping_confirmed")] = True

    @property
    def mapping_confirmed(self) -> bool:
        return bool(self.session.get(self._key("mapping_confirmed")))

    def clear(self) -> None:
        for name in ("content", "filename", "mapping", "mapping_confirmed"):
            self.session.pop(self._key(name), None)


def _csv_response(content: str, filename: str) -> HttpResponse:
    response = HttpResponse(content, content_type="text/csv")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


def _acting_user(request):
    user = getattr(request, "user", None)
    return user if user is not None and user.is_authenticated else None


# ---------------------------------------------------------------------------
# Shared step implementations
# ---------------------------------------------------------------------------


def _upload_step(request, wizard, propose, urls, context):
    """Step 1: Upload CSV file, then propose a mapping."""
    if request.method == "POST":
        form = CSVUploadForm(request.POST, request.FILES)
        if form.is_valid():
            content = form.cleaned_data["content"]
            try:
                parsed = require_rows(parse_csv_text(content))
            except NoRowsError as e:
                messages.warning(request, str(e))
            except CSVImportError as e:
                messages.error(request, str(e))
            else:
                if parsed.dropped_count:
                    messages.info(
                        request,
                        f"{parsed.dropped_count} row(s) have the wrong number of "
                        f"columns and will be ignored.",
                    )
                wizard.start(
                    content, request.FILES["file"].name, propose(parsed.headers)
                )
                return redirect(urls["mapping"])
    else:
        form = CSVUploadForm()

    return render(
        request,
        "registry/imports/upload.html",
        {"form": form, "urls": urls, **context},
    )


def _mapping_step(request, wizard, fields, labels, validator, urls, context):
    """Step 2: Map CSV columns to record fields."""
    if not wizard.content:
        messages.error(request, "No CSV file in session. Please upload again.")
        return redirect(urls["upload"])

    parsed = parse_csv_text(wizard.content)
    headers = parsed.headers
    sample_rows = parsed.rows[:SAMPLE_ROW_COUNT]
    form_kwargs = {
        "csv_headers": headers,
        "field_choices": mapping_choices(fields, labels),
        "validator": validator,
    }

    if request.method == "POST":
        form = ColumnMappingForm(request.POST, **form_kwargs)
        if form.is_valid():
            wizard.confirm_mapping(form.mapping)
            return redirect(urls["preview"])
    else:
        current = wizard.mapping or {}
        initial = {f"col_{h}": current.get(h) or "" for h in headers}
        form = ColumnMappingForm(initial=initial, **form_kwargs)

    return render(
        request,
        "registry/imports/mapping.html",
        {
            "form": form,
            "headers": headers,
            "sample_rows": sample_rows,
            "urls": urls,
            **context,
        },
    )


def _session_ready(request, wizard) -> bool:
    if not wizard.content or not wizard.mapping_confirmed:
        messages.error(request, "Missing CSV data. Please start over.")
        return False
    return True


# ---------------------------------------------------------------------------
# Student import
# ---------------------------------------------------------------------------

STUDENT_PREFIX = "student_import"


def _student_urls() -> dict[str, str]:
    return {
        "upload": reverse("registry:student_import_upload"),
        "mapping": reverse("registry:student_import_mapping"),
        "preview": reverse("registry:student_import_preview"),
        "sample": reverse("registry:student_import_sample"),
        "cancel": reverse("registry:student_list"),
    }


STUDENT_CONTEXT = {
    "wizard_title": "Import Students",
    "record_label": "students",
    "required_fields": [
        student_import.FIELD_LABELS[f] for f in student_import.REQUIRED_FIELDS
    ],
    "optional_fields": [
        student_import.FIELD_LABELS[f]
        for f in student_import.STUDENT_FIELDS
        if f not in student_import.REQUIRED_FIELDS
    ],
}


@require_http_methods(["GET", "POST"])
def student_import_upload(request):
    wizard = ImportSession(request, STUDENT_PREFIX)
    return _upload_step(
        request,
        wizard,
        student_import.propose_student_mapping,
        _student_urls(),
        STUDENT_CONTEXT,
    )


@require_http_methods(["GET", "POST"])
def student_import_mapping(request):
    wizard = ImportSession(request, STUDENT_PREFIX)
    return _mapping_step(
        request,
        wizard,
        student_import.STUDENT_FIELDS,
        student_import.FIELD_LABELS,
        student_import.validate_student_mapping,
        _student_urls(),
        STUDENT_CONTEXT,
    )


@require_http_methods(["GET", "POST"])
def student_import_preview(request):
    """Step 3: Preview new vs existing students. POST confirms the import."""
    wizard = ImportSession(request, STUDENT_PREFIX)
    urls = _student_urls()
    if not _session_ready(request, wizard):
        return redirect(urls["upload"])

    if request.method == "POST":
        try:
            outcome = student_import.confirm_student_import(
                wizard.content,
                wizard.mapping,
                wizard.filename,
                user=_acting_user(request),
            )
        except NothingToImportError as e:
            messages.error(request, str(e))
            return redirect(urls["preview"])
        except CSVImportError as e:
            messages.error(request, f"Import failed: {e}")
            return redirect(urls["preview"])

        wizard.clear()
        messages.success(
            request,
            f"Successfully imported {outcome.inserted_count} students. "
            f"{outcome.duplicate_count} duplicate entries were skipped.",
        )
        return redirect(urls["cancel"])

    try:
        preview = student_import.preview_student_import(wizard.content, wizard.mapping)
    except CSVImportError as e:
        messages.error(request, str(e))
        return redirect(urls["mapping"])

    return render(
        request,
        "registry/imports/student_preview.html",
        {"preview": preview, "urls": urls, **STUDENT_CONTEXT},
    )


@require_GET
def student_import_sample(request):
    return _csv_response(student_import.SAMPLE_CSV, "sample_students.csv")


# ---------------------------------------------------------------------------
# Exam score import
# ---------------------------------------------------------------------------


def _score_urls(exam: Exam) -> dict[str, str]:
    return {
        "upload": reverse("registry:score_import_upload", args=[exam.pk]),
        "mapping": reverse("registry:score_import_mapping", args=[exam.pk]),
        "preview": reverse("registry:score_import_preview", args=[exam.pk]),
        "sample": reverse("registry:score_import_sample", args=[exam.pk]),
        "cancel": reverse("registry:exam_detail", args=[exam.pk]),
    }


def _score_context(exam: Exam) -> dict:
    return {
        "wizard_title": f"Import Scores: {exam}",
        "record_label": "scores",
        "exam": exam,
        "required_fields": [
            score_import.FIELD_LABELS[f] for f in score_import.REQUIRED_FIELDS
        ],
        "optional_fields": [
            score_import.FIELD_LABELS[f]
            for f in score_import.SCORE_FIELDS
            if f not in score_import.REQUIRED_FIELDS
        ],
    }


def _score_wizard(request, exam: Exam) -> ImportSession:
    return ImportSession(request, f"score_import_{exam.pk}")


@require_http_methods(["GET", "POST"])
def score_import_upload(request, exam_id):
    exam = get_object_or_404(Exam, pk=exam_id)
    return _upload_step(
        request,
        _score_wizard(request, exam),
        score_import.propose_score_mapping,
        _score_urls(exam),
        _score_context(exam),
    )


@require_http_methods(["GET", "POST"])
def score_import_mapping(request, exam_id):
    exam = get_object_or_404(Exam, pk=exam_id)
    return _mapping_step(
        request,
        _score_wizard(request, exam),
        score_import.SCORE_FIELDS,
        score_import.FIELD_LABELS,
        score_import.validate_score_mapping,
        _score_urls(exam),
        _score_context(exam),
    )


@require_http_methods(["GET", "POST"])
def score_import_preview(request, exam_id):
    """Step 3: Preview matched vs unmatched rows. POST confirms the import."""
    exam = get_object_or_404(Exam, pk=exam_id)
    wizard = _score_wizard(request, exam)
    urls = _score_urls(exam)
    if not _session_ready(request, wizard):
        return redirect(urls["upload"])

    if request.method == "POST":
        try:
            outcome = score_import.confirm_score_import(
                exam,
                wizard.content,
                wizard.mapping,
                wizard.filename,
                user=_acting_user(request),
            )
        except NothingToImportError as e:
            messages.error(request, str(e))
            return redirect(urls["preview"])
        except CSVImportError as e:
            messages.error(request, f"Import failed: {e}")
            return redirect(urls["preview"])

        wizard.clear()
        messages.success(
            request,
            f"Imported {outcome.saved_count} scores. "
            f"{outcome.unmatched_count} rows did not match an active student.",
        )
        return redirect(urls["cancel"])

    try:
        preview = score_import.preview_score_import(wizard.content, wizard.mapping)
    except CSVImportError as e:
        messages.error(request, str(e))
        return redirect(urls["mapping"])

    return render(
        request,
        "registry/imports/score_preview.html",
        {"preview": preview, "urls": urls, **_score_context(exam)},
    )


@require_GET
def score_import_sample(request, exam_id):
    get_object_or_404(Exam, pk=exam_id)
    return _csv_response(score_import.SAMPLE_CSV, "sample_student_scores.csv")
