"""Tests for the import wizards and the listing views."""

from datetime import date
from decimal import Decimal
from unittest import mock

from django.contrib.messages import get_messages
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import Client, TestCase
from django.urls import reverse

from registry.models import Exam, ImportRecord, Student, StudentExamScore
from registry.services.repositories import (
    DjangoScoreRepository,
    DjangoStudentRepository,
)
from registry.services.student_import import SAMPLE_CSV


STUDENT_MAPPING_POST = {
    "col_admission_number": "admission_number",
    "col_name": "name",
    "col_gender": "gender",
    "col_current_grade": "current_grade",
    "col_admission_date": "admission_date",
    "col_dob": "dob",
    "col_status": "status",
}


def _messages(resp):
    return [str(m) for m in get_messages(resp.wsgi_request)]


class StudentImportWizardTest(TestCase):
    def setUp(self):
        self.client = Client()

    def _upload(self, content, name="students.csv"):
        upload = SimpleUploadedFile(name, content, content_type="text/csv")
        return self.client.post(
            reverse("registry:student_import_upload"), {"file": upload}
        )

    def _upload_and_map(self, content=SAMPLE_CSV.encode()):
        self._upload(content)
        return self.client.post(
            reverse("registry:student_import_mapping"), STUDENT_MAPPING_POST
        )

    def test_upload_page(self):
        resp = self.client.get(reverse("registry:student_import_upload"))
        self.assertEqual(resp.status_code, 200)
        self.assertTemplateUsed(resp, "registry/imports/upload.html")
        self.assertContains(resp, "Download Sample CSV")

    def test_upload_redirects_to_mapping(self):
        resp = self._upload(SAMPLE_CSV.encode())
        self.assertRedirects(resp, reverse("registry:student_import_mapping"))
        session = self.client.session
        self.assertEqual(session["student_import_filename"], "students.csv")
        self.assertEqual(
            session["student_import_mapping"]["admission_number"], "admission_number"
        )

    def test_upload_strips_byte_order_mark(self):
        self._upload("\ufeff".encode() + SAMPLE_CSV.encode())
        mapping = self.client.session["student_import_mapping"]
        self.assertIn("admission_number", mapping)

    def test_header_only_upload_warns(self):
        resp = self._upload(b"admission_number,name\n")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("The CSV file contains no data rows.", _messages(resp))
        self.assertNotIn("student_import_content", self.client.session)

    def test_empty_upload_rejected(self):
        resp = self._upload(b"\n\n")
        self.assertEqual(resp.status_code, 200)
        self.assertNotIn("student_import_content", self.client.session)

    def test_non_utf8_upload_rejected(self):
        resp = self._upload(b"admission_number,name\n\xff\xfe,bad\n")
        self.assertEqual(resp.status_code, 200)
        self.assertFormError(
            resp.context["form"], "file", "File must be UTF-8 encoded text."
        )

    def test_mapping_without_upload_redirects(self):
        resp = self.client.get(reverse("registry:student_import_mapping"))
        self.assertRedirects(resp, reverse("registry:student_import_upload"))

    def test_mapping_page_shows_proposal(self):
        self._upload(SAMPLE_CSV.encode())
        resp = self.client.get(reverse("registry:student_import_mapping"))
        self.assertEqual(resp.status_code, 200)
        form = resp.context["form"]
        self.assertEqual(form["col_admission_date"].value(), "admission_date")
        self.assertEqual(len(resp.context["sample_rows"]), 3)

    def test_mapping_missing_required_field(self):
        self._upload(SAMPLE_CSV.encode())
        data = dict(STUDENT_MAPPING_POST, col_name="")
        resp = self.client.post(reverse("registry:student_import_mapping"), data)
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "Name field must be mapped")

    def test_mapping_duplicate_field(self):
        self._upload(SAMPLE_CSV.encode())
        data = dict(STUDENT_MAPPING_POST, col_status="name")
        resp = self.client.post(reverse("registry:student_import_mapping"), data)
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "Each field can only be mapped once")

    def test_preview_without_session_redirects(self):
        resp = self.client.get(reverse("registry:student_import_preview"))
        self.assertRedirects(resp, reverse("registry:student_import_upload"))
        self.assertIn("Missing CSV data. Please start over.", _messages(resp))

    def test_preview_before_mapping_confirmed_redirects(self):
        self._upload(SAMPLE_CSV.encode())
        resp = self.client.get(reverse("registry:student_import_preview"))
        self.assertRedirects(resp, reverse("registry:student_import_upload"))

    def test_preview_counts(self):
        Student.objects.create(admission_number="STUD002", name="Jane Smith")
        resp = self._upload_and_map()
        self.assertRedirects(resp, reverse("registry:student_import_preview"))

        resp = self.client.get(reverse("registry:student_import_preview"))
        self.assertEqual(resp.status_code, 200)
        preview = resp.context["preview"]
        self.assertEqual(preview.total_count, 3)
        self.assertEqual(preview.duplicate_count, 1)
        self.assertEqual(preview.new_count, 2)
        self.assertEqual(Student.objects.count(), 1)

    def test_full_import(self):
        self._upload_and_map()
        resp = self.client.post(reverse("registry:student_import_preview"))
        self.assertRedirects(resp, reverse("registry:student_list"))
        self.assertIn(
            "Successfully imported 3 students. 0 duplicate entries were skipped.",
            _messages(resp),
        )
        self.assertEqual(Student.objects.count(), 3)
        self.assertNotIn("student_import_content", self.client.session)

        record = ImportRecord.objects.get()
        self.assertEqual(record.filename, "students.csv")
        self.assertEqual(record.inserted_count, 3)

    def test_import_with_duplicates(self):
        Student.objects.create(admission_number="STUD001", name="John Doe")
        self._upload_and_map()
        resp = self.client.post(reverse("registry:student_import_preview"))
        self.assertIn(
            "Successfully imported 2 students. 1 duplicate entries were skipped.",
            _messages(resp),
        )

    def test_all_duplicates_is_error(self):
        for number in ("STUD001", "STUD002", "STUD003"):
            Student.objects.create(admission_number=number, name=number)
        self._upload_and_map()
        resp = self.client.post(reverse("registry:student_import_preview"))
        self.assertRedirects(resp, reverse("registry:student_import_preview"))
        self.assertIn(
            "All students in this CSV already exist in the database", _messages(resp)
        )
        self.assertEqual(Student.objects.count(), 3)
        self.assertEqual(ImportRecord.objects.count(), 0)
        self.assertIn("student_import_content", self.client.session)

    def test_write_error_returns_to_preview(self):
        self._upload_and_map()
        with mock.patch.object(
            DjangoStudentRepository,
            "insert_students",
            side_effect=DatabaseError("database is locked"),
        ):
            resp = self.client.post(reverse("registry:student_import_preview"))
        self.assertRedirects(resp, reverse("registry:student_import_preview"))
        self.assertIn("Import failed: database is locked", _messages(resp))
        self.assertEqual(Student.objects.count(), 0)
        self.assertEqual(ImportRecord.objects.count(), 0)

        # The wizard state survives, so the user can retry the confirm.
        session = self.client.session
        self.assertIn("student_import_content", session)
        self.assertTrue(session["student_import_mapping_confirmed"])
        resp = self.client.post(reverse("registry:student_import_preview"))
        self.assertRedirects(resp, reverse("registry:student_list"))
        self.assertEqual(Student.objects.count(), 3)

    def test_accented_names_listed(self):
        self._upload("admission_number,name\nSTUD001,José Núñez\n".encode())
        self.client.post(
            reverse("registry:student_import_mapping"),
            {"col_admission_number": "admission_number", "col_name": "name"},
        )
        self.client.post(reverse("registry:student_import_preview"))
        self.assertEqual(Student.objects.get().slug, "jose-nunez")

        resp = self.client.get(reverse("registry:student_list"))
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, reverse("registry:student_detail", args=["jose-nunez"]))
        resp = self.client.get(reverse("registry:student_detail", args=["jose-nunez"]))
        self.assertContains(resp, "José Núñez")

    def test_repeated_headers_rejected(self):
        resp = self._upload(b"admission_number,name,name\nSTUD001,John,Doe\n")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("Repeated column header(s): 'name'", _messages(resp))
        self.assertNotIn("student_import_content", self.client.session)

    def test_sample_download(self):
        resp = self.client.get(reverse("registry:student_import_sample"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "text/csv")
        self.assertIn("sample_students.csv", resp["Content-Disposition"])
        self.assertEqual(resp.content.decode(), SAMPLE_CSV)


class ScoreImportWizardTest(TestCase):
    def setUp(self):
        self.client = Client()
        self.exam = Exam.objects.create(
            name="End of Term", exam_date=date(2025, 7, 20), academic_year=2025
        )
        Student.objects.create(admission_number="ST001", name="John Doe")
        Student.objects.create(admission_number="ST002", name="Jane Smith")

    def _url(self, step):
        return reverse(f"registry:score_import_{step}", args=[self.exam.pk])

    def _upload_and_map(self, content):
        upload = SimpleUploadedFile("scores.csv", content, content_type="text/csv")
        self.client.post(self._url("upload"), {"file": upload})
        return self.client.post(
            self._url("mapping"),
            {
                "col_admission_number": "student_id",
                "col_score": "score",
                "col_did_not_sit": "did_not_sit",
            },
        )

    def test_unknown_exam_404(self):
        resp = self.client.get(
            reverse("registry:score_import_upload", args=[self.exam.pk + 100])
        )
        self.assertEqual(resp.status_code, 404)

    def test_full_import(self):
        content = (
            b"admission_number,score,did_not_sit\n"
            b"ST001,81,false\n"
            b"ST002,0,true\n"
            b"ST999,50,false\n"
        )
        resp = self._upload_and_map(content)
        self.assertRedirects(resp, self._url("preview"))

        resp = self.client.get(self._url("preview"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.context["preview"].unmatched_numbers, ["ST999"])

        resp = self.client.post(self._url("preview"))
        self.assertRedirects(resp, reverse("registry:exam_detail", args=[self.exam.pk]))
        self.assertIn(
            "Imported 2 scores. 1 rows did not match an active student.",
            _messages(resp),
        )
        self.assertEqual(
            StudentExamScore.objects.get(student__admission_number="ST001").score,
            Decimal("81"),
        )

    def test_no_matches_is_error(self):
        self._upload_and_map(b"admission_number,score,did_not_sit\nXX1,50,false\n")
        resp = self.client.post(self._url("preview"))
        self.assertRedirects(resp, self._url("preview"))
        self.assertEqual(StudentExamScore.objects.count(), 0)

    def test_write_error_returns_to_preview(self):
        self._upload_and_map(b"admission_number,score,did_not_sit\nST001,50,false\n")
        with mock.patch.object(
            DjangoScoreRepository,
            "upsert_scores",
            side_effect=DatabaseError("database is locked"),
        ):
            resp = self.client.post(self._url("preview"))
        self.assertRedirects(resp, self._url("preview"))
        self.assertIn("Import failed: database is locked", _messages(resp))
        self.assertEqual(StudentExamScore.objects.count(), 0)
        self.assertIn(f"score_import_{self.exam.pk}_content", self.client.session)

    def test_out_of_range_score_keeps_pages_readable(self):
        self._upload_and_map(b"admission_number,score,did_not_sit\nST001,123456,false\n")
        self.client.post(self._url("preview"))
        self.assertEqual(StudentExamScore.objects.get().score, Decimal("0"))

        resp = self.client.get(reverse("registry:exam_detail", args=[self.exam.pk]))
        self.assertEqual(resp.status_code, 200)

    def test_sessions_are_per_exam(self):
        other = Exam.objects.create(name="Mock")
        self._upload_and_map(b"admission_number,score,did_not_sit\nST001,50,false\n")
        resp = self.client.get(
            reverse("registry:score_import_preview", args=[other.pk])
        )
        self.assertRedirects(
            resp, reverse("registry:score_import_upload", args=[other.pk])
        )

    def test_sample_download(self):
        resp = self.client.get(self._url("sample"))
        self.assertEqual(resp.status_code, 200)
        self.assertIn("sample_student_scores.csv", resp["Content-Disposition"])


class StudentListViewTest(TestCase):
    def setUp(self):
        self.client = Client()
        Student.objects.create(
            admission_number="STUD001", name="John Doe", slug="john-doe"
        )
        Student.objects.create(
            admission_number="STUD002", name="Jane Smith", status="Graduated"
        )

    def test_list(self):
        resp = self.client.get(reverse("registry:student_list"))
        self.assertEqual(resp.status_code, 200)
        self.assertTemplateUsed(resp, "registry/students/list.html")
        self.assertEqual(len(resp.context["students"]), 2)

    def test_search(self):
        resp = self.client.get(reverse("registry:student_list"), {"q": "stud002"})
        names = [s.name for s in resp.context["students"]]
        self.assertEqual(names, ["Jane Smith"])

    def test_status_filter(self):
        resp = self.client.get(reverse("registry:student_list"), {"status": "Active"})
        names = [s.name for s in resp.context["students"]]
        self.assertEqual(names, ["John Doe"])

    def test_detail_by_slug(self):
        resp = self.client.get(reverse("registry:student_detail", args=["john-doe"]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.context["student"].admission_number, "STUD001")

    def test_detail_missing_slug(self):
        resp = self.client.get(reverse("registry:student_detail", args=["nobody"]))
        self.assertEqual(resp.status_code, 404)


class ExamViewTest(TestCase):
    def setUp(self):
        self.client = Client()
        self.exam = Exam.objects.create(name="Mid-term", academic_year=2025)
        john = Student.objects.create(admission_number="ST001", name="John Doe")
        jane = Student.objects.create(admission_number="ST002", name="Jane Smith")
        StudentExamScore.objects.create(exam=self.exam, student=john, score=Decimal("80"))
        StudentExamScore.objects.create(exam=self.exam, student=jane, did_not_sit=True)

    def test_list(self):
        resp = self.client.get(reverse("registry:exam_list"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.context["exams"][0].score_count, 2)

    def test_detail_summary(self):
        resp = self.client.get(reverse("registry:exam_detail", args=[self.exam.pk]))
        self.assertEqual(resp.status_code, 200)
        summary = resp.context["summary"]
        self.assertEqual(summary["sat"], 1)
        self.assertEqual(summary["absent"], 1)
        self.assertEqual(summary["average"], Decimal("80"))
