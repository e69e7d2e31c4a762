from django.contrib import admin

from .models import Exam, ImportRecord, Student, StudentExamScore


class StudentInline(admin.TabularInline):
    model = Student
    extra = 0
    fields = ["admission_number", "name", "gender", "current_grade", "status"]
    readonly_fields = fields
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


class ScoreInline(admin.TabularInline):
    model = StudentExamScore
    extra = 0
    fields = ["student", "score", "did_not_sit"]
    readonly_fields = ["student"]
    show_change_link = True


@admin.register(ImportRecord)
class ImportRecordAdmin(admin.ModelAdmin):
    list_display = [
        "filename",
        "import_type",
        "exam",
        "inserted_count",
        "skipped_count",
        "imported_by",
        "imported_at",
    ]
    list_filter = ["import_type"]
    readonly_fields = ["imported_at"]
    inlines = [StudentInline]


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = [
        "admission_number",
        "name",
        "gender",
        "current_grade",
        "status",
        "admission_date",
    ]
    list_filter = ["status", "gender", "current_grade"]
    search_fields = ["admission_number", "name"]
    prepopulated_fields = {"slug": ["name"]}
    readonly_fields = ["import_record", "created_by", "updated_by"]


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ["name", "exam_date", "academic_year"]
    list_filter = ["academic_year"]
    search_fields = ["name"]
    date_hierarchy = "exam_date"
    inlines = [ScoreInline]


@admin.register(StudentExamScore)
class StudentExamScoreAdmin(admin.ModelAdmin):
    list_display = ["student", "exam", "score", "did_not_sit"]
    list_filter = ["did_not_sit", "exam"]
    search_fields = ["student__admission_number", "student__name"]
