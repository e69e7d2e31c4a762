from .import_record import ImportRecord
from .exam import Exam
from .student import Student
from .score import StudentExamScore

__all__ = [
    "ImportRecord",
    "Exam",
    "Student",
    "StudentExamScore",
]
