"""
Mirror of the institutional academic record store.

These tables are owned by the academic system; the evaluation engine only
reads them (see AcademicRecordsRouter). A physical teacher may appear under
several `Teacher` rows sharing one `cedula`.
"""
from django.db import models


# ── Lookup / Enum helpers ────────────────────────────────────────────────

class PeriodStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    CLOSED = "CLOSED", "Closed"


# ── Core tables ──────────────────────────────────────────────────────────
class Period(models.Model):
    period_id  = models.AutoField(primary_key=True)
    name       = models.CharField(max_length=120)
    status     = models.CharField(max_length=6, choices=PeriodStatus.choices, default=PeriodStatus.ACTIVE)
    deleted_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.name


class Career(models.Model):
    career_id  = models.AutoField(primary_key=True)
    name       = models.CharField(max_length=180)
    deleted_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.name


class Subject(models.Model):
    subject_id = models.AutoField(primary_key=True)
    name       = models.CharField(max_length=180)
    career     = models.ForeignKey(Career, on_delete=models.PROTECT, related_name="subjects", null=True, blank=True)


class Teacher(models.Model):
    teacher_id    = models.AutoField(primary_key=True)
    cedula        = models.CharField(max_length=20, db_index=True)
    first_name_1  = models.CharField(max_length=60, blank=True)
    first_name_2  = models.CharField(max_length=60, blank=True)
    last_name_1   = models.CharField(max_length=60, blank=True)
    last_name_2   = models.CharField(max_length=60, blank=True)
    email         = models.EmailField(blank=True)
    deleted_at    = models.DateTimeField(null=True, blank=True)

    @property
    def full_name(self) -> str:
        parts = (self.first_name_1, self.first_name_2, self.last_name_1, self.last_name_2)
        return " ".join(p for p in parts if p)


class TeachingAssignment(models.Model):
    """One "distributivo": a teacher teaching a subject to a course in a period."""
    assignment_id = models.AutoField(primary_key=True)
    teacher       = models.ForeignKey(Teacher, on_delete=models.PROTECT, related_name="assignments")
    period        = models.ForeignKey(Period, on_delete=models.PROTECT, related_name="assignments")
    subject       = models.ForeignKey(Subject, on_delete=models.PROTECT, related_name="assignments", null=True, blank=True)
    course_key    = models.PositiveIntegerField(db_index=True)   # course offering the students enroll in
    deleted_at    = models.DateTimeField(null=True, blank=True)


class Student(models.Model):
    student_id = models.AutoField(primary_key=True)
    cedula     = models.CharField(max_length=20, db_index=True)
    full_name  = models.CharField(max_length=200, blank=True)
    email      = models.EmailField(blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)


class Enrollment(models.Model):
    enrollment_id = models.AutoField(primary_key=True)
    student       = models.ForeignKey(Student, on_delete=models.PROTECT, related_name="enrollments")
    course_key    = models.PositiveIntegerField(db_index=True)
