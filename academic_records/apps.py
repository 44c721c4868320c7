from django.apps import AppConfig


class AcademicRecordsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'academic_records'
    verbose_name = "Academic records (read-only)"
