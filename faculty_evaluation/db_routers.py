from django.conf import settings

ACADEMIC_APP = "academic_records"


def _academic_alias():
    return getattr(settings, "ACADEMIC_DB_ALIAS", "academic")


class AcademicRecordsRouter:
    """
    Send academic_records models to the academic store and everything
    else to the evaluation store. Relations never cross the two.
    """

    def db_for_read(self, model, **hints):
        if model._meta.app_label == ACADEMIC_APP:
            return _academic_alias()
        return "default"

    def db_for_write(self, model, **hints):
        return self.db_for_read(model, **hints)

    def allow_relation(self, obj1, obj2, **hints):
        academic1 = obj1._meta.app_label == ACADEMIC_APP
        academic2 = obj2._meta.app_label == ACADEMIC_APP
        return academic1 == academic2

    def allow_migrate(self, db, app_label, model_name=None, **hints):
        if app_label == ACADEMIC_APP:
            return db == _academic_alias()
        return db == "default"
