from django.apps import AppConfig


class EvaluationEngineConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'evaluation_engine'
