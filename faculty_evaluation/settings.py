"""
Django settings for the faculty evaluation engine.

Two databases are configured:
  • default   → local evaluation store (instances, responses, assignments,
                authority scores). System of record for the engine.
  • academic  → institutional academic record store (periods, teachers,
                teaching assignments, enrollments). Read-only for the engine.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes", "on")


def _database(prefix: str, default_name: str) -> dict:
    engine = os.getenv(f"{prefix}_ENGINE", "django.db.backends.sqlite3")
    name = os.getenv(f"{prefix}_NAME", str(BASE_DIR / default_name))
    db = {"ENGINE": engine, "NAME": name}
    if not engine.endswith("sqlite3"):
        db.update({
            "USER":     os.getenv(f"{prefix}_USER", ""),
            "PASSWORD": os.getenv(f"{prefix}_PASSWORD", ""),
            "HOST":     os.getenv(f"{prefix}_HOST", "localhost"),
            "PORT":     os.getenv(f"{prefix}_PORT", ""),
        })
    return db


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-faculty-evaluation-key")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "academic_records",
    "evaluation_engine",
]

# ── Databases ────────────────────────────────────────────────────────────
ACADEMIC_DB_ALIAS = "academic"

DATABASES = {
    "default": _database("EVALUATION_DB", "evaluations.sqlite3"),
    ACADEMIC_DB_ALIAS: _database("ACADEMIC_DB", "academic.sqlite3"),
}
DATABASE_ROUTERS = ["faculty_evaluation.db_routers.AcademicRecordsRouter"]

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Locale / time ────────────────────────────────────────────────────────
LANGUAGE_CODE = "es-ec"
TIME_ZONE = os.getenv("TIME_ZONE", "America/Guayaquil")
USE_I18N = True
USE_TZ = True

# ── Email (notification fan-out) ─────────────────────────────────────────
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", True)
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "evaluacion@localhost")

# ── Engine ───────────────────────────────────────────────────────────────
EVALUATION_ENGINE = {
    # TTL class -> seconds
    "CACHE_TTL_SECONDS": {
        "dashboard": int(os.getenv("EVAL_DASHBOARD_CACHE_TTL", "20")),
        "lookup":    int(os.getenv("EVAL_LOOKUP_CACHE_TTL", "300")),
    },
    "NOTIFICATION_CONCURRENCY": int(os.getenv("EVAL_NOTIFICATION_CONCURRENCY", "5")),
    "NOTIFICATION_SITE_URL": os.getenv("EVAL_SITE_URL", "http://localhost:8000/"),
    "HISTORY_LIMIT": 6,
}

# ── Logging ──────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "standard"},
    },
    "loggers": {
        "evaluation_engine": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "academic_records":  {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
