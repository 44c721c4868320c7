"""
Teacher identity reconciliation.

The academic store keeps one internal teacher id per historical teaching
record, so one person (one cedula) can own several ids. Every aggregation
goes through this module to union those ids before touching responses.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from evaluation_engine.repositories.base import AcademicRecordRepository, TeacherRecord
from evaluation_engine.services.cache import LOOKUP, TTLCache, get_cache, make_key

logger = logging.getLogger(__name__)

MISSING_TEACHER_NAME = "Docente no encontrado"

_INVALID_NAME_TOKENS = {"null", "undefined", "none"}


def clean_name(value: Optional[str]) -> Optional[str]:
    """
    Normalize a person name for display: collapse whitespace, Title Case.

    Returns None for values that are not a usable name: empty, shorter
    than 2 characters, an e-mail address, or "null"/"undefined" text.
    """
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value)).strip()
    if len(text) < 2 or "@" in text or text.lower() in _INVALID_NAME_TOKENS:
        return None
    return text.title()


def display_name(value: Optional[str], placeholder: str = MISSING_TEACHER_NAME) -> str:
    return clean_name(value) or placeholder


class TeacherIdentityResolver:
    """Maps cedula -> all internal teacher ids, and teacher id -> cedula."""

    def __init__(self, academic: AcademicRecordRepository, cache: Optional[TTLCache] = None):
        self.academic = academic
        self.cache = cache or get_cache(LOOKUP)

    def teachers_for_cedula(self, cedula: str) -> List[TeacherRecord]:
        return self.cache.get_or_compute(
            make_key("teachers_by_cedula", cedula),
            lambda: self.academic.teachers_by_cedula(cedula),
        )

    def ids_for_cedula(self, cedula: str) -> Tuple[int, ...]:
        return tuple(t.teacher_id for t in self.teachers_for_cedula(cedula))

    def name_for_cedula(self, cedula: str) -> str:
        for t in self.teachers_for_cedula(cedula):
            name = clean_name(t.full_name)
            if name:
                return name
        return MISSING_TEACHER_NAME

    def group_by_cedula(self, teacher_ids: Iterable[int]) -> Dict[str, List[TeacherRecord]]:
        """
        Group known teacher ids by cedula. Ids the academic store does not
        know are skipped with a warning.
        """
        ids = set(teacher_ids)
        records = self.academic.teachers_for_ids(ids)
        grouped: Dict[str, List[TeacherRecord]] = {}
        for t in records:
            grouped.setdefault(t.cedula, []).append(t)

        unknown = ids - {t.teacher_id for t in records}
        if unknown:
            logger.warning("Skipping %d teacher id(s) unknown to the academic store: %s",
                           len(unknown), sorted(unknown))
        return grouped
