from evaluation_engine.repositories.base import (
    AcademicRecordRepository, DuplicateRecordError, EvaluationStoreRepository
)

__all__ = ["AcademicRecordRepository", "DuplicateRecordError", "EvaluationStoreRepository"]
