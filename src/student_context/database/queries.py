"""
PostgreSQL implementation of the record store contract.

Every per-source lookup is a single `student_id = ANY($1::text[])` query so the
aggregator can fan out one query per source and group rows client-side.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import asyncpg

from ..models.records import (
    AssessmentRecord,
    AttendanceRecord,
    DisciplineRecord,
    GradeRecord,
    ObservationNote,
    ObservationSession,
    Student,
)
from .connection import DatabasePool, create_database_config
from .store import RecordStore, RecordStoreError


logger = logging.getLogger(__name__)


def _parse_json(value: Any, default: Any) -> Any:
    """Decode a JSONB column that may arrive as text."""
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"Could not parse JSON column value: {value[:80]}")
            return default
    return value


class PostgresRecordStore(RecordStore):
    """Record store backed by the public.* student tables."""

    def __init__(self, pool: DatabasePool):
        self.pool = pool

    async def _fetch(self, query: str, *args) -> List[asyncpg.Record]:
        try:
            return await self.pool.execute_query(query, *args)
        except RecordStoreError:
            raise
        except Exception as e:
            raise RecordStoreError(f"Record store query failed: {e}") from e

    async def get_students(self) -> List[Student]:
        query = """
        SELECT id, student_number, first_name, last_name, grade, class_name,
               homeroom, gender, birth_date
        FROM public.students
        ORDER BY id
        """
        rows = await self._fetch(query)
        return [Student.model_validate(dict(row)) for row in rows]

    async def get_students_by_ids(self, student_ids: Sequence[str]) -> List[Student]:
        if not student_ids:
            return []
        query = """
        SELECT id, student_number, first_name, last_name, grade, class_name,
               homeroom, gender, birth_date
        FROM public.students
        WHERE id = ANY($1::text[])
        ORDER BY id
        """
        rows = await self._fetch(query, list(student_ids))
        return [Student.model_validate(dict(row)) for row in rows]

    async def get_attendance(self, student_ids: Sequence[str]) -> List[AttendanceRecord]:
        if not student_ids:
            return []
        query = """
        SELECT student_id, date, status, attendance_code, is_excused
        FROM public.attendance
        WHERE student_id = ANY($1::text[])
        ORDER BY student_id, date
        """
        rows = await self._fetch(query, list(student_ids))
        return [AttendanceRecord.model_validate(dict(row)) for row in rows]

    async def get_grades(self, student_ids: Sequence[str]) -> List[GradeRecord]:
        if not student_ids:
            return []
        query = """
        SELECT student_id, course, grades
        FROM public.grades
        WHERE student_id = ANY($1::text[])
        ORDER BY student_id, course
        """
        rows = await self._fetch(query, list(student_ids))

        records = []
        for row in rows:
            data = dict(row)
            data["grades"] = _parse_json(data.get("grades"), [])
            records.append(GradeRecord.model_validate(data))
        return records

    async def get_assessments(self, student_ids: Sequence[str]) -> List[AssessmentRecord]:
        if not student_ids:
            return []
        query = """
        SELECT student_id, source, test_date, score, percentile, grade_level, level,
               performance_level, placement, risk_level, domain_scores
        FROM public.assessments
        WHERE student_id = ANY($1::text[])
        ORDER BY student_id, test_date DESC
        """
        rows = await self._fetch(query, list(student_ids))

        records = []
        for row in rows:
            data = dict(row)
            data["domain_scores"] = _parse_json(data.get("domain_scores"), {})
            records.append(AssessmentRecord.model_validate(data))
        return records

    async def get_discipline(self, student_ids: Sequence[str]) -> List[DisciplineRecord]:
        if not student_ids:
            return []
        query = """
        SELECT student_id, incident_date, incident_type, description, severity,
               severity_level, location, time_of_incident, action, reporting_staff,
               follow_up, outcome, risk_score, threat_assessment
        FROM public.discipline
        WHERE student_id = ANY($1::text[])
        ORDER BY student_id, incident_date DESC
        """
        rows = await self._fetch(query, list(student_ids))
        return [DisciplineRecord.model_validate(self._drop_nulls(dict(row))) for row in rows]

    async def get_observation_sessions(self, homerooms: Sequence[str]) -> List[ObservationSession]:
        if not homerooms:
            return []
        query = """
        SELECT observation_id, homeroom, teacher_name, observation_timestamp,
               class_engagement_score, class_engagement_notes, teacher_feedback_notes,
               teacher_score_planning, teacher_score_delivery, teacher_score_environment,
               teacher_score_feedback, created_by
        FROM public.observation_sessions
        WHERE homeroom = ANY($1::text[])
        ORDER BY observation_timestamp DESC
        """
        rows = await self._fetch(query, list(homerooms))
        return [ObservationSession.model_validate(dict(row)) for row in rows]

    async def get_observation_notes(self, student_ids: Sequence[str]) -> List[ObservationNote]:
        if not student_ids:
            return []
        query = """
        SELECT note_id, observation_id, student_id, homeroom, note_timestamp,
               note_text, category, created_by
        FROM public.observation_notes
        WHERE student_id = ANY($1::text[])
        ORDER BY note_timestamp DESC
        """
        rows = await self._fetch(query, list(student_ids))
        return [ObservationNote.model_validate(self._drop_nulls(dict(row))) for row in rows]

    async def roster_version(self) -> str:
        query = "SELECT count(*) AS total, max(updated_at)::text AS updated FROM public.students"
        try:
            row = await self.pool.execute_query_one(query)
        except Exception as e:
            raise RecordStoreError(f"Record store query failed: {e}") from e
        if row is None:
            return "0:"
        return f"{row['total']}:{row['updated'] or ''}"

    @staticmethod
    def _drop_nulls(data: Dict[str, Any]) -> Dict[str, Any]:
        """Let model defaults apply where a nullable column has no value."""
        return {key: value for key, value in data.items() if value is not None}


async def create_postgres_store(pool: Optional[DatabasePool] = None) -> PostgresRecordStore:
    """Initialize a pool from settings (unless given) and wrap it in a store."""
    if pool is None:
        pool = DatabasePool(create_database_config())
    await pool.initialize()
    return PostgresRecordStore(pool)
