"""
Record store contract and in-memory implementation.

The retrieval engine only needs three access patterns from a store: all
records for an entity, all records whose student id is in a set, and a full
roster scan for fallbacks. Flag rules come from a separate source so they can
live outside the store (a YAML file, an admin screen, ...).
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml
from pydantic import ValidationError

from ..models.records import (
    AssessmentRecord,
    AttendanceRecord,
    DisciplineRecord,
    FlagRule,
    GradeRecord,
    ObservationNote,
    ObservationSession,
    Student,
    StudentRecordBundle,
)


logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """Base error for record store failures."""
    pass


def parse_record_bundle(data: Dict[str, Any]) -> StudentRecordBundle:
    """Validate a mapping with one top-level array per source."""
    try:
        return StudentRecordBundle.model_validate(data)
    except ValidationError as e:
        raise RecordStoreError(f"Invalid student data: {e}") from e


def load_record_bundle(path: Union[str, Path]) -> StudentRecordBundle:
    """Read a JSON data file (students, attendance, grades, ..., flag_rules)."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RecordStoreError(f"Could not read data file {path}: {e}") from e

    bundle = parse_record_bundle(data)
    logger.info(f"Loaded {len(bundle.students)} students from {path}")
    return bundle


class RecordStore(ABC):
    """Read-only access to per-student source tables, keyed by stable student id."""

    @abstractmethod
    async def get_students(self) -> List[Student]:
        """Full roster scan."""
        pass

    @abstractmethod
    async def get_students_by_ids(self, student_ids: Sequence[str]) -> List[Student]:
        pass

    @abstractmethod
    async def get_attendance(self, student_ids: Sequence[str]) -> List[AttendanceRecord]:
        pass

    @abstractmethod
    async def get_grades(self, student_ids: Sequence[str]) -> List[GradeRecord]:
        pass

    @abstractmethod
    async def get_assessments(self, student_ids: Sequence[str]) -> List[AssessmentRecord]:
        pass

    @abstractmethod
    async def get_discipline(self, student_ids: Sequence[str]) -> List[DisciplineRecord]:
        pass

    @abstractmethod
    async def get_observation_sessions(self, homerooms: Sequence[str]) -> List[ObservationSession]:
        """Sessions recorded for any of the given homerooms/classes."""
        pass

    @abstractmethod
    async def get_observation_notes(self, student_ids: Sequence[str]) -> List[ObservationNote]:
        pass

    async def roster_version(self) -> str:
        """Opaque token that changes whenever the roster changes."""
        students = await self.get_students()
        return f"{len(students)}:{','.join(sorted(s.id for s in students))}"


class InMemoryRecordStore(RecordStore):
    """
    Record store over in-memory lists.

    Backs the CLI's --data files, the demo script and the test suite. Records
    are stored exactly as given; every lookup returns records in insertion order.
    """

    def __init__(
        self,
        students: Optional[Iterable[Student]] = None,
        attendance: Optional[Iterable[AttendanceRecord]] = None,
        grades: Optional[Iterable[GradeRecord]] = None,
        assessments: Optional[Iterable[AssessmentRecord]] = None,
        discipline: Optional[Iterable[DisciplineRecord]] = None,
        observation_sessions: Optional[Iterable[ObservationSession]] = None,
        observation_notes: Optional[Iterable[ObservationNote]] = None,
    ):
        self.students = list(students or [])
        self.attendance = list(attendance or [])
        self.grades = list(grades or [])
        self.assessments = list(assessments or [])
        self.discipline = list(discipline or [])
        self.observation_sessions = list(observation_sessions or [])
        self.observation_notes = list(observation_notes or [])
        self._version = 0

    @classmethod
    def from_bundle(cls, bundle: StudentRecordBundle) -> "InMemoryRecordStore":
        return cls(
            students=bundle.students,
            attendance=bundle.attendance,
            grades=bundle.grades,
            assessments=bundle.assessments,
            discipline=bundle.discipline,
            observation_sessions=bundle.observation_sessions,
            observation_notes=bundle.observation_notes,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryRecordStore":
        return cls.from_bundle(parse_record_bundle(data))

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryRecordStore":
        """Load a store from a JSON file with one top-level array per source."""
        return cls.from_bundle(load_record_bundle(path))

    def add_students(self, students: Iterable[Student]) -> None:
        """Append students (a roster re-import); bumps the roster version."""
        self.students.extend(students)
        self._version += 1

    async def roster_version(self) -> str:
        return f"{self._version}:{len(self.students)}"

    @staticmethod
    def _select(records: List[Any], student_ids: Sequence[str]) -> List[Any]:
        wanted = set(student_ids)
        return [r for r in records if r.student_id in wanted]

    async def get_students(self) -> List[Student]:
        return list(self.students)

    async def get_students_by_ids(self, student_ids: Sequence[str]) -> List[Student]:
        wanted = set(student_ids)
        return [s for s in self.students if s.id in wanted]

    async def get_attendance(self, student_ids: Sequence[str]) -> List[AttendanceRecord]:
        return self._select(self.attendance, student_ids)

    async def get_grades(self, student_ids: Sequence[str]) -> List[GradeRecord]:
        return self._select(self.grades, student_ids)

    async def get_assessments(self, student_ids: Sequence[str]) -> List[AssessmentRecord]:
        return self._select(self.assessments, student_ids)

    async def get_discipline(self, student_ids: Sequence[str]) -> List[DisciplineRecord]:
        return self._select(self.discipline, student_ids)

    async def get_observation_sessions(self, homerooms: Sequence[str]) -> List[ObservationSession]:
        wanted = set(homerooms)
        return [s for s in self.observation_sessions if s.homeroom in wanted]

    async def get_observation_notes(self, student_ids: Sequence[str]) -> List[ObservationNote]:
        return self._select(self.observation_notes, student_ids)


class FlagRuleSource(ABC):
    """Supplies flag rules independently of the record store."""

    @abstractmethod
    async def get_rules(self) -> List[FlagRule]:
        pass

    async def get_active_rules(self) -> List[FlagRule]:
        return [rule for rule in await self.get_rules() if rule.is_active]


class StaticFlagRuleSource(FlagRuleSource):
    """Flag rules supplied inline."""

    def __init__(self, rules: Optional[Iterable[Union[FlagRule, Dict[str, Any]]]] = None):
        self.rules = [r if isinstance(r, FlagRule) else FlagRule.model_validate(r) for r in (rules or [])]

    async def get_rules(self) -> List[FlagRule]:
        return list(self.rules)


class FileFlagRuleSource(FlagRuleSource):
    """
    Flag rules loaded from a YAML or JSON file.

    The file holds either a list of rules or a mapping with a "rules" key.
    The file is re-read on every call so edits apply to the next question.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def get_rules(self) -> List[FlagRule]:
        try:
            text = self.path.read_text(encoding="utf-8")
            if self.path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise RecordStoreError(f"Could not read flag rules from {self.path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("rules", [])
        if not isinstance(data, list):
            raise RecordStoreError(f"Flag rule file {self.path} must contain a list of rules")

        try:
            rules = [FlagRule.model_validate(item) for item in data]
        except ValidationError as e:
            raise RecordStoreError(f"Invalid flag rule in {self.path}: {e}") from e

        logger.debug(f"Loaded {len(rules)} flag rules from {self.path}")
        return rules
