"""
Record store models, one per source table.

These Pydantic models map to the per-entity student tables:
- students
- attendance
- grades
- assessments
- discipline
- observation_sessions / observation_notes
- flag_rules

Every record carries the owning student's stable identifier.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AttendanceStatus(str, Enum):
    """Daily attendance status."""
    PRESENT = "present"
    ABSENT = "absent"
    TARDY = "tardy"


class AssessmentFamily(str, Enum):
    """Standardized test families, diagnostic and standards-based."""
    IREADY_READING = "iReady Reading"
    IREADY_MATH = "iReady Math"
    FAST_ELA = "FAST ELA"
    FAST_MATH = "FAST Math"
    FAST_SCIENCE = "FAST Science"
    FAST_WRITING = "FAST Writing"


class NoteCategory(str, Enum):
    """Category tag on a classroom-observation note."""
    ENGAGEMENT = "engagement"
    BEHAVIOR = "behavior"
    ACADEMIC = "academic"
    STRATEGY = "strategy"
    OTHER = "other"


class FlagCondition(str, Enum):
    """Comparison direction of a flag rule."""
    BELOW = "below"
    ABOVE = "above"
    EQUALS = "equals"


class Student(BaseModel):
    """Maps to the students table."""
    model_config = ConfigDict(from_attributes=True)

    id: str  # Stable opaque identifier
    student_number: Optional[str] = None  # District ID
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    grade: str = ""
    class_name: Optional[str] = None  # Class/teacher label
    homeroom: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[date] = None

    @field_validator("grade", mode="before")
    @classmethod
    def normalize_grade(cls, v):
        """Grades are compared as tokens: 3, "03" and "3" are the same grade."""
        if v is None:
            return ""
        token = str(v).strip()
        if token.lower() in ("k", "kg", "kindergarten"):
            return "K"
        if token.isdigit():
            return str(int(token))
        return token

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def classrooms(self) -> List[str]:
        """Class and homeroom labels an observation session may be keyed by."""
        return [label for label in (self.class_name, self.homeroom) if label]


class AttendanceRecord(BaseModel):
    """Maps to the attendance table, one row per (student, date)."""
    student_id: str
    date: date
    status: AttendanceStatus
    attendance_code: Optional[str] = None
    is_excused: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return v.lower() if isinstance(v, str) else v


class GradeEntry(BaseModel):
    """One grading-period entry, e.g. {"period": "Quarter 1", "grade": "80 S"}."""
    period: Optional[str] = None
    grade: Optional[str] = None

    @field_validator("grade", mode="before")
    @classmethod
    def stringify_grade(cls, v):
        if v is None:
            return v
        return str(v)


class GradeRecord(BaseModel):
    """Maps to the grades table: one course with its ordered grading periods."""
    student_id: str
    course: Optional[str] = None
    grades: List[GradeEntry] = []


class AssessmentRecord(BaseModel):
    """
    Maps to the assessments table.

    Family-specific sub-scores (phonics, geometry, readingComprehension, ...) are
    kept verbatim in domain_scores; no cross-family normalization is attempted.
    """
    student_id: str
    source: str  # Test-family label, e.g. "iReady Reading"
    test_date: date
    score: Optional[float] = None
    percentile: Optional[float] = None
    grade_level: Optional[str] = None
    level: Optional[str] = None
    performance_level: Optional[str] = None
    placement: Optional[str] = None
    risk_level: Optional[str] = None
    domain_scores: Dict[str, Any] = {}

    @property
    def family(self) -> Optional[AssessmentFamily]:
        """Resolved test family, or None for families this engine does not bucket."""
        normalized = self.source.replace("-", "").strip().lower()
        for family in AssessmentFamily:
            if family.value.lower() == normalized:
                return family
        return None


class DisciplineRecord(BaseModel):
    """Maps to the discipline table, one row per incident."""
    student_id: str
    incident_date: Optional[date] = None
    incident_type: Optional[str] = None
    description: Optional[str] = None
    severity: Optional[str] = None
    severity_level: Optional[float] = None
    location: Optional[str] = None
    time_of_incident: Optional[str] = None
    action: Optional[str] = None
    reporting_staff: Optional[str] = None
    follow_up: Optional[str] = None
    outcome: Optional[str] = None
    risk_score: Optional[float] = None
    threat_assessment: bool = False


class ObservationSession(BaseModel):
    """Maps to the observation_sessions table; one session covers a whole classroom."""
    observation_id: str
    homeroom: str
    teacher_name: Optional[str] = None
    observation_timestamp: Optional[datetime] = None
    class_engagement_score: Optional[float] = None
    class_engagement_notes: Optional[str] = None
    teacher_feedback_notes: Optional[str] = None
    teacher_score_planning: Optional[float] = None
    teacher_score_delivery: Optional[float] = None
    teacher_score_environment: Optional[float] = None
    teacher_score_feedback: Optional[float] = None
    created_by: Optional[str] = None


class ObservationNote(BaseModel):
    """Maps to the observation_notes table."""
    note_id: str
    observation_id: Optional[str] = None
    student_id: str
    homeroom: Optional[str] = None
    note_timestamp: Optional[datetime] = None
    note_text: str = ""
    category: NoteCategory = NoteCategory.OTHER
    created_by: Optional[str] = None


class FlagRule(BaseModel):
    """
    Externally configured flag rule, evaluated per student at query time.

    Accepts both the flat form ({"threshold": 90, "condition": "below"}) and the
    nested form used by the flagging screens ({"criteria": {"threshold": 90,
    "condition": "below"}}).
    """
    id: Optional[str] = None
    name: str
    category: str  # attendance, grades, discipline, ...
    threshold: float
    condition: FlagCondition = FlagCondition.BELOW
    color: str = "red"
    is_active: bool = True
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_criteria(cls, data):
        """Lift threshold/condition out of a nested criteria block."""
        if isinstance(data, dict) and isinstance(data.get("criteria"), dict):
            data = dict(data)
            criteria = data.pop("criteria")
            for key in ("threshold", "condition"):
                if key in criteria and key not in data:
                    data[key] = criteria[key]
        return data

    @field_validator("category", "condition", mode="before")
    @classmethod
    def lowercase(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return v.lower() or "red"


class StudentRecordBundle(BaseModel):
    """Every source's records for a set of students, as loaded from a data file."""
    students: List[Student] = Field(default_factory=list)
    attendance: List[AttendanceRecord] = Field(default_factory=list)
    grades: List[GradeRecord] = Field(default_factory=list)
    assessments: List[AssessmentRecord] = Field(default_factory=list)
    discipline: List[DisciplineRecord] = Field(default_factory=list)
    observation_sessions: List[ObservationSession] = Field(default_factory=list)
    observation_notes: List[ObservationNote] = Field(default_factory=list)
    flag_rules: List[FlagRule] = Field(default_factory=list)
