"""
Output schemas for the retrieval pipeline.

StudentDataContext is the contract boundary with the downstream language model
client: per-source summaries, rule-evaluated flags, roll-up statistics and, in
deep mode, full per-student risk profiles.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .query import ParsedQuery, QueryFocus


class TrendDirection(str, Enum):
    """Trend direction for attendance and grades."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class BehaviorTrend(str, Enum):
    """Trend direction for discipline incidents."""
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"


class RiskLevel(str, Enum):
    """Coarse composite risk used in the top-level summary."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProfileRiskLevel(str, Enum):
    """Risk bands used by the deep-mode profiler."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class StudentEntry(BaseModel):
    """A candidate student. The display name is the stable identifier."""
    id: str
    name: str
    student_number: Optional[str] = None
    grade: str = ""
    class_name: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[date] = None


# Attendance

class AttendanceDay(BaseModel):
    date: date
    status: str
    attendance_code: str
    day_of_week: str  # "Monday"
    month: str  # "September 2024"


class RecentAttendance(BaseModel):
    date: date
    status: str
    attendance_code: Optional[str] = None


class MonthlyAttendance(BaseModel):
    month: str  # "Sep 2024"
    rate: float
    present: int
    absent: int


class AttendanceSummary(BaseModel):
    """Attendance roll-up for one student with at least one record."""
    student_id: str
    student_name: str
    rate: float  # present / total * 100
    present_days: int
    total_days: int
    absent_days: int
    tardy_days: int
    chronic_absenteeism: bool
    recent_records: List[RecentAttendance] = []
    monthly_breakdown: List[MonthlyAttendance] = []  # Oldest month first
    all_attendance_records: List[AttendanceDay] = []  # Newest first


# Grades

class GradePoint(BaseModel):
    period: str
    grade: float


class SubjectGrades(BaseModel):
    subject: str
    grade: float  # Mean of parsed grades
    recent_grades: List[GradePoint] = []
    all_grades: List[GradePoint] = []  # Newest first
    lowest_grade: float
    highest_grade: float
    grade_count: int
    passing_grade_count: int
    failing_grade_count: int


class GradeSummary(BaseModel):
    """Grade roll-up for one student with at least one parsable grade."""
    student_id: str
    student_name: str
    average_grade: float
    grade_count: int
    subjects: List[SubjectGrades] = []
    gpa_scale: float
    letter_grade: str
    trend: TrendDirection = TrendDirection.STABLE


# Assessments

class AssessmentEntry(BaseModel):
    test_date: date
    score: Optional[float] = None
    percentile: Optional[float] = None
    grade_level: Optional[str] = None
    level: Optional[str] = None
    performance_level: Optional[str] = None
    placement: Optional[str] = None
    risk_level: Optional[str] = None
    domain_scores: Dict[str, Any] = {}


class AssessmentSummary(BaseModel):
    """Assessment administrations partitioned by test family, newest first."""
    student_id: str
    student_name: str
    iready_reading: List[AssessmentEntry] = []
    iready_math: List[AssessmentEntry] = []
    fast_ela: List[AssessmentEntry] = []
    fast_math: List[AssessmentEntry] = []
    fast_science: List[AssessmentEntry] = []
    fast_writing: List[AssessmentEntry] = []

    def buckets(self) -> Dict[str, List[AssessmentEntry]]:
        return {
            "iready_reading": self.iready_reading,
            "iready_math": self.iready_math,
            "fast_ela": self.fast_ela,
            "fast_math": self.fast_math,
            "fast_science": self.fast_science,
            "fast_writing": self.fast_writing,
        }


# Discipline

class IncidentSummary(BaseModel):
    incident_date: Optional[date] = None
    type: str
    description: str
    severity: str
    action: str
    location: str
    time_of_day: str
    staff_member: str
    follow_up: str
    outcome: str


class DisciplineSummary(BaseModel):
    """Discipline roll-up for one student with at least one incident."""
    student_id: str
    student_name: str
    incident_count: int
    incidents: List[IncidentSummary] = []  # Newest first
    behavior_trend: BehaviorTrend = BehaviorTrend.STABLE
    incidents_by_month: Dict[str, int] = {}
    most_common_incident_type: str = "None"
    average_incidents_per_month: float = 0.0


# Observations

class ObservationSessionSummary(BaseModel):
    observation_id: str
    homeroom: str
    teacher_name: str = ""
    observation_timestamp: Optional[datetime] = None
    class_engagement_score: Optional[float] = None
    class_engagement_notes: str = ""
    teacher_feedback_notes: str = ""
    teacher_score_planning: Optional[float] = None
    teacher_score_delivery: Optional[float] = None
    teacher_score_environment: Optional[float] = None
    teacher_score_feedback: Optional[float] = None
    created_by: str = ""


class ObservationNoteSummary(BaseModel):
    note_id: str
    observation_id: Optional[str] = None
    student_id: str
    student_name: str
    homeroom: str = ""
    note_timestamp: Optional[datetime] = None
    note_text: str
    category: Optional[str] = None
    created_by: str = ""


# Flags and summary

class FlagHit(BaseModel):
    """A flag rule that fired for one student."""
    student_id: str
    student_name: str
    flag_name: str
    category: str
    color: str
    message: str
    is_active: bool = True


class RiskCategories(BaseModel):
    high_risk: int = 0
    medium_risk: int = 0
    low_risk: int = 0


class ContextSummary(BaseModel):
    """Roll-up statistics over the candidate set."""
    total_students: int = 0
    average_attendance: float = 0.0
    average_grade: float = 0.0
    students_with_flags: int = 0
    risk_categories: RiskCategories = Field(default_factory=RiskCategories)
    query_type: str = "analysis"  # individual / group / analysis
    focused_students: List[str] = []


# Deep-mode profiles

class AttendanceAnalysis(BaseModel):
    attendance_rate: float = 0.0
    total_days: int = 0
    present_days: int = 0
    absent_days: int = 0
    tardy_days: int = 0
    excused_absences: int = 0
    consecutive_absences: int = 0
    trend: TrendDirection = TrendDirection.STABLE
    monthly_breakdown: List[MonthlyAttendance] = []


class SubjectPerformance(BaseModel):
    subject: str
    average: float
    grade_count: int
    trend: TrendDirection = TrendDirection.STABLE


class AcademicAnalysis(BaseModel):
    overall_average: float = 0.0
    grade_count: int = 0
    passing_percentage: float = 0.0
    subjects: List[SubjectPerformance] = []
    trend: TrendDirection = TrendDirection.STABLE


class AssessmentHighlight(BaseModel):
    family: str
    test_date: date
    score: Optional[float] = None
    percentile: Optional[float] = None
    risk_level: Optional[str] = None


class BehaviorAnalysis(BaseModel):
    incident_count: int = 0
    average_severity: float = 0.0
    average_risk_score: float = 0.0
    threat_assessments: int = 0
    incident_types: Dict[str, int] = {}
    trend: BehaviorTrend = BehaviorTrend.STABLE


class RiskAssessment(BaseModel):
    overall_risk_level: ProfileRiskLevel = ProfileRiskLevel.LOW
    attendance_risk: ProfileRiskLevel = ProfileRiskLevel.LOW
    academic_risk: ProfileRiskLevel = ProfileRiskLevel.LOW
    behavior_risk: ProfileRiskLevel = ProfileRiskLevel.LOW
    risk_factors: List[str] = []
    protective_factors: List[str] = []
    recommended_interventions: List[str] = []


class ProfileSummary(BaseModel):
    strengths: List[str] = []
    concerns: List[str] = []
    priorities: List[str] = []


class StudentRiskProfile(BaseModel):
    """Full per-student profile built in deep mode."""
    student: StudentEntry
    attendance: AttendanceAnalysis = Field(default_factory=AttendanceAnalysis)
    academics: AcademicAnalysis = Field(default_factory=AcademicAnalysis)
    assessments: List[AssessmentHighlight] = []
    behavior: BehaviorAnalysis = Field(default_factory=BehaviorAnalysis)
    risk: RiskAssessment = Field(default_factory=RiskAssessment)
    summary: ProfileSummary = Field(default_factory=ProfileSummary)


class ContextMetadata(BaseModel):
    question: str = ""
    parsed_query: Optional[ParsedQuery] = None
    ranking_override: bool = False
    budget_policy: Optional[QueryFocus] = None
    retrieved_at: datetime = Field(default_factory=datetime.now)


class StudentDataContext(BaseModel):
    """Aggregated, derived and budgeted payload handed to the language model client."""
    students: List[StudentEntry] = []
    attendance: List[AttendanceSummary] = []
    grades: List[GradeSummary] = []
    assessments: List[AssessmentSummary] = []
    discipline: List[DisciplineSummary] = []
    observation_sessions: List[ObservationSessionSummary] = []
    observation_notes: List[ObservationNoteSummary] = []
    flags: List[FlagHit] = []
    summary: ContextSummary = Field(default_factory=ContextSummary)
    profiles: List[StudentRiskProfile] = []
    metadata: ContextMetadata = Field(default_factory=ContextMetadata)

    @classmethod
    def empty(cls, question: str = "") -> "StudentDataContext":
        """Well-formed context with every array empty and zeroed statistics."""
        return cls(metadata=ContextMetadata(question=question))

    def serialized_size(self) -> int:
        """Size of the JSON payload handed downstream, excluding metadata."""
        return len(self.model_dump_json(exclude={"metadata"}))
