"""Data models for student records, parsed queries and retrieval output."""

from .context import (
    AcademicAnalysis,
    AssessmentEntry,
    AssessmentHighlight,
    AssessmentSummary,
    AttendanceAnalysis,
    AttendanceDay,
    AttendanceSummary,
    BehaviorAnalysis,
    BehaviorTrend,
    ContextMetadata,
    ContextSummary,
    DisciplineSummary,
    FlagHit,
    GradePoint,
    GradeSummary,
    IncidentSummary,
    MonthlyAttendance,
    ObservationNoteSummary,
    ObservationSessionSummary,
    ProfileRiskLevel,
    ProfileSummary,
    RecentAttendance,
    RiskAssessment,
    RiskCategories,
    RiskLevel,
    StudentDataContext,
    StudentEntry,
    StudentRiskProfile,
    SubjectGrades,
    SubjectPerformance,
    TrendDirection,
)
from .query import ParsedQuery, QueryFocus, QueryIntent
from .records import (
    AssessmentFamily,
    AssessmentRecord,
    AttendanceRecord,
    AttendanceStatus,
    DisciplineRecord,
    FlagCondition,
    FlagRule,
    GradeEntry,
    GradeRecord,
    NoteCategory,
    ObservationNote,
    ObservationSession,
    Student,
    StudentRecordBundle,
)

__all__ = [
    # Records
    "Student",
    "AttendanceRecord",
    "AttendanceStatus",
    "GradeEntry",
    "GradeRecord",
    "AssessmentRecord",
    "AssessmentFamily",
    "DisciplineRecord",
    "ObservationSession",
    "ObservationNote",
    "NoteCategory",
    "FlagRule",
    "FlagCondition",
    "StudentRecordBundle",
    # Query
    "ParsedQuery",
    "QueryIntent",
    "QueryFocus",
    # Context
    "StudentDataContext",
    "ContextMetadata",
    "ContextSummary",
    "RiskCategories",
    "StudentEntry",
    "AttendanceSummary",
    "AttendanceDay",
    "RecentAttendance",
    "MonthlyAttendance",
    "GradeSummary",
    "SubjectGrades",
    "GradePoint",
    "AssessmentSummary",
    "AssessmentEntry",
    "DisciplineSummary",
    "IncidentSummary",
    "ObservationSessionSummary",
    "ObservationNoteSummary",
    "FlagHit",
    "StudentRiskProfile",
    "AttendanceAnalysis",
    "AcademicAnalysis",
    "SubjectPerformance",
    "AssessmentHighlight",
    "BehaviorAnalysis",
    "RiskAssessment",
    "ProfileSummary",
    "TrendDirection",
    "BehaviorTrend",
    "RiskLevel",
    "ProfileRiskLevel",
]
