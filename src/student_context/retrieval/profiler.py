"""
Deep-mode risk profiler.

Builds a full per-student profile for a small, explicitly named set of
students: attendance, academic, assessment and behavior analyses, banded risk
per dimension, and the factor/intervention lists those bands imply.
"""

import asyncio
import logging
from collections import Counter
from datetime import date
from typing import Dict, List, Optional, Sequence

from ..config import RetrievalSettings
from ..database.store import RecordStore
from ..models.context import (
    AcademicAnalysis,
    AssessmentHighlight,
    AttendanceAnalysis,
    BehaviorAnalysis,
    BehaviorTrend,
    ProfileRiskLevel,
    ProfileSummary,
    RiskAssessment,
    StudentRiskProfile,
    SubjectPerformance,
    TrendDirection,
)
from ..models.records import (
    AssessmentFamily,
    AssessmentRecord,
    AttendanceRecord,
    AttendanceStatus,
    DisciplineRecord,
    GradeRecord,
    Student,
)
from . import metrics
from .aggregator import group_by_student, monthly_breakdown, parsed_grades, student_entry


logger = logging.getLogger(__name__)

HIGH_RISK_LABEL = "High Risk"
LOW_RISK_LABEL = "Low Risk"
TREND_WINDOW_RECORDS = 30


def analyze_attendance(records: Sequence[AttendanceRecord]) -> AttendanceAnalysis:
    if not records:
        return AttendanceAnalysis()

    ordered = sorted(records, key=lambda r: r.date)
    total = len(ordered)
    present = sum(1 for r in ordered if r.status == AttendanceStatus.PRESENT)

    def present_rate(window: Sequence[AttendanceRecord]) -> float:
        return sum(1 for r in window if r.status == AttendanceStatus.PRESENT) / len(window) * 100

    earlier_rate = present_rate(ordered[:TREND_WINDOW_RECORDS])
    recent_rate = present_rate(ordered[-TREND_WINDOW_RECORDS:])
    trend = TrendDirection.STABLE
    if recent_rate > earlier_rate + 5:
        trend = TrendDirection.IMPROVING
    elif recent_rate < earlier_rate - 5:
        trend = TrendDirection.DECLINING

    consecutive = 0
    for record in reversed(ordered):
        if record.status != AttendanceStatus.ABSENT:
            break
        consecutive += 1

    return AttendanceAnalysis(
        attendance_rate=round(present / total * 100, 2),
        total_days=total,
        present_days=present,
        absent_days=sum(1 for r in ordered if r.status == AttendanceStatus.ABSENT),
        tardy_days=sum(1 for r in ordered if r.status == AttendanceStatus.TARDY),
        excused_absences=sum(1 for r in ordered if r.is_excused),
        consecutive_absences=consecutive,
        trend=trend,
        monthly_breakdown=monthly_breakdown(ordered),
    )


def analyze_academics(records: Sequence[GradeRecord], settings: RetrievalSettings) -> AcademicAnalysis:
    values = parsed_grades(records)
    if not values:
        return AcademicAnalysis()

    by_subject: Dict[str, List[float]] = {}
    for subject, _, value in values:
        by_subject.setdefault(subject, []).append(value)

    subjects = [
        SubjectPerformance(
            subject=subject,
            average=round(sum(grades) / len(grades), 2),
            grade_count=len(grades),
            trend=metrics.half_split_trend(grades, gap=3.0),
        )
        for subject, grades in by_subject.items()
    ]

    improving = sum(1 for s in subjects if s.trend == TrendDirection.IMPROVING)
    declining = sum(1 for s in subjects if s.trend == TrendDirection.DECLINING)
    trend = TrendDirection.STABLE
    if improving > declining:
        trend = TrendDirection.IMPROVING
    elif declining > improving:
        trend = TrendDirection.DECLINING

    all_values = [value for _, _, value in values]
    passing = sum(1 for v in all_values if v >= settings.passing_grade)
    return AcademicAnalysis(
        overall_average=round(sum(all_values) / len(all_values), 2),
        grade_count=len(all_values),
        passing_percentage=round(passing / len(all_values) * 100, 2),
        subjects=subjects,
        trend=trend,
    )


def assessment_highlights(records: Sequence[AssessmentRecord]) -> List[AssessmentHighlight]:
    """Latest administration per family, in family order."""
    latest: Dict[AssessmentFamily, AssessmentRecord] = {}
    for record in records:
        family = record.family
        if family is None:
            continue
        if family not in latest or record.test_date > latest[family].test_date:
            latest[family] = record

    return [
        AssessmentHighlight(
            family=family.value,
            test_date=latest[family].test_date,
            score=latest[family].score,
            percentile=latest[family].percentile,
            risk_level=latest[family].risk_level,
        )
        for family in AssessmentFamily
        if family in latest
    ]


def analyze_behavior(
    records: Sequence[DisciplineRecord],
    reference_date: date,
    settings: RetrievalSettings,
) -> BehaviorAnalysis:
    if not records:
        return BehaviorAnalysis()

    total = len(records)
    return BehaviorAnalysis(
        incident_count=total,
        average_severity=round(sum(r.severity_level or 1 for r in records) / total, 2),
        average_risk_score=round(sum(r.risk_score or 0 for r in records) / total, 2),
        threat_assessments=sum(1 for r in records if r.threat_assessment),
        incident_types=dict(Counter(r.incident_type or "Unknown" for r in records)),
        trend=metrics.behavior_trend(
            (r.incident_date for r in records), reference_date, settings.behavior_window_days
        ),
    )


def assess_risk(
    attendance: AttendanceAnalysis,
    academics: AcademicAnalysis,
    highlights: Sequence[AssessmentHighlight],
    behavior: BehaviorAnalysis,
) -> RiskAssessment:
    """
    Band each dimension, then combine.

    Two or more High dimensions is Critical; one High, or two Medium, is High;
    one Medium is Medium. A dimension with no records stays Low and adds no
    factors.
    """
    risk = RiskAssessment()
    factors = risk.risk_factors
    protective = risk.protective_factors
    interventions = risk.recommended_interventions

    if attendance.total_days:
        if attendance.attendance_rate < 85:
            risk.attendance_risk = ProfileRiskLevel.HIGH
            factors.append("Chronic absenteeism (< 85% attendance rate)")
            interventions.append("Implement attendance intervention plan")
        elif attendance.attendance_rate < 95:
            risk.attendance_risk = ProfileRiskLevel.MEDIUM
            factors.append("Below target attendance rate")
            interventions.append("Monitor attendance patterns closely")
        else:
            protective.append("Strong attendance record")

        if attendance.consecutive_absences >= 3:
            factors.append(f"{attendance.consecutive_absences} consecutive absences")
            interventions.append("Immediate attendance conference with family")

    if academics.grade_count:
        if academics.overall_average < 60:
            risk.academic_risk = ProfileRiskLevel.HIGH
            factors.append("Failing grades (average < 60)")
            interventions.append("Academic support services and tutoring")
        elif academics.overall_average < 70:
            risk.academic_risk = ProfileRiskLevel.MEDIUM
            factors.append("Below grade-level performance")
            interventions.append("Small group instruction and progress monitoring")
        else:
            protective.append("Satisfactory academic performance")

        if academics.trend == TrendDirection.DECLINING:
            factors.append("Declining academic performance")
            interventions.append("Review and adjust instructional strategies")

    by_family = {h.family: h for h in highlights}
    assessment_checks = [
        (AssessmentFamily.IREADY_READING, "High risk in reading (iReady assessment)", "Intensive reading intervention"),
        (AssessmentFamily.IREADY_MATH, "High risk in mathematics (iReady assessment)", "Intensive math intervention"),
        (AssessmentFamily.FAST_ELA, "Level 1 performance on FAST ELA", "Reading intervention and progress monitoring"),
    ]
    for family, factor, intervention in assessment_checks:
        highlight = by_family.get(family.value)
        if highlight and highlight.risk_level == HIGH_RISK_LABEL:
            factors.append(factor)
            interventions.append(intervention)

    if behavior.average_risk_score >= 50 or behavior.threat_assessments > 0:
        risk.behavior_risk = ProfileRiskLevel.HIGH
        factors.append("High behavioral risk score")
        interventions.append("Behavioral intervention plan and counseling services")
    elif behavior.incident_count >= 3:
        risk.behavior_risk = ProfileRiskLevel.MEDIUM
        factors.append("Multiple disciplinary incidents")
        interventions.append("Proactive behavioral supports")
    elif behavior.incident_count == 0:
        protective.append("No disciplinary incidents")

    if behavior.trend == BehaviorTrend.WORSENING:
        factors.append("Escalating behavioral concerns")
        interventions.append("Immediate behavioral assessment and intervention")

    bands = [risk.attendance_risk, risk.academic_risk, risk.behavior_risk]
    high = bands.count(ProfileRiskLevel.HIGH)
    medium = bands.count(ProfileRiskLevel.MEDIUM)
    if high >= 2:
        risk.overall_risk_level = ProfileRiskLevel.CRITICAL
    elif high == 1 or medium >= 2:
        risk.overall_risk_level = ProfileRiskLevel.HIGH
    elif medium == 1:
        risk.overall_risk_level = ProfileRiskLevel.MEDIUM
    return risk


def summarize_profile(
    attendance: AttendanceAnalysis,
    academics: AcademicAnalysis,
    highlights: Sequence[AssessmentHighlight],
    behavior: BehaviorAnalysis,
    risk: RiskAssessment,
) -> ProfileSummary:
    summary = ProfileSummary(concerns=list(risk.risk_factors))

    if attendance.total_days and attendance.attendance_rate >= 95:
        summary.strengths.append("Excellent attendance")
    if academics.grade_count and academics.overall_average >= 85:
        summary.strengths.append("Strong academic performance")
    if behavior.incident_count == 0:
        summary.strengths.append("No behavioral concerns")

    by_family = {h.family: h for h in highlights}
    reading = by_family.get(AssessmentFamily.IREADY_READING.value)
    math = by_family.get(AssessmentFamily.IREADY_MATH.value)
    if reading and reading.risk_level == LOW_RISK_LABEL:
        summary.strengths.append("Grade-level reading performance")
    if math and math.risk_level == LOW_RISK_LABEL:
        summary.strengths.append("Grade-level math performance")

    if risk.overall_risk_level == ProfileRiskLevel.CRITICAL:
        summary.priorities.append("IMMEDIATE: Multi-tiered intervention team meeting")
    if risk.attendance_risk == ProfileRiskLevel.HIGH:
        summary.priorities.append("Address chronic absenteeism")
    if risk.academic_risk == ProfileRiskLevel.HIGH:
        summary.priorities.append("Intensive academic support")
    if risk.behavior_risk == ProfileRiskLevel.HIGH:
        summary.priorities.append("Behavioral intervention plan")
    if not summary.priorities and risk.overall_risk_level != ProfileRiskLevel.LOW:
        summary.priorities.append("Preventive monitoring and support")
    return summary


def build_profile(
    student: Student,
    attendance_records: Sequence[AttendanceRecord],
    grade_records: Sequence[GradeRecord],
    assessment_records: Sequence[AssessmentRecord],
    discipline_records: Sequence[DisciplineRecord],
    reference_date: date,
    settings: RetrievalSettings,
) -> StudentRiskProfile:
    attendance = analyze_attendance(attendance_records)
    academics = analyze_academics(grade_records, settings)
    highlights = assessment_highlights(assessment_records)
    behavior = analyze_behavior(discipline_records, reference_date, settings)
    risk = assess_risk(attendance, academics, highlights, behavior)

    return StudentRiskProfile(
        student=student_entry(student),
        attendance=attendance,
        academics=academics,
        assessments=highlights,
        behavior=behavior,
        risk=risk,
        summary=summarize_profile(attendance, academics, highlights, behavior, risk),
    )


class RiskProfiler:
    """Loads every source for a small student set and builds one profile per student."""

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[RetrievalSettings] = None,
        reference_date: Optional[date] = None,
    ):
        self.store = store
        self.settings = settings or RetrievalSettings()
        self.reference_date = reference_date

    async def build_profiles(self, students: Sequence[Student]) -> List[StudentRiskProfile]:
        if not students:
            return []

        student_ids = [s.id for s in students]
        names = ["attendance", "grades", "assessments", "discipline"]
        results = await asyncio.gather(
            self.store.get_attendance(student_ids),
            self.store.get_grades(student_ids),
            self.store.get_assessments(student_ids),
            self.store.get_discipline(student_ids),
            return_exceptions=True,
        )

        grouped: Dict[str, Dict[str, list]] = {}
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Error loading {name} for risk profiles: {result}", extra={"source": name})
                result = []
            grouped[name] = group_by_student(result)

        reference_date = self.reference_date or date.today()
        profiles = []
        for student in students:
            profile = build_profile(
                student,
                grouped["attendance"].get(student.id, []),
                grouped["grades"].get(student.id, []),
                grouped["assessments"].get(student.id, []),
                grouped["discipline"].get(student.id, []),
                reference_date,
                self.settings,
            )
            logger.debug(
                f"Profile for {student.id}: {profile.risk.overall_risk_level.value}",
                extra={"risk_factors": profile.risk.risk_factors},
            )
            profiles.append(profile)

        logger.info(f"Built {len(profiles)} risk profiles")
        return profiles
