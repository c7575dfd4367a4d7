"""
Source aggregation: per-student summaries from every record source.

For a resolved candidate set, one lookup per source is issued concurrently and
the rows are grouped client-side by student. A failure in one source degrades
to an empty list for that source; the other sources are unaffected.
"""

import asyncio
import logging
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..config import RetrievalSettings
from ..database.store import RecordStore
from ..models.context import (
    AssessmentEntry,
    AssessmentSummary,
    AttendanceDay,
    AttendanceSummary,
    DisciplineSummary,
    FlagHit,
    GradePoint,
    GradeSummary,
    IncidentSummary,
    MonthlyAttendance,
    ObservationNoteSummary,
    ObservationSessionSummary,
    RecentAttendance,
    StudentEntry,
    SubjectGrades,
)
from ..models.records import (
    AssessmentFamily,
    AssessmentRecord,
    AttendanceRecord,
    AttendanceStatus,
    DisciplineRecord,
    FlagRule,
    GradeRecord,
    ObservationNote,
    ObservationSession,
    Student,
)
from . import metrics


logger = logging.getLogger(__name__)

FAMILY_BUCKETS: Dict[AssessmentFamily, str] = {
    AssessmentFamily.IREADY_READING: "iready_reading",
    AssessmentFamily.IREADY_MATH: "iready_math",
    AssessmentFamily.FAST_ELA: "fast_ela",
    AssessmentFamily.FAST_MATH: "fast_math",
    AssessmentFamily.FAST_SCIENCE: "fast_science",
    AssessmentFamily.FAST_WRITING: "fast_writing",
}


@dataclass
class AggregatedSources:
    """Per-source summaries for one candidate set, before budgeting."""
    attendance: List[AttendanceSummary] = field(default_factory=list)
    grades: List[GradeSummary] = field(default_factory=list)
    assessments: List[AssessmentSummary] = field(default_factory=list)
    discipline: List[DisciplineSummary] = field(default_factory=list)
    observation_sessions: List[ObservationSessionSummary] = field(default_factory=list)
    observation_notes: List[ObservationNoteSummary] = field(default_factory=list)
    flags: List[FlagHit] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)


def student_entry(student: Student) -> StudentEntry:
    """Output view of a student. The stable id stands in for the name."""
    return StudentEntry(
        id=student.id,
        name=student.id,
        student_number=student.student_number,
        grade=student.grade,
        class_name=student.class_name,
        gender=student.gender,
        birth_date=student.birth_date,
    )


def group_by_student(records: Sequence[Any]) -> Dict[str, List[Any]]:
    grouped: Dict[str, List[Any]] = {}
    for record in records:
        grouped.setdefault(record.student_id, []).append(record)
    return grouped


# Attendance

def monthly_breakdown(records: Sequence[AttendanceRecord]) -> List[MonthlyAttendance]:
    """Per calendar month, oldest first. Any non-present day counts as absent."""
    months: Dict[tuple, Dict[str, int]] = {}
    for record in records:
        key = (record.date.year, record.date.month)
        bucket = months.setdefault(key, {"present": 0, "absent": 0, "total": 0})
        bucket["total"] += 1
        if record.status == AttendanceStatus.PRESENT:
            bucket["present"] += 1
        else:
            bucket["absent"] += 1

    breakdown = []
    for (year, month), counts in sorted(months.items()):
        breakdown.append(MonthlyAttendance(
            month=date(year, month, 1).strftime("%b %Y"),
            rate=counts["present"] / counts["total"] * 100,
            present=counts["present"],
            absent=counts["absent"],
        ))
    return breakdown


def summarize_attendance(
    student_id: str,
    records: Sequence[AttendanceRecord],
    reference_date: date,
    settings: RetrievalSettings,
) -> Optional[AttendanceSummary]:
    if not records:
        return None

    total = len(records)
    present = sum(1 for r in records if r.status == AttendanceStatus.PRESENT)
    absent = sum(1 for r in records if r.status == AttendanceStatus.ABSENT)
    tardy = sum(1 for r in records if r.status == AttendanceStatus.TARDY)
    rate = present / total * 100

    newest_first = sorted(records, key=lambda r: r.date, reverse=True)
    window_start = reference_date - timedelta(days=settings.recent_attendance_days)
    recent = [
        RecentAttendance(date=r.date, status=r.status.value, attendance_code=r.attendance_code)
        for r in newest_first
        if r.date >= window_start
    ][:settings.recent_attendance_limit]

    all_records = [
        AttendanceDay(
            date=r.date,
            status=r.status.value,
            attendance_code=r.attendance_code or r.status.value[0].upper(),
            day_of_week=r.date.strftime("%A"),
            month=r.date.strftime("%B %Y"),
        )
        for r in newest_first
    ]

    return AttendanceSummary(
        student_id=student_id,
        student_name=student_id,
        rate=rate,
        present_days=present,
        total_days=total,
        absent_days=absent,
        tardy_days=tardy,
        chronic_absenteeism=rate < settings.chronic_absence_threshold,
        recent_records=recent,
        monthly_breakdown=monthly_breakdown(records),
        all_attendance_records=all_records,
    )


# Grades

def parsed_grades(records: Sequence[GradeRecord]) -> List[tuple]:
    """(subject, period, value) for every parsable grade, in stored order."""
    values = []
    for record in records:
        subject = record.course or "General"
        for entry in record.grades:
            value = metrics.parse_numeric_grade(entry.grade)
            if value is None:
                continue
            values.append((subject, entry.period or "Unknown", value))
    return values


def summarize_grades(
    student_id: str,
    records: Sequence[GradeRecord],
    settings: RetrievalSettings,
) -> Optional[GradeSummary]:
    values = parsed_grades(records)
    if not values:
        return None

    by_subject: "OrderedDict[str, List[GradePoint]]" = OrderedDict()
    for subject, period, value in values:
        by_subject.setdefault(subject, []).append(GradePoint(period=period, grade=value))

    subjects = []
    for subject, points in by_subject.items():
        grades = [p.grade for p in points]
        newest_first = list(reversed(points))
        passing = sum(1 for g in grades if g >= settings.passing_grade)
        subjects.append(SubjectGrades(
            subject=subject,
            grade=sum(grades) / len(grades),
            recent_grades=newest_first[:settings.recent_grades_limit],
            all_grades=newest_first,
            lowest_grade=min(grades),
            highest_grade=max(grades),
            grade_count=len(grades),
            passing_grade_count=passing,
            failing_grade_count=len(grades) - passing,
        ))

    all_values = [value for _, _, value in values]
    average = sum(all_values) / len(all_values)
    logger.debug(f"Student {student_id}: average {average:.2f} over {len(all_values)} grades")

    return GradeSummary(
        student_id=student_id,
        student_name=student_id,
        average_grade=average,
        grade_count=len(all_values),
        subjects=subjects,
        gpa_scale=metrics.gpa_scale(average),
        letter_grade=metrics.letter_grade(average),
        trend=metrics.grade_trend(all_values),
    )


# Assessments

def assessment_entry(record: AssessmentRecord) -> AssessmentEntry:
    return AssessmentEntry(
        test_date=record.test_date,
        score=record.score,
        percentile=record.percentile,
        grade_level=record.grade_level,
        level=record.level,
        performance_level=record.performance_level,
        placement=record.placement,
        risk_level=record.risk_level,
        domain_scores=dict(record.domain_scores),
    )


def summarize_assessments(
    student_id: str,
    records: Sequence[AssessmentRecord],
) -> Optional[AssessmentSummary]:
    buckets: Dict[str, List[AssessmentRecord]] = {name: [] for name in FAMILY_BUCKETS.values()}
    for record in records:
        family = record.family
        if family is None:
            logger.debug(f"Skipping assessment with unknown family '{record.source}'")
            continue
        buckets[FAMILY_BUCKETS[family]].append(record)

    if not any(buckets.values()):
        return None

    return AssessmentSummary(
        student_id=student_id,
        student_name=student_id,
        **{
            name: [assessment_entry(r) for r in sorted(items, key=lambda r: r.test_date, reverse=True)]
            for name, items in buckets.items()
        },
    )


# Discipline

def _newest_incidents_first(records: Sequence[DisciplineRecord]) -> List[DisciplineRecord]:
    return sorted(records, key=lambda r: r.incident_date or date.min, reverse=True)


def incident_summary(record: DisciplineRecord) -> IncidentSummary:
    return IncidentSummary(
        incident_date=record.incident_date,
        type=record.incident_type or "General",
        description=record.description or "No description available",
        severity=record.severity or "Minor",
        action=record.action or "Warning",
        location=record.location or "Unknown",
        time_of_day=record.time_of_incident or "Unknown",
        staff_member=record.reporting_staff or "Unknown",
        follow_up=record.follow_up or "None noted",
        outcome=record.outcome or "Ongoing",
    )


def summarize_discipline(
    student_id: str,
    records: Sequence[DisciplineRecord],
    reference_date: date,
    settings: RetrievalSettings,
) -> Optional[DisciplineSummary]:
    if not records:
        return None

    by_month: Dict[str, int] = {}
    for record in records:
        month = record.incident_date.strftime("%B %Y") if record.incident_date else "Unknown"
        by_month[month] = by_month.get(month, 0) + 1

    type_counts = Counter(r.incident_type or "General" for r in records)

    return DisciplineSummary(
        student_id=student_id,
        student_name=student_id,
        incident_count=len(records),
        incidents=[incident_summary(r) for r in _newest_incidents_first(records)],
        behavior_trend=metrics.behavior_trend(
            (r.incident_date for r in records),
            reference_date,
            settings.behavior_window_days,
        ),
        incidents_by_month=by_month,
        most_common_incident_type=type_counts.most_common(1)[0][0],
        average_incidents_per_month=len(records) / 12,
    )


# Observations

def session_summary(session: ObservationSession) -> ObservationSessionSummary:
    return ObservationSessionSummary(
        observation_id=session.observation_id,
        homeroom=session.homeroom,
        teacher_name=session.teacher_name or "",
        observation_timestamp=session.observation_timestamp,
        class_engagement_score=session.class_engagement_score,
        class_engagement_notes=session.class_engagement_notes or "",
        teacher_feedback_notes=session.teacher_feedback_notes or "",
        teacher_score_planning=session.teacher_score_planning,
        teacher_score_delivery=session.teacher_score_delivery,
        teacher_score_environment=session.teacher_score_environment,
        teacher_score_feedback=session.teacher_score_feedback,
        created_by=session.created_by or "",
    )


def note_summary(note: ObservationNote) -> ObservationNoteSummary:
    return ObservationNoteSummary(
        note_id=note.note_id,
        observation_id=note.observation_id,
        student_id=note.student_id,
        student_name=note.student_id,
        homeroom=note.homeroom or "",
        note_timestamp=note.note_timestamp,
        note_text=note.note_text,
        category=note.category.value,
        created_by=note.created_by or "",
    )


class SourceAggregator:
    """
    Fans out one lookup per source and reshapes the rows into per-student summaries.

    Students are summarized in candidate order; a student with no records in a
    source is left out of that source's list.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[RetrievalSettings] = None,
        reference_date: Optional[date] = None,
    ):
        self.store = store
        self.settings = settings or RetrievalSettings()
        self.reference_date = reference_date

    def _today(self) -> date:
        return self.reference_date or date.today()

    async def aggregate(
        self,
        students: Sequence[Student],
        flag_rules: Sequence[FlagRule] = (),
    ) -> AggregatedSources:
        student_ids = [s.id for s in students]
        if not student_ids:
            return AggregatedSources()

        homerooms = sorted({label for s in students for label in s.classrooms})
        sources: Dict[str, Callable[[], Awaitable[list]]] = {
            "attendance": lambda: self.get_attendance_data(student_ids),
            "grades": lambda: self.get_grade_data(student_ids),
            "assessments": lambda: self.get_assessment_data(student_ids),
            "discipline": lambda: self.get_discipline_data(student_ids),
            "observation_sessions": lambda: self.get_observation_sessions(homerooms),
            "observation_notes": lambda: self.get_observation_notes(student_ids),
        }

        names = list(sources.keys())
        results = await asyncio.gather(*(sources[name]() for name in names), return_exceptions=True)

        aggregated = AggregatedSources()
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Error aggregating {name} data: {result}", extra={"source": name})
                aggregated.failed_sources.append(name)
                result = []
            setattr(aggregated, name, result)

        try:
            aggregated.flags = metrics.evaluate_flags(
                flag_rules,
                student_ids,
                {a.student_id: a for a in aggregated.attendance},
                {g.student_id: g for g in aggregated.grades},
                {d.student_id: d for d in aggregated.discipline},
            )
        except Exception as e:
            logger.error(f"Error evaluating flags: {e}", extra={"source": "flags"})
            aggregated.failed_sources.append("flags")
            aggregated.flags = []

        logger.info(
            f"Aggregated {len(student_ids)} students: "
            f"{len(aggregated.attendance)} attendance, {len(aggregated.grades)} grades, "
            f"{len(aggregated.assessments)} assessments, {len(aggregated.discipline)} discipline, "
            f"{len(aggregated.flags)} flags",
            extra={"failed_sources": aggregated.failed_sources},
        )
        return aggregated

    async def get_attendance_data(self, student_ids: Sequence[str]) -> List[AttendanceSummary]:
        grouped = group_by_student(await self.store.get_attendance(student_ids))
        summaries = (
            summarize_attendance(sid, grouped.get(sid, []), self._today(), self.settings)
            for sid in student_ids
        )
        return [s for s in summaries if s is not None]

    async def get_grade_data(self, student_ids: Sequence[str]) -> List[GradeSummary]:
        grouped = group_by_student(await self.store.get_grades(student_ids))
        summaries = (summarize_grades(sid, grouped.get(sid, []), self.settings) for sid in student_ids)
        return [s for s in summaries if s is not None]

    async def get_assessment_data(self, student_ids: Sequence[str]) -> List[AssessmentSummary]:
        grouped = group_by_student(await self.store.get_assessments(student_ids))
        summaries = (summarize_assessments(sid, grouped.get(sid, [])) for sid in student_ids)
        return [s for s in summaries if s is not None]

    async def get_discipline_data(self, student_ids: Sequence[str]) -> List[DisciplineSummary]:
        grouped = group_by_student(await self.store.get_discipline(student_ids))
        summaries = (
            summarize_discipline(sid, grouped.get(sid, []), self._today(), self.settings)
            for sid in student_ids
        )
        return [s for s in summaries if s is not None]

    async def get_observation_sessions(self, homerooms: Sequence[str]) -> List[ObservationSessionSummary]:
        if not homerooms:
            return []
        sessions = await self.store.get_observation_sessions(homerooms)
        return [session_summary(s) for s in sessions]

    async def get_observation_notes(self, student_ids: Sequence[str]) -> List[ObservationNoteSummary]:
        wanted = set(student_ids)
        notes = await self.store.get_observation_notes(student_ids)
        return [note_summary(n) for n in notes if n.student_id in wanted]
