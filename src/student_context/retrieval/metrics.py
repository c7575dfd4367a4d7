"""
Metrics engine: derived values computed from already-fetched records.

Everything here is synchronous and pure. GPA conversion uses a fixed step
function rather than cohort statistics.
"""

import logging
import re
import statistics
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import RetrievalSettings
from ..models.context import (
    AttendanceSummary,
    BehaviorTrend,
    ContextSummary,
    DisciplineSummary,
    FlagHit,
    GradeSummary,
    RiskCategories,
    RiskLevel,
    StudentEntry,
    TrendDirection,
)
from ..models.records import FlagCondition, FlagRule


logger = logging.getLogger(__name__)

LEADING_NUMBER = re.compile(r"^(\d+(?:\.\d+)?)")

# (minimum average, GPA on a 4.0 scale, letter)
GRADE_BANDS: List[Tuple[float, float, str]] = [
    (97, 4.0, "A+"),
    (93, 3.7, "A"),
    (90, 3.3, "A-"),
    (87, 3.0, "B+"),
    (83, 2.7, "B"),
    (80, 2.3, "B-"),
    (77, 2.0, "C+"),
    (73, 1.7, "C"),
    (70, 1.3, "C-"),
    (67, 1.0, "D+"),
    (65, 0.7, "D"),
]

EQUALS_TOLERANCE = 0.1


def parse_numeric_grade(raw: Optional[str]) -> Optional[float]:
    """
    Extract the leading numeric token of a raw grade string.

    "80 S" -> 80.0, "92.5" -> 92.5, "Incomplete" -> None, "N/A" -> None.
    """
    if raw is None:
        return None
    match = LEADING_NUMBER.match(str(raw).strip())
    if not match:
        return None
    return float(match.group(1))


def gpa_scale(average: float) -> float:
    for minimum, gpa, _ in GRADE_BANDS:
        if average >= minimum:
            return gpa
    return 0.0


def letter_grade(average: float) -> str:
    for minimum, _, letter in GRADE_BANDS:
        if average >= minimum:
            return letter
    return "F"


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def half_split_trend(values: Sequence[float], gap: float) -> TrendDirection:
    """Compare the mean of the first half against the second half."""
    if len(values) < 2:
        return TrendDirection.STABLE
    midpoint = len(values) // 2
    difference = _mean(values[midpoint:]) - _mean(values[:midpoint])
    if difference >= gap:
        return TrendDirection.IMPROVING
    if difference <= -gap:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def grade_trend(values: Sequence[float]) -> TrendDirection:
    """
    Trend over chronologically ordered grades.

    Fewer than 3 grades is always stable; fewer than 6 uses a half split with a
    3-point gap; otherwise the first third is compared with the last third using
    a 5-point gap.
    """
    if len(values) < 3:
        return TrendDirection.STABLE
    if len(values) < 6:
        return half_split_trend(values, gap=3.0)

    third = len(values) // 3
    difference = _mean(values[-third:]) - _mean(values[:third])
    if difference >= 5.0:
        return TrendDirection.IMPROVING
    if difference <= -5.0:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def behavior_trend(
    incident_dates: Iterable[Optional[date]],
    reference_date: date,
    window_days: int = 30,
) -> BehaviorTrend:
    """Incidents in the latest window versus the window before it."""
    dated = [d for d in incident_dates if d is not None]
    if len(dated) < 2:
        return BehaviorTrend.STABLE

    recent_start = reference_date - timedelta(days=window_days)
    prior_start = reference_date - timedelta(days=2 * window_days)
    recent = sum(1 for d in dated if d >= recent_start)
    prior = sum(1 for d in dated if prior_start <= d < recent_start)

    if recent > prior:
        return BehaviorTrend.WORSENING
    if recent < prior:
        return BehaviorTrend.IMPROVING
    return BehaviorTrend.STABLE


def _compare(value: float, rule: FlagRule, exact: bool = False) -> bool:
    if rule.condition == FlagCondition.BELOW:
        return value < rule.threshold
    if rule.condition == FlagCondition.ABOVE:
        return value > rule.threshold
    if exact:
        return value == rule.threshold
    return abs(value - rule.threshold) < EQUALS_TOLERANCE


def evaluate_flag(
    rule: FlagRule,
    attendance: Optional[AttendanceSummary],
    grades: Optional[GradeSummary],
    discipline: Optional[DisciplineSummary],
) -> Optional[str]:
    """
    Evaluate one rule for one student.

    Returns the flag message when the rule fires, None otherwise. A student with
    no data for the rule's source, or a rule with an unknown category, is never
    flagged.
    """
    if rule.category == "attendance":
        if attendance is None or attendance.total_days == 0:
            return None
        if _compare(attendance.rate, rule):
            return f"{attendance.rate:.1f}% attendance"
        return None

    if rule.category == "grades":
        if grades is None or grades.grade_count == 0:
            return None
        if _compare(grades.gpa_scale, rule):
            return f"{grades.gpa_scale:.2f} GPA"
        return None

    if rule.category == "discipline":
        if discipline is None:
            return None
        if _compare(float(discipline.incident_count), rule, exact=True):
            return f"{discipline.incident_count} discipline incidents"
        return None

    logger.debug(f"Flag rule '{rule.name}' has unsupported category '{rule.category}'")
    return None


def evaluate_flags(
    rules: Sequence[FlagRule],
    student_ids: Sequence[str],
    attendance: Dict[str, AttendanceSummary],
    grades: Dict[str, GradeSummary],
    discipline: Dict[str, DisciplineSummary],
) -> List[FlagHit]:
    """Evaluate every active rule against every candidate student independently."""
    hits: List[FlagHit] = []
    active_rules = [rule for rule in rules if rule.is_active]
    for student_id in student_ids:
        for rule in active_rules:
            message = evaluate_flag(
                rule,
                attendance.get(student_id),
                grades.get(student_id),
                discipline.get(student_id),
            )
            if message is not None:
                hits.append(FlagHit(
                    student_id=student_id,
                    student_name=student_id,
                    flag_name=rule.name,
                    category=rule.category,
                    color=rule.color or "red",
                    message=message,
                ))
    return hits


def composite_risk(
    flags: Sequence[FlagHit],
    attendance: Optional[AttendanceSummary],
    grades: Optional[GradeSummary],
    settings: RetrievalSettings,
) -> RiskLevel:
    """
    Coarse per-student risk for the top-level summary.

    Any red flag, or low attendance together with a low GPA, is high risk. A
    yellow/orange flag, or either condition alone, is medium risk.
    """
    red_flags = sum(1 for f in flags if f.color == "red")
    warning_flags = sum(1 for f in flags if f.color in ("yellow", "orange"))
    low_attendance = attendance is not None and attendance.rate < settings.low_attendance_threshold
    low_gpa = grades is not None and grades.gpa_scale < settings.low_gpa_threshold

    if red_flags > 0 or (low_attendance and low_gpa):
        return RiskLevel.HIGH
    if warning_flags > 0 or low_attendance or low_gpa:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def calculate_summary(
    students: Sequence[StudentEntry],
    attendance: Sequence[AttendanceSummary],
    grades: Sequence[GradeSummary],
    flags: Sequence[FlagHit],
    settings: RetrievalSettings,
) -> ContextSummary:
    """Roll-up statistics over the candidate set; all zeros for an empty set."""
    attendance_by_id = {a.student_id: a for a in attendance}
    grades_by_id = {g.student_id: g for g in grades}
    flags_by_id: Dict[str, List[FlagHit]] = {}
    for flag in flags:
        flags_by_id.setdefault(flag.student_id, []).append(flag)

    risk = RiskCategories()
    for student in students:
        level = composite_risk(
            flags_by_id.get(student.id, []),
            attendance_by_id.get(student.id),
            grades_by_id.get(student.id),
            settings,
        )
        if level == RiskLevel.HIGH:
            risk.high_risk += 1
        elif level == RiskLevel.MEDIUM:
            risk.medium_risk += 1
        else:
            risk.low_risk += 1

    total = len(students)
    if total == 1:
        query_type = "individual"
    elif 0 < total <= settings.group_query_limit:
        query_type = "group"
    else:
        query_type = "analysis"

    return ContextSummary(
        total_students=total,
        average_attendance=_mean([a.rate for a in attendance]),
        average_grade=_mean([g.average_grade for g in grades]),
        students_with_flags=len(flags_by_id),
        risk_categories=risk,
        query_type=query_type,
        focused_students=[s.id for s in students] if total <= settings.focused_student_limit else [],
    )
