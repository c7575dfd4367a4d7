"""
Plain-text subject analysis over an assembled context.

For reading/ELA and math, each student's classroom subject grade is set next
to the latest diagnostic (iReady) and standards-based (FAST) administrations,
with a rough alignment check between them.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..models.context import AssessmentEntry, AssessmentSummary, StudentDataContext, SubjectGrades


logger = logging.getLogger(__name__)

DISCREPANCY_THRESHOLD = 15.0


@dataclass(frozen=True)
class SubjectArea:
    title: str
    label: str
    subject_keywords: Tuple[str, ...]
    diagnostic_bucket: str
    diagnostic_label: str
    standards_bucket: str
    standards_label: str


SUBJECT_AREAS: List[Tuple[Tuple[str, ...], SubjectArea]] = [
    (("reading", "ela"), SubjectArea(
        title="READING",
        label="Reading",
        subject_keywords=("reading", "ela", "language arts"),
        diagnostic_bucket="iready_reading",
        diagnostic_label="iReady Reading",
        standards_bucket="fast_ela",
        standards_label="FAST ELA",
    )),
    (("math", "mathematics"), SubjectArea(
        title="MATH",
        label="Math",
        subject_keywords=("math", "mathematics"),
        diagnostic_bucket="iready_math",
        diagnostic_label="iReady Math",
        standards_bucket="fast_math",
        standards_label="FAST Math",
    )),
]


def expected_grade(percentile: float) -> float:
    """Rough classroom grade implied by a national percentile."""
    return percentile * 0.9 + 10


def _mentions(text: str, keywords: Tuple[str, ...]) -> bool:
    """Whole-word match, so "ela" does not hit "relationships"."""
    text = text.lower()
    return any(re.search(rf"\b{re.escape(keyword)}\b", text) for keyword in keywords)


def _find_subject(subjects: List[SubjectGrades], keywords: Tuple[str, ...]) -> Optional[SubjectGrades]:
    for subject in subjects:
        if _mentions(subject.subject, keywords):
            return subject
    return None


def _latest(summary: Optional[AssessmentSummary], bucket: str) -> Optional[AssessmentEntry]:
    if summary is None:
        return None
    entries = summary.buckets().get(bucket, [])
    return entries[0] if entries else None


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:g}"


def _assessment_lines(label: str, entry: AssessmentEntry) -> List[str]:
    lines = [f"  {label} ({entry.test_date.isoformat()}):"]
    detail = [f"{_format_number(entry.percentile)}th percentile"]
    if entry.level:
        detail.insert(0, f"Level {entry.level}")
    if entry.grade_level:
        detail.append(f"Grade {entry.grade_level} level")
    lines.append(f"    Overall Score: {_format_number(entry.score)} ({', '.join(detail)})")
    if entry.performance_level:
        lines.append(f"    Performance Level: {entry.performance_level}")
    if entry.placement:
        lines.append(f"    Placement: {entry.placement}")
    if entry.risk_level:
        lines.append(f"    Risk Level: {entry.risk_level}")
    if entry.domain_scores:
        lines.append("    Domain Breakdown:")
        for domain, score in entry.domain_scores.items():
            lines.append(f"      - {domain}: {score}")
    return lines


def _alignment_line(label: str, grade: float, percentile: float) -> str:
    difference = grade - expected_grade(percentile)
    direction = "Grade higher" if difference > 0 else "Assessment higher"
    return f"    Grade vs {label} alignment: {direction} ({abs(difference):.1f} point difference)"


def _area_lines(
    area: SubjectArea,
    subject: Optional[SubjectGrades],
    diagnostic: Optional[AssessmentEntry],
    standards: Optional[AssessmentEntry],
) -> List[str]:
    lines = [f"{area.title} COMPREHENSIVE REPORT:"]

    if subject:
        lines.append(f"  Classroom {area.label} Grade: {subject.grade:.1f}% ({subject.grade_count} assignments)")
        lines.append(f"  Grade Range: {subject.lowest_grade:g}% - {subject.highest_grade:g}%")

    if diagnostic:
        lines.extend(_assessment_lines(area.diagnostic_label, diagnostic))
    if standards:
        lines.extend(_assessment_lines(area.standards_label, standards))

    if (
        subject and diagnostic and standards
        and diagnostic.percentile is not None and standards.percentile is not None
    ):
        lines.append("  CROSS-CORRELATION ANALYSIS:")
        lines.append(_alignment_line("iReady", subject.grade, diagnostic.percentile))
        lines.append(_alignment_line("FAST", subject.grade, standards.percentile))
        if abs(subject.grade - expected_grade(diagnostic.percentile)) > DISCREPANCY_THRESHOLD:
            lines.append(
                "    SIGNIFICANT DISCREPANCY: Classroom grades and assessment scores show major difference"
            )
    return lines


def build_subject_analysis(context: StudentDataContext, subject: str) -> str:
    """
    Render the subject report for every student in the context.

    Returns an empty string for a context with no students. A subject outside
    reading/ELA and math yields only the per-student headers.
    """
    if not context.students:
        return ""

    areas = [area for keywords, area in SUBJECT_AREAS if _mentions(subject, keywords)]
    grades_by_id = {g.student_id: g for g in context.grades}
    assessments_by_id = {a.student_id: a for a in context.assessments}

    lines = ["", "", f"=== COMPREHENSIVE {subject.upper()} ANALYSIS ===", ""]
    for position, student in enumerate(context.students, start=1):
        lines.append(f"STUDENT {position} ({student.id}) - {subject} Analysis:")
        grades = grades_by_id.get(student.id)
        assessments = assessments_by_id.get(student.id)
        for area in areas:
            lines.extend(_area_lines(
                area,
                _find_subject(grades.subjects, area.subject_keywords) if grades else None,
                _latest(assessments, area.diagnostic_bucket),
                _latest(assessments, area.standards_bucket),
            ))
        lines.append("")

    logger.debug(f"Built {subject} analysis for {len(context.students)} students")
    return "\n".join(lines) + "\n"
