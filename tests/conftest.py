"""Shared fixtures and record factories for the test suite."""

import sys
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from student_context.config import Settings
from student_context.database import InMemoryRecordStore
from student_context.models import (
    AssessmentRecord,
    AttendanceRecord,
    DisciplineRecord,
    GradeEntry,
    GradeRecord,
    ObservationNote,
    ObservationSession,
    Student,
)


REFERENCE_DATE = date(2024, 10, 15)


def make_student(
    student_id: str,
    first: str,
    last: str,
    grade: str = "3",
    class_name: str = "Mrs. Lopez",
    student_number: Optional[str] = None,
) -> Student:
    return Student(
        id=student_id,
        student_number=student_number,
        first_name=first,
        last_name=last,
        grade=grade,
        class_name=class_name,
        homeroom=class_name,
    )


def attendance_days(
    student_id: str,
    statuses: Sequence[str],
    end: date = REFERENCE_DATE - timedelta(days=1),
) -> List[AttendanceRecord]:
    """One record per day ending at ``end``; ``statuses`` are oldest first."""
    start = end - timedelta(days=len(statuses) - 1)
    return [
        AttendanceRecord(student_id=student_id, date=start + timedelta(days=i), status=status)
        for i, status in enumerate(statuses)
    ]


def grade_record(student_id: str, course: Optional[str], grades: Sequence) -> GradeRecord:
    return GradeRecord(
        student_id=student_id,
        course=course,
        grades=[GradeEntry(period=f"Q{i + 1}", grade=g) for i, g in enumerate(grades)],
    )


def assessment(
    student_id: str,
    source: str,
    days_ago: int,
    percentile: float = 50,
    risk_level: Optional[str] = None,
    **extra,
) -> AssessmentRecord:
    return AssessmentRecord(
        student_id=student_id,
        source=source,
        test_date=REFERENCE_DATE - timedelta(days=days_ago),
        score=500,
        percentile=percentile,
        risk_level=risk_level,
        **extra,
    )


def incident(student_id: str, days_ago: int, incident_type: Optional[str] = "Disruption", **extra) -> DisciplineRecord:
    return DisciplineRecord(
        student_id=student_id,
        incident_date=REFERENCE_DATE - timedelta(days=days_ago),
        incident_type=incident_type,
        **extra,
    )


def build_roster_store(
    count: int,
    grade_of=lambda i: str(3 + i % 3),
    records: bool = True,
) -> InMemoryRecordStore:
    """
    Synthetic roster where every student has attendance, grades, assessments
    and discipline history.
    """
    students, attendance, grades, assessments, discipline = [], [], [], [], []
    for i in range(count):
        sid = f"r{i:03d}"
        students.append(make_student(sid, f"Kid{i:03d}", "Roster", grade=grade_of(i), class_name="Mr. Hart"))
        if not records:
            continue
        statuses = ["present" if (d + i) % 7 else "absent" for d in range(40)]
        attendance.extend(attendance_days(sid, statuses))
        grades.append(grade_record(sid, "Math", [60 + i % 40, 65 + i % 30, 70, 75]))
        grades.append(grade_record(sid, "Reading", [80, 82, 84, 86]))
        for days_ago in (30, 90, 150):
            assessments.append(assessment(sid, "iReady Reading", days_ago, percentile=40 + i % 50))
            assessments.append(assessment(sid, "FAST Math", days_ago, percentile=30 + i % 60))
        for days_ago in (5, 20, 45, 70):
            discipline.append(incident(sid, days_ago, description="Talking during instruction"))
    return InMemoryRecordStore(
        students=students,
        attendance=attendance,
        grades=grades,
        assessments=assessments,
        discipline=discipline,
    )


@pytest.fixture
def reference_date() -> date:
    return REFERENCE_DATE


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def roster() -> List[Student]:
    return [
        make_student("s1", "Jane", "Doe", grade="3", student_number="1000001"),
        make_student("s2", "John", "Smith", grade="3"),
        make_student("s3", "Maria", "Garcia", grade="4", class_name="Mr. Hart"),
        make_student("s4", "Janet", "Dunn", grade="5", class_name="Mr. Hart"),
    ]


@pytest.fixture
def small_store(roster) -> InMemoryRecordStore:
    """Four students; Jane Doe (s1) has a full record history."""
    attendance = (
        attendance_days("s1", ["present"] * 18 + ["absent", "tardy"])
        + attendance_days("s2", ["present"] * 10)
        + attendance_days("s3", ["absent"] * 4 + ["present"] * 6)
    )
    grades = [
        grade_record("s1", "Math", ["72", "78 S", "Incomplete", "85"]),
        grade_record("s1", "Reading", ["90", "92"]),
        grade_record("s2", "Math", ["95", "97"]),
        grade_record("s3", "Science", ["55", "58"]),
    ]
    assessments = [
        assessment("s1", "iReady Math", 120, percentile=35, risk_level="Moderate Risk"),
        assessment("s1", "iReady Math", 20, percentile=48, risk_level="Low Risk"),
        assessment("s1", "FAST Math", 40, percentile=52, level="3"),
        assessment("s1", "iReady Reading", 25, percentile=70, risk_level="Low Risk"),
    ]
    discipline = [
        incident("s3", 3, severity_level=2, risk_score=20),
        incident("s3", 10, incident_type="Tardiness"),
        incident("s3", 60),
    ]
    sessions = [
        ObservationSession(observation_id="o1", homeroom="Mrs. Lopez", teacher_name="Lopez", class_engagement_score=4),
        ObservationSession(observation_id="o2", homeroom="Room 9", teacher_name="Nobody"),
    ]
    notes = [
        ObservationNote(note_id="n1", observation_id="o1", student_id="s1", note_text="Focused in small group", category="engagement"),
    ]
    return InMemoryRecordStore(
        students=roster,
        attendance=attendance,
        grades=grades,
        assessments=assessments,
        discipline=discipline,
        observation_sessions=sessions,
        observation_notes=notes,
    )
