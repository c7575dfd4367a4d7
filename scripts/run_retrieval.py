#!/usr/bin/env python3
"""
Script to run student data retrieval for a question.

Usage:
    python scripts/run_retrieval.py --demo --question "Who has the lowest GPA?"
    python scripts/run_retrieval.py --data records.json --question "How is 'Jane Doe' doing?" --deep
    python scripts/run_retrieval.py --demo --students 200 --question "Show attendance" --output context.json
"""

import argparse
import asyncio
import json
import logging
import random
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from student_context.config import Settings
from student_context.database import InMemoryRecordStore, StaticFlagRuleSource
from student_context.retrieval import StudentDataRetrieval, build_subject_analysis


FIRST_NAMES = ["Ava", "Liam", "Maya", "Noah", "Zoe", "Eli", "Nina", "Omar", "Ruby", "Theo", "Iris", "Jude"]
LAST_NAMES = ["Garcia", "Nguyen", "Patel", "Okafor", "Smith", "Kowalski", "Haddad", "Rivera", "Chen", "Brooks"]
TEACHERS = ["Lopez", "Hart", "Kim", "Moreau"]
COURSES = ["Reading", "Math", "Science"]
INCIDENT_TYPES = ["Disruption", "Tardiness", "Defiance", "Horseplay"]

DEMO_FLAG_RULES = [
    {"id": "f1", "name": "Low attendance", "category": "attendance", "threshold": 90, "condition": "below"},
    {"id": "f2", "name": "Low GPA", "category": "grades", "threshold": 2.0, "condition": "below", "color": "yellow"},
    {"id": "f3", "name": "Repeat incidents", "category": "discipline", "threshold": 2, "condition": "above"},
]


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def create_demo_records(count: int, today: date, seed: int = 7) -> Dict[str, Any]:
    """Synthetic roster with every record source populated."""
    rng = random.Random(seed)
    data: Dict[str, List[Dict[str, Any]]] = {
        "students": [], "attendance": [], "grades": [], "assessments": [], "discipline": [],
        "observation_sessions": [], "observation_notes": [],
    }

    for teacher in TEACHERS:
        data["observation_sessions"].append({
            "observation_id": f"obs_{teacher.lower()}",
            "homeroom": f"Mrs. {teacher}",
            "teacher_name": teacher,
            "observation_timestamp": (today - timedelta(days=10)).isoformat() + "T09:30:00",
            "class_engagement_score": rng.randint(2, 5),
        })

    for i in range(count):
        student_id = f"stu_{i + 1:04d}"
        teacher = TEACHERS[i % len(TEACHERS)]
        data["students"].append({
            "id": student_id,
            "student_number": str(100000 + i),
            "first_name": rng.choice(FIRST_NAMES),
            "last_name": rng.choice(LAST_NAMES),
            "grade": str(rng.randint(3, 5)),
            "class_name": f"Mrs. {teacher}",
            "homeroom": f"Mrs. {teacher}",
        })

        presence = rng.uniform(0.75, 0.99)
        for day in range(60):
            when = today - timedelta(days=day)
            if when.weekday() >= 5:
                continue
            roll = rng.random()
            status = "present" if roll < presence else ("tardy" if roll < presence + 0.03 else "absent")
            data["attendance"].append({"student_id": student_id, "date": when.isoformat(), "status": status})

        base = rng.randint(55, 95)
        for course in COURSES:
            data["grades"].append({
                "student_id": student_id,
                "course": course,
                "grades": [{"period": f"Q{q}", "grade": f"{max(0, min(100, base + rng.randint(-8, 8)))}"} for q in range(1, 4)],
            })

        for source in ("iReady Reading", "iReady Math", "FAST ELA", "FAST Math"):
            percentile = rng.randint(5, 95)
            data["assessments"].append({
                "student_id": student_id,
                "source": source,
                "test_date": (today - timedelta(days=rng.randint(20, 90))).isoformat(),
                "score": rng.randint(350, 650),
                "percentile": percentile,
                "risk_level": "High Risk" if percentile < 25 else ("Low Risk" if percentile > 60 else "Moderate Risk"),
            })

        for _ in range(rng.choice([0, 0, 0, 1, 2, 4])):
            data["discipline"].append({
                "student_id": student_id,
                "incident_date": (today - timedelta(days=rng.randint(1, 90))).isoformat(),
                "incident_type": rng.choice(INCIDENT_TYPES),
                "severity_level": rng.randint(1, 3),
                "risk_score": rng.randint(0, 60),
            })

    return data


def main():
    parser = argparse.ArgumentParser(description="Build a student data context for a question")
    parser.add_argument("--question", "-q", required=True, help="Free-text question")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--data", help="JSON record file")
    source.add_argument("--demo", action="store_true", help="Use a synthetic roster")
    parser.add_argument("--students", type=int, default=40, help="Synthetic roster size for --demo")
    parser.add_argument("--deep", action="store_true", help="Attach risk profiles for named students")
    parser.add_argument("--subject", help="Also print a subject analysis (reading or math)")
    parser.add_argument("--output", "-o", help="Write the context JSON to this file")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args()
    setup_logging(args.log_level)

    today = date.today()
    if args.demo:
        store = InMemoryRecordStore.from_dict(create_demo_records(args.students, today))
        flag_rules = StaticFlagRuleSource(DEMO_FLAG_RULES)
    else:
        store = InMemoryRecordStore.from_json_file(args.data)
        flag_rules = None

    engine = StudentDataRetrieval(store, flag_rules=flag_rules, settings=Settings.load(), reference_date=today)
    context = asyncio.run(engine.retrieve_relevant_data(args.question, deep=args.deep or None))

    payload = context.model_dump(mode="json")
    if args.output:
        with open(args.output, "w") as f:
            json.dump(payload, f, indent=2)
        print(f"Context written to {args.output}")
    else:
        print(json.dumps(payload, indent=2))

    summary = context.summary
    print(f"\nStudents: {summary.total_students}  Query type: {summary.query_type}  "
          f"Budget: {context.metadata.budget_policy.value if context.metadata.budget_policy else 'none'}  "
          f"Size: {context.serialized_size()} chars", file=sys.stderr)

    if args.subject:
        print(build_subject_analysis(context, args.subject))


if __name__ == "__main__":
    main()
