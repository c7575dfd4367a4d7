"""
Student resolution: ParsedQuery + roster -> candidate set.

Filters are applied as successive narrowing steps, each skipped when the
corresponding ParsedQuery field is empty. Fallbacks decide what an empty
result means, and ranking questions always see the whole roster.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..config import RetrievalSettings
from ..models.query import ParsedQuery, QueryIntent
from ..models.records import Student
from .interpreter import is_ranking_query


logger = logging.getLogger(__name__)

MIN_NAME_MATCH_LENGTH = 3


@dataclass
class ResolutionResult:
    """Candidate set for a question and how it was reached."""
    students: List[Student]
    identifier_matched: bool = False  # At least one student matched a named identifier
    ranking_override: bool = False
    fallback: Optional[str] = None  # "roster", "sample" or "downsample"

    @property
    def student_ids(self) -> List[str]:
        return [s.id for s in self.students]


def matches_identifier(student: Student, identifier: str) -> bool:
    """
    Test one extracted identifier against a student.

    Order: exact id, student-number containment, then name forms (full name,
    first only, last only, partial first, partial last, reversed
    "last, first"). Identifiers shorter than three characters never satisfy a
    name match.
    """
    identifier = identifier.strip()
    if not identifier:
        return False

    if student.id == identifier:
        return True

    if student.student_number and identifier in student.student_number:
        return True

    ident = identifier.lower()
    if len(ident) < MIN_NAME_MATCH_LENGTH:
        return False

    first = (student.first_name or "").lower().strip()
    last = (student.last_name or "").lower().strip()
    full = f"{first} {last}".strip()
    if not full:
        return False

    if full == ident or ident in full or full in ident:
        return True

    tokens = ident.replace(",", " ").split()
    if len(tokens) == 1:
        token = tokens[0]
        return bool(
            (first and first == token)
            or (last and last == token)
            or (first and token in first)
            or (last and token in last)
        )

    if first and last:
        if tokens[0] in first and tokens[-1] in last:
            return True
        if f"{last} {first}" == " ".join(tokens):
            return True
    return False


class StudentResolver:
    """Applies identifier, grade and class filters plus the fallback policy."""

    def __init__(self, settings: Optional[RetrievalSettings] = None):
        self.settings = settings or RetrievalSettings()

    def resolve(
        self,
        parsed: ParsedQuery,
        roster: List[Student],
        question: str,
        ranking: Optional[bool] = None,
    ) -> ResolutionResult:
        if ranking is None:
            ranking = is_ranking_query(question)

        candidates = list(roster)
        identifier_matched = False

        if parsed.student_identifiers:
            candidates = [
                s for s in candidates
                if any(matches_identifier(s, identifier) for identifier in parsed.student_identifiers)
            ]
            identifier_matched = bool(candidates)
            logger.debug(f"Identifier filter: {len(roster)} -> {len(candidates)} students")
            if not candidates:
                logger.warning(f"No students matched identifiers: {parsed.student_identifiers}")

        if parsed.grade_level:
            before = len(candidates)
            candidates = [s for s in candidates if s.grade == parsed.grade_level]
            logger.debug(f"Grade filter '{parsed.grade_level}': {before} -> {len(candidates)} students")

        if parsed.class_name:
            before = len(candidates)
            class_name = parsed.class_name.lower()
            candidates = [s for s in candidates if class_name in (s.class_name or "").lower()]
            logger.debug(f"Class filter '{parsed.class_name}': {before} -> {len(candidates)} students")

        result = ResolutionResult(students=candidates, identifier_matched=identifier_matched)

        if not candidates:
            if ranking:
                result.students = list(roster)
                result.fallback = "roster"
            else:
                result.students = list(roster[:self.settings.analysis_sample_size])
                result.fallback = "sample"
            result.identifier_matched = False
        elif (
            len(candidates) > self.settings.max_analysis_students
            and parsed.intent == QueryIntent.ANALYSIS
            and not parsed.grade_level
        ):
            result.students = candidates[:self.settings.max_analysis_students]
            result.fallback = "downsample"

        if ranking:
            result.students = list(roster)
            result.ranking_override = True

        logger.info(
            f"Resolved {len(result.students)} candidate students",
            extra={
                "fallback": result.fallback,
                "ranking_override": result.ranking_override,
                "identifier_matched": result.identifier_matched,
            },
        )
        return result
