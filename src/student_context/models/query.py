"""Structured form of a free-text question about students."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class QueryIntent(str, Enum):
    """What the question is asking for."""
    INDIVIDUAL = "individual"
    GROUP = "group"
    TREND = "trend"
    COMPARISON = "comparison"
    INTERVENTION = "intervention"
    ANALYSIS = "analysis"


class QueryFocus(str, Enum):
    """Budget policy selected for a question."""
    GRADES = "grades"
    ATTENDANCE = "attendance"
    DISCIPLINE = "discipline"
    BALANCED = "balanced"


class ParsedQuery(BaseModel):
    """Entities and intent extracted from a question. Engine-internal, never persisted."""
    student_identifiers: List[str] = []
    grade_level: Optional[str] = None  # "K" or a bare number, e.g. "3"
    class_name: Optional[str] = None  # Surname token only
    data_types: List[str] = []  # attendance, grades, discipline, iready, fast, flags
    metrics: List[str] = []  # at-risk, improvement, trends, correlation, intervention
    intent: QueryIntent = QueryIntent.ANALYSIS

    @property
    def is_empty(self) -> bool:
        """True when nothing narrows the roster."""
        return not (self.student_identifiers or self.grade_level or self.class_name)
