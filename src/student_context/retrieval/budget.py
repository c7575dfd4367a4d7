"""
Context budgeting: lossy truncation of an assembled context before it is
handed to a consumer with a fixed token budget.

The policy is picked by sniffing the raw question text, not the ParsedQuery.
Every truncation keeps the most recent entries.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Pattern, Tuple

from ..config import BudgetSettings, RetrievalSettings
from ..models.context import StudentDataContext
from ..models.query import QueryFocus


logger = logging.getLogger(__name__)


# Checked in order, first match wins
FOCUS_RULES: List[Tuple[QueryFocus, Pattern]] = [
    (QueryFocus.GRADES, re.compile(r"gpa|grade", re.IGNORECASE)),
    (QueryFocus.ATTENDANCE, re.compile(r"attendance|absent|present|tardy", re.IGNORECASE)),
    (QueryFocus.DISCIPLINE, re.compile(r"discipline|behavior|incident", re.IGNORECASE)),
]


class FocusClassifier(ABC):
    """Decides which budget policy a question calls for."""

    @abstractmethod
    def classify(self, question: str) -> QueryFocus:
        pass


class KeywordFocusClassifier(FocusClassifier):

    def __init__(self, rules: Optional[List[Tuple[QueryFocus, Pattern]]] = None):
        self.rules = rules if rules is not None else FOCUS_RULES

    def classify(self, question: str) -> QueryFocus:
        for focus, pattern in self.rules:
            if pattern.search(question):
                return focus
        return QueryFocus.BALANCED


class ContextBudgeter:
    """Applies one of four truncation policies to a StudentDataContext."""

    def __init__(
        self,
        budget: Optional[BudgetSettings] = None,
        settings: Optional[RetrievalSettings] = None,
    ):
        self.budget = budget or BudgetSettings()
        self.settings = settings or RetrievalSettings()

    def should_budget(self, candidate_count: int, ranking: bool) -> bool:
        """Large candidate sets and ranking questions are always budgeted."""
        return ranking or candidate_count > self.settings.budget_student_threshold

    def apply(self, context: StudentDataContext, focus: QueryFocus) -> StudentDataContext:
        """Return a truncated copy; the input context is left untouched."""
        budgeted = context.model_copy(deep=True)

        if focus == QueryFocus.GRADES:
            self._grade_focus(budgeted)
        elif focus == QueryFocus.ATTENDANCE:
            self._attendance_focus(budgeted)
        elif focus == QueryFocus.DISCIPLINE:
            self._discipline_focus(budgeted)
        else:
            self._balanced(budgeted)

        logger.info(
            f"Applied {focus.value} budget policy to {len(context.students)} students",
            extra={
                "budget_policy": focus.value,
                "size_before": context.serialized_size(),
                "size_after": budgeted.serialized_size(),
            },
        )
        return budgeted

    def _cap_assessments(self, context: StudentDataContext) -> None:
        cap = self.budget.assessment_entries
        for summary in context.assessments:
            for name, entries in summary.buckets().items():
                setattr(summary, name, entries[:cap])

    def _grade_focus(self, context: StudentDataContext) -> None:
        months = self.budget.grade_focus_months
        for summary in context.attendance:
            summary.all_attendance_records = []
            summary.monthly_breakdown = summary.monthly_breakdown[-months:] if months else []
        for summary in context.discipline:
            summary.incidents = []
        self._cap_assessments(context)

    def _attendance_focus(self, context: StudentDataContext) -> None:
        context.grades = []
        context.discipline = []
        context.assessments = []

    def _discipline_focus(self, context: StudentDataContext) -> None:
        context.grades = []
        context.assessments = []
        for summary in context.attendance:
            summary.all_attendance_records = []
            summary.recent_records = []
            summary.monthly_breakdown = []

    def _balanced(self, context: StudentDataContext) -> None:
        months = self.budget.default_months
        for summary in context.attendance:
            summary.all_attendance_records = summary.all_attendance_records[:self.budget.default_attendance_records]
            summary.monthly_breakdown = summary.monthly_breakdown[-months:] if months else []
        for summary in context.discipline:
            summary.incidents = summary.incidents[:self.budget.default_incidents]
        self._cap_assessments(context)
