"""
End-to-end retrieval pipeline.

question -> ParsedQuery -> candidate set -> per-source summaries -> flags and
summary statistics -> optional deep profiles -> budgeting -> StudentDataContext.
"""

import logging
from datetime import date
from typing import List, Optional, Sequence

from ..config import Settings
from ..database.store import FlagRuleSource, RecordStore
from ..models.context import ContextMetadata, StudentDataContext, StudentRiskProfile
from ..models.records import FlagRule
from . import metrics
from .aggregator import SourceAggregator, student_entry
from .budget import ContextBudgeter, FocusClassifier, KeywordFocusClassifier
from .interpreter import QueryInterpreter, RuleBasedQueryInterpreter
from .profiler import RiskProfiler
from .resolver import ResolutionResult, StudentResolver


logger = logging.getLogger(__name__)


class StudentDataRetrieval:
    """
    Builds a StudentDataContext for a free-text question.

    Collaborators are injected; the interpreter and focus classifier default to
    the rule-based implementations. Pass ``reference_date`` to pin every
    "recent" window to a fixed day.
    """

    def __init__(
        self,
        store: RecordStore,
        flag_rules: Optional[FlagRuleSource] = None,
        settings: Optional[Settings] = None,
        interpreter: Optional[QueryInterpreter] = None,
        classifier: Optional[FocusClassifier] = None,
        reference_date: Optional[date] = None,
    ):
        self.store = store
        self.flag_rules = flag_rules
        self.settings = settings or Settings.load()
        self.interpreter = interpreter or RuleBasedQueryInterpreter()
        self.classifier = classifier or KeywordFocusClassifier()

        retrieval = self.settings.retrieval
        self.resolver = StudentResolver(retrieval)
        self.aggregator = SourceAggregator(store, retrieval, reference_date)
        self.profiler = RiskProfiler(store, retrieval, reference_date)
        self.budgeter = ContextBudgeter(self.settings.budget, retrieval)

    async def retrieve_relevant_data(self, question: str, deep: Optional[bool] = None) -> StudentDataContext:
        """
        Run the full pipeline. Never raises; any unexpected failure yields an
        empty, well-formed context.

        Args:
            question: The user's question, already anonymized upstream
            deep: Force deep-mode profiles on or off; None follows settings
        """
        try:
            return await self._retrieve(question, deep)
        except Exception as e:
            logger.error(f"Error retrieving student data: {e}", exc_info=True)
            return StudentDataContext.empty(question)

    async def create_student_profiles(self, student_ids: Sequence[str]) -> List[StudentRiskProfile]:
        """Deep profiles for explicitly chosen students, bypassing question parsing."""
        try:
            students = await self.store.get_students_by_ids(student_ids)
            return await self.profiler.build_profiles(students)
        except Exception as e:
            logger.error(f"Error creating student profiles: {e}", exc_info=True)
            return []

    async def _load_flag_rules(self) -> List[FlagRule]:
        if self.flag_rules is None:
            return []
        try:
            return await self.flag_rules.get_active_rules()
        except Exception as e:
            logger.error(f"Error loading flag rules: {e}", extra={"source": "flags"})
            return []

    def _wants_profiles(self, resolution: ResolutionResult, deep: Optional[bool]) -> bool:
        retrieval = self.settings.retrieval
        enabled = retrieval.deep_mode_enabled if deep is None else deep
        return (
            enabled
            and resolution.identifier_matched
            and not resolution.ranking_override
            and 0 < len(resolution.students) <= retrieval.deep_mode_max_students
        )

    async def _retrieve(self, question: str, deep: Optional[bool]) -> StudentDataContext:
        parsed = self.interpreter.parse(question)
        ranking = self.interpreter.is_ranking_query(question)

        roster = await self.store.get_students()
        resolution = self.resolver.resolve(parsed, roster, question, ranking=ranking)
        students = resolution.students

        rules = await self._load_flag_rules()
        aggregated = await self.aggregator.aggregate(students, rules)

        entries = [student_entry(s) for s in students]
        context = StudentDataContext(
            students=entries,
            attendance=aggregated.attendance,
            grades=aggregated.grades,
            assessments=aggregated.assessments,
            discipline=aggregated.discipline,
            observation_sessions=aggregated.observation_sessions,
            observation_notes=aggregated.observation_notes,
            flags=aggregated.flags,
            summary=metrics.calculate_summary(
                entries, aggregated.attendance, aggregated.grades, aggregated.flags, self.settings.retrieval
            ),
        )

        if self._wants_profiles(resolution, deep):
            context.profiles = await self.profiler.build_profiles(students)

        budget_policy = None
        if self.budgeter.should_budget(len(students), ranking):
            budget_policy = self.classifier.classify(question)
            context = self.budgeter.apply(context, budget_policy)

        context.metadata = ContextMetadata(
            question=question,
            parsed_query=parsed,
            ranking_override=resolution.ranking_override,
            budget_policy=budget_policy,
        )

        logger.info(
            f"Retrieved context for {len(entries)} students",
            extra={
                "query_type": context.summary.query_type,
                "budget_policy": budget_policy.value if budget_policy else None,
                "profiles": len(context.profiles),
            },
        )
        return context
