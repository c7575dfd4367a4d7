"""
Retrieval pipeline for student context.

This package provides:
- Rule-based query interpretation behind a swappable interface
- Student resolution with fallback and ranking override policies
- Concurrent per-source aggregation and derived metrics
- Deep-mode risk profiles and context budgeting
- Subject analysis reports and name/id translation
"""

from .interpreter import QueryInterpreter, RuleBasedQueryInterpreter, is_ranking_query
from .resolver import ResolutionResult, StudentResolver, matches_identifier
from .aggregator import AggregatedSources, SourceAggregator
from .profiler import RiskProfiler, build_profile
from .budget import ContextBudgeter, FocusClassifier, KeywordFocusClassifier
from .engine import StudentDataRetrieval
from .report import build_subject_analysis
from .translation import (
    AnonymizedIdentity,
    StudentNameMapping,
    StudentNameTranslator,
    TranslationResult,
    name_similarity,
)

__all__ = [
    "QueryInterpreter",
    "RuleBasedQueryInterpreter",
    "is_ranking_query",
    "ResolutionResult",
    "StudentResolver",
    "matches_identifier",
    "AggregatedSources",
    "SourceAggregator",
    "RiskProfiler",
    "build_profile",
    "ContextBudgeter",
    "FocusClassifier",
    "KeywordFocusClassifier",
    "StudentDataRetrieval",
    "build_subject_analysis",
    "AnonymizedIdentity",
    "StudentNameMapping",
    "StudentNameTranslator",
    "TranslationResult",
    "name_similarity",
]
