"""
Query interpretation: free-text question -> ParsedQuery.

A deliberately simple pattern-based extractor. Intent and category detection
is an ordered list of predicates (first match wins) kept behind the
QueryInterpreter interface so a learned classifier can replace it without
touching resolution, aggregation or budgeting.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Pattern, Tuple

from ..models.query import ParsedQuery, QueryIntent


logger = logging.getLogger(__name__)


STUDENT_NUMBER_PATTERN = re.compile(r"\b\d{6,9}\b")
QUOTED_PATTERN = re.compile(r"(?<!\w)[\"']([^\"']+)[\"'](?!\w)")

# Two-word patterns use a lookahead so overlapping pairs are all seen:
# "Does Jane Doe" yields both "Does Jane" and "Jane Doe".
NAME_PATTERNS: List[Pattern] = [
    re.compile(r"(?=\b([A-Z][a-z]+ [A-Z][a-z]+)\b)"),  # Title Case
    re.compile(r"(?=\b([A-Z]{2,} [A-Z]{2,})\b)"),  # ALL CAPS
    re.compile(r"\b([A-Z][A-Z\s]+[A-Z])\b"),  # Mixed uppercase runs
    re.compile(r"(?=\b([a-z]+ [a-z]+)\b)"),  # all lowercase
]

# Words that never appear in a student name. A capitalization match that
# contains one of them is ordinary question text.
NON_NAME_WORDS = frozenset("""
    a about above across after again against all also am an and any are as at
    be been before being below between both but by can could did do does doing
    done during each either every few for from had has have having he her here
    hers him his how i if in into is it its just least less me more most much
    my no nor not now of off on once only or other our out over own per same
    she should show so some such tell than that the their them then there these
    they this those through to too under until up very was we were what when
    where which while who whom why will with would you your give list find get
    see look looking need needs please compare versus vs doing going
    ms mr mrs dr miss class classroom teacher teachers school schools
    student students kid kids child children everyone anyone someone
    grade grades gpa academic academics performance performing perform
    attendance absent absence absences present tardy tardies chronic
    discipline behavior behaviour incident incidents referral referrals
    iready fast ela assessment assessments test tests score scores
    flag flags flagged alert alerts risk struggling failing passing
    improving improvement progress growth trend trends pattern patterns
    time over correlation relationship intervention interventions support help
    recommend recommendation recommendations reading math science writing
    english history subject subjects report summary data analysis overview
    lowest highest top bottom best worst rank ranked ranking average mean
    first second third fourth fifth sixth seventh eighth ninth tenth
    grader graders kindergarten kindergartener kindergarteners year month week day today
    doing well poorly badly lately recently this
""".split())

GRADE_PATTERN = re.compile(
    r"\b(?:grade\s*(k|kindergarten|\d{1,2})\b"
    r"|(k|kindergarten|\d{1,2})(?:st|nd|rd|th)?[\s-]*grade(?:rs?|s)?\b"
    r"|(kindergarten)(?:ers?)?\b)"
)
CLASS_PATTERN = re.compile(
    r"(?:\b(?i:classroom|class)|\b(?:Mrs|Ms|Mr|Dr)\.?)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"
)
RANKING_PATTERN = re.compile(
    r"\b(?:lowest|highest|top|bottom|best|worst|rank(?:ed|ing|s)?|compare|who are)\b",
    re.IGNORECASE,
)

DATA_TYPE_RULES: List[Tuple[str, Pattern]] = [
    ("attendance", re.compile(r"attendance|absent|present|tardy", re.IGNORECASE)),
    ("grades", re.compile(r"grade|gpa|academic|performance", re.IGNORECASE)),
    ("discipline", re.compile(r"discipline|behavior|incident", re.IGNORECASE)),
    ("iready", re.compile(r"iready|i-ready", re.IGNORECASE)),
    ("fast", re.compile(r"fast|assessment|test|score", re.IGNORECASE)),
    ("flags", re.compile(r"flag|flagged|alert", re.IGNORECASE)),
]

METRIC_RULES: List[Tuple[str, Pattern]] = [
    ("at-risk", re.compile(r"struggling|at.risk|low.perform|failing", re.IGNORECASE)),
    ("improvement", re.compile(r"improving|progress|growth", re.IGNORECASE)),
    ("trends", re.compile(r"trend|pattern|over.time", re.IGNORECASE)),
    ("correlation", re.compile(r"correlat|relationship|connect", re.IGNORECASE)),
    ("intervention", re.compile(r"intervention|support|help", re.IGNORECASE)),
]

IntentRule = Tuple[QueryIntent, Callable[[str, List[str]], bool]]

INTENT_RULES: List[IntentRule] = [
    (QueryIntent.INDIVIDUAL, lambda text, ids: len(ids) == 1),
    (QueryIntent.COMPARISON, lambda text, ids: bool(
        re.search(r"\b(?:compar\w*|versus|vs|between)\b", text, re.IGNORECASE))),
    (QueryIntent.TREND, lambda text, ids: bool(
        re.search(r"trend|over.time|pattern|chang", text, re.IGNORECASE))),
    (QueryIntent.INTERVENTION, lambda text, ids: bool(
        re.search(r"help|support|intervention|recommend", text, re.IGNORECASE))),
]


def is_ranking_query(question: str) -> bool:
    """True when the raw text asks for a ranking or comparison across students."""
    return bool(RANKING_PATTERN.search(question))


def _looks_like_name(candidate: str) -> bool:
    words = candidate.lower().split()
    if not words:
        return False
    return not any(word in NON_NAME_WORDS for word in words)


class QueryInterpreter(ABC):
    """Turns a free-text question into a ParsedQuery."""

    @abstractmethod
    def parse(self, question: str) -> ParsedQuery:
        pass

    def is_ranking_query(self, question: str) -> bool:
        return is_ranking_query(question)


class RuleBasedQueryInterpreter(QueryInterpreter):
    """Regex-driven interpreter. Never raises; an empty parse means broad analysis."""

    def __init__(self, intent_rules: Optional[List[IntentRule]] = None):
        self.intent_rules = intent_rules if intent_rules is not None else INTENT_RULES

    def parse(self, question: str) -> ParsedQuery:
        identifiers = self.extract_identifiers(question)
        class_name = self.extract_class_name(question)
        class_match = CLASS_PATTERN.search(question)
        if class_match:
            # "Ms. Garcia Lopez" names a teacher, not a student
            identifiers = [i for i in identifiers if i not in class_match.group(1)]

        parsed = ParsedQuery(
            student_identifiers=identifiers,
            grade_level=self.extract_grade_level(question),
            class_name=class_name,
            data_types=[name for name, pattern in DATA_TYPE_RULES if pattern.search(question)],
            metrics=[name for name, pattern in METRIC_RULES if pattern.search(question)],
            intent=self.classify_intent(question, identifiers),
        )
        logger.info(
            f"Parsed query: {len(parsed.student_identifiers)} identifiers, "
            f"grade={parsed.grade_level}, class={parsed.class_name}, intent={parsed.intent.value}",
            extra={"parsed_query": parsed.model_dump()},
        )
        return parsed

    def extract_identifiers(self, question: str) -> List[str]:
        """Student numbers, quoted strings, then capitalization patterns, de-duplicated in order."""
        identifiers: List[str] = []

        def add(candidate: str) -> None:
            cleaned = candidate.replace('"', "").replace("'", "").strip()
            if cleaned and cleaned not in identifiers:
                identifiers.append(cleaned)

        for match in STUDENT_NUMBER_PATTERN.findall(question):
            add(match)

        for match in QUOTED_PATTERN.findall(question):
            add(match)

        for pattern in NAME_PATTERNS:
            for match in pattern.findall(question):
                if _looks_like_name(match):
                    add(match)

        return identifiers

    def extract_grade_level(self, question: str) -> Optional[str]:
        match = GRADE_PATTERN.search(question.lower())
        if not match:
            return None
        token = next(group for group in match.groups() if group)
        if token in ("k", "kindergarten"):
            return "K"
        return str(int(token))

    def extract_class_name(self, question: str) -> Optional[str]:
        """Surname token following an honorific or the word class/classroom."""
        match = CLASS_PATTERN.search(question)
        if not match:
            return None
        return match.group(1).split()[-1]

    def classify_intent(self, question: str, identifiers: List[str]) -> QueryIntent:
        for intent, predicate in self.intent_rules:
            if predicate(question, identifiers):
                return intent
        return QueryIntent.ANALYSIS
