"""Tests for rule-based query interpretation."""

import pytest

from student_context.models import ParsedQuery, QueryIntent
from student_context.retrieval.interpreter import (
    QueryInterpreter,
    RuleBasedQueryInterpreter,
    is_ranking_query,
)


@pytest.fixture
def interpreter():
    return RuleBasedQueryInterpreter()


class TestIdentifierExtraction:

    def test_quoted_name(self, interpreter):
        parsed = interpreter.parse("How is 'Jane Doe' doing in math?")
        assert parsed.student_identifiers == ["Jane Doe"]
        assert parsed.intent == QueryIntent.INDIVIDUAL

    def test_student_number(self, interpreter):
        assert interpreter.extract_identifiers("Pull records for 1234567") == ["1234567"]

    def test_title_case_names(self, interpreter):
        identifiers = interpreter.extract_identifiers("Compare Jane Doe and John Smith")
        assert identifiers == ["Jane Doe", "John Smith"]

    def test_all_caps_name(self, interpreter):
        assert "KIYOMI WILCOX" in interpreter.extract_identifiers("Show me KIYOMI WILCOX")

    def test_lowercase_name(self, interpreter):
        assert "jane doe" in interpreter.extract_identifiers("how is jane doe doing")

    def test_ordinary_text_is_not_a_name(self, interpreter):
        assert interpreter.extract_identifiers("Tell me about 3rd grade reading") == []
        assert interpreter.extract_identifiers("Who has the highest attendance?") == []

    def test_teacher_name_is_not_a_student(self, interpreter):
        parsed = interpreter.parse("Show attendance for Mrs. Garcia Lopez class")
        assert parsed.student_identifiers == []
        assert parsed.class_name == "Lopez"


class TestGradeAndClass:

    @pytest.mark.parametrize("question,expected", [
        ("Tell me about 3rd grade reading", "3"),
        ("How is grade 5 doing?", "5"),
        ("List 10th-grade students", "10"),
        ("How are kindergarten students doing?", "K"),
        ("Show grade K attendance", "K"),
        ("How are 3rd graders doing?", "3"),
        ("Any 5th graders missing work?", "5"),
        ("How are the kindergarteners reading?", "K"),
        ("Kindergartener attendance this month", "K"),
        ("Who is struggling?", None),
    ])
    def test_grade_level(self, interpreter, question, expected):
        assert interpreter.extract_grade_level(question) == expected

    def test_class_after_honorific(self, interpreter):
        assert interpreter.extract_class_name("How is Mr. Hart doing with reading?") == "Hart"

    def test_class_keyword(self, interpreter):
        assert interpreter.extract_class_name("Show the class Rivera attendance") == "Rivera"

    def test_no_class(self, interpreter):
        assert interpreter.extract_class_name("Who is absent most?") is None


class TestIntentAndCategories:

    def test_analysis_is_default(self, interpreter):
        assert interpreter.parse("Tell me about 3rd grade reading").intent == QueryIntent.ANALYSIS

    def test_comparison(self, interpreter):
        assert interpreter.parse("Compare Jane Doe and John Smith").intent == QueryIntent.COMPARISON

    def test_trend(self, interpreter):
        assert interpreter.parse("Show attendance trends over time").intent == QueryIntent.TREND

    def test_intervention(self, interpreter):
        assert interpreter.parse("What interventions help struggling readers?").intent == QueryIntent.INTERVENTION

    def test_single_identifier_wins_over_keywords(self, interpreter):
        parsed = interpreter.parse("Compare 'Jane Doe' to last year")
        assert parsed.intent == QueryIntent.INDIVIDUAL

    def test_data_types_and_metrics(self, interpreter):
        parsed = interpreter.parse("Which students with low attendance and failing grades need support?")
        assert "attendance" in parsed.data_types
        assert "grades" in parsed.data_types
        assert "at-risk" in parsed.metrics
        assert "intervention" in parsed.metrics

    def test_custom_intent_rules(self):
        custom = RuleBasedQueryInterpreter(intent_rules=[(QueryIntent.GROUP, lambda text, ids: "group" in text)])
        assert custom.parse("reading group").intent == QueryIntent.GROUP
        assert custom.parse("Tell me something").intent == QueryIntent.ANALYSIS

    def test_empty_question(self, interpreter):
        parsed = interpreter.parse("")
        assert isinstance(parsed, ParsedQuery)
        assert parsed.is_empty
        assert parsed.intent == QueryIntent.ANALYSIS

    def test_is_a_query_interpreter(self, interpreter):
        assert isinstance(interpreter, QueryInterpreter)


class TestRankingDetection:

    @pytest.mark.parametrize("question", [
        "Who has the lowest GPA?",
        "Who has the highest attendance?",
        "Show the top 5 readers",
        "Rank students by incidents",
        "Who are the struggling students?",
    ])
    def test_ranking_questions(self, question):
        assert is_ranking_query(question)

    @pytest.mark.parametrize("question", [
        "How is 'Jane Doe' doing in math?",
        "Tell me about 3rd grade reading",
        "Is the stopwatch working?",
    ])
    def test_non_ranking_questions(self, question):
        assert not is_ranking_query(question)
