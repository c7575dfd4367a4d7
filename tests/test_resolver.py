"""Tests for student resolution and fallback policies."""

import pytest

from student_context.config import RetrievalSettings
from student_context.models import ParsedQuery, QueryIntent
from student_context.retrieval.resolver import StudentResolver, matches_identifier

from conftest import make_student


class TestMatchesIdentifier:

    def test_exact_id(self, roster):
        assert matches_identifier(roster[0], "s1")

    def test_student_number_containment(self, roster):
        assert matches_identifier(roster[0], "1000001")
        assert matches_identifier(roster[0], "00001")

    @pytest.mark.parametrize("identifier", ["Jane Doe", "jane doe", "Jane", "Doe", "Jan", "Doe Jane", "Doe, Jane", "J Doe"])
    def test_name_forms(self, roster, identifier):
        assert matches_identifier(roster[0], identifier)

    def test_partial_first_and_last(self, roster):
        assert matches_identifier(roster[2], "Mar Gar")

    def test_partial_names_match_anywhere_in_the_name(self, roster):
        assert matches_identifier(roster[2], "aria")
        assert matches_identifier(roster[2], "aria arc")
        assert not matches_identifier(roster[0], "aria arc")

    def test_short_identifier_never_matches_names(self, roster):
        assert not matches_identifier(roster[1], "Jo")

    def test_non_match(self, roster):
        assert not matches_identifier(roster[0], "Maria Garcia")
        assert not matches_identifier(roster[0], "")


class TestStudentResolver:

    @pytest.fixture
    def resolver(self):
        return StudentResolver(RetrievalSettings(analysis_sample_size=2, max_analysis_students=10))

    def test_identifier_narrows_to_match(self, resolver, roster):
        parsed = ParsedQuery(student_identifiers=["Jane Doe"], intent=QueryIntent.INDIVIDUAL)
        result = resolver.resolve(parsed, roster, "How is 'Jane Doe' doing in math?")
        assert result.student_ids == ["s1"]
        assert result.identifier_matched
        assert result.fallback is None
        assert not result.ranking_override

    def test_prefix_identifier_matches_several(self, resolver, roster):
        parsed = ParsedQuery(student_identifiers=["Jan"])
        result = resolver.resolve(parsed, roster, "How is Jan doing?")
        assert result.student_ids == ["s1", "s4"]

    def test_unmatched_identifier_falls_back_to_sample(self, resolver, roster):
        parsed = ParsedQuery(student_identifiers=["Nobody Known"])
        result = resolver.resolve(parsed, roster, "How is Nobody Known doing?")
        assert result.student_ids == ["s1", "s2"]
        assert result.fallback == "sample"
        assert not result.identifier_matched

    def test_ranking_override_returns_full_roster(self, resolver, roster):
        parsed = ParsedQuery(student_identifiers=["Lowest Gpa"])
        result = resolver.resolve(parsed, roster, "Who has the lowest GPA?")
        assert result.student_ids == [s.id for s in roster]
        assert result.ranking_override

    def test_ranking_override_wins_over_filters(self, resolver, roster):
        parsed = ParsedQuery(grade_level="4")
        result = resolver.resolve(parsed, roster, "Who has the highest attendance in grade 4?")
        assert len(result.students) == len(roster)

    def test_explicit_ranking_flag(self, resolver, roster):
        parsed = ParsedQuery(student_identifiers=["Jane Doe"])
        result = resolver.resolve(parsed, roster, "anything", ranking=True)
        assert result.ranking_override
        assert len(result.students) == 4

    def test_grade_filter(self, resolver, roster):
        result = resolver.resolve(ParsedQuery(grade_level="3"), roster, "Tell me about 3rd grade reading")
        assert result.student_ids == ["s1", "s2"]

    def test_class_filter_is_case_insensitive_substring(self, resolver, roster):
        result = resolver.resolve(ParsedQuery(class_name="hart"), roster, "How is Mr. Hart's class?")
        assert result.student_ids == ["s3", "s4"]

    def test_grade_filtered_analysis_is_not_downsampled(self, resolver):
        big_roster = [make_student(f"g{i}", f"Kid{i}", "Three", grade="3") for i in range(40)]
        parsed = ParsedQuery(grade_level="3", intent=QueryIntent.ANALYSIS)
        result = resolver.resolve(parsed, big_roster, "Tell me about 3rd grade reading")
        assert len(result.students) == 40
        assert result.fallback is None

    def test_unfiltered_analysis_is_downsampled(self, resolver):
        big_roster = [make_student(f"g{i}", f"Kid{i}", "Three") for i in range(30)]
        result = resolver.resolve(ParsedQuery(), big_roster, "Give me an overview")
        assert len(result.students) == 10
        assert result.fallback == "downsample"

    def test_non_analysis_intent_is_not_downsampled(self, resolver):
        big_roster = [make_student(f"g{i}", f"Kid{i}", "Three") for i in range(30)]
        result = resolver.resolve(ParsedQuery(intent=QueryIntent.TREND), big_roster, "Show trends")
        assert len(result.students) == 30

    def test_empty_roster(self, resolver):
        result = resolver.resolve(ParsedQuery(), [], "Anything at all")
        assert result.students == []
        assert result.fallback == "sample"
