"""
Unit tests for services/loose_extractor.py
"""
import pytest

from belto_grader.services.loose_extractor import FIRST_NUMBER_NOTE, extract_grade


@pytest.mark.unit
class TestExtractGrade:
    def test_grade_over_100_with_feedback(self):
        result = extract_grade("Grade: 84/100\nFeedback: clear and complete")
        assert result.grade == 84
        assert result.feedback == "clear and complete"
        assert result.method == "pattern-GradeN/100"
        assert result.note is None

    def test_json_object_wins(self):
        text = 'Here: {"grade": 91.6, "feedback": "Strong argument"} Grade: 40/100'
        result = extract_grade(text)
        assert result.grade == 92
        assert result.feedback == "Strong argument"
        assert result.method == "json"

    def test_json_grade_out_of_range_falls_through(self):
        result = extract_grade('{"grade": 150}')
        assert result.grade is None
        assert result.method == "none"

    def test_json_grade_as_string_is_not_numeric(self):
        result = extract_grade('{"grade": "88"}')
        assert result.grade == 88
        assert result.method == "first-0-100"
        assert result.note == FIRST_NUMBER_NOTE

    def test_bare_score_label(self):
        result = extract_grade("Score = 72\r\nFeedback - needs work")
        assert result.grade == 72
        assert result.feedback == "needs work"
        assert result.method == "pattern-GradeN"

    def test_labelled_grade_above_100_skipped(self):
        result = extract_grade("Score: 450 overall, roughly 45 in practice")
        assert result.grade == 45
        assert result.method == "first-0-100"

    def test_first_integer_fallback(self):
        result = extract_grade("The essay earns 7 out of 10.")
        assert result.grade == 7
        assert result.feedback is None
        assert result.method == "first-0-100"
        assert result.note == FIRST_NUMBER_NOTE

    def test_oversized_number_is_not_a_grade(self):
        result = extract_grade("Result " + "1" * 5000)
        assert result.grade is None
        assert result.method == "none"

    def test_unparseable_nested_object_falls_through(self):
        text = '{"a":' * 10000 + "1" + "}" * 10000
        result = extract_grade(text)
        assert result.grade == 1
        assert result.method == "first-0-100"

    @pytest.mark.parametrize("text", ["No numbers at all", "", None, "Worth 250 points"])
    def test_nothing_found(self, text):
        result = extract_grade(text)
        assert result.grade is None
        assert result.feedback is None
        assert result.method == "none"
