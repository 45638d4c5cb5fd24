import pytest

from utils.errors import ValidationError
from utils.grade_calculation import get_grade_letter, summarize_grid, summarize_row
from utils.score_utils import (
    convert_scale_to_10,
    format_score,
    parse_score_input,
    validate_score_value,
)


def test_zero_and_empty_are_excluded_from_average():
    summary = summarize_row([0, 7, None, 8])
    assert summary.total == 15
    assert summary.count == 2
    assert summary.average == 7.5
    assert summary.grade == "B"


def test_string_inputs_are_parsed():
    summary = summarize_row(["9", "", "8.5", "0"])
    assert summary.count == 2
    assert summary.average == pytest.approx(8.75)
    assert summary.grade == "A"


def test_empty_row_has_dash_grade():
    summary = summarize_row([None, "", 0])
    assert (summary.total, summary.count, summary.average, summary.grade) == (0, 0, 0, "-")


@pytest.mark.parametrize(
    "average,letter",
    [(8.5, "A"), (8.49, "B"), (7, "B"), (5.5, "C"), (4, "D"), (3.99, "F"), (0.01, "F"), (0, "-")],
)
def test_grade_letter_boundaries(average, letter):
    assert get_grade_letter(average) == letter


def test_summarize_grid_is_sorted_by_student():
    results = summarize_grid({3: [5, 5], 1: [10]})
    assert [r["studentId"] for r in results] == [1, 3]
    assert results[1]["average"] == 5.0
    assert results[1]["grade"] == "D"


def test_row_summary_display():
    assert summarize_row([7, 8]).display() == {"total": "15.00", "average": "7.50", "grade": "B"}


@pytest.mark.parametrize("raw", ["10.005", "-1", "10.01", "abc", "nan", "Infinity"])
def test_invalid_inputs_rejected(raw):
    with pytest.raises(ValidationError):
        parse_score_input(raw)


@pytest.mark.parametrize(
    "raw,expected",
    [("10.00", 10.0), ("", None), ("  ", None), ("0", 0.0), ("7.25", 7.25), (".5", 0.5)],
)
def test_valid_inputs_accepted(raw, expected):
    assert parse_score_input(raw) == expected


def test_json_score_values():
    assert validate_score_value(None) is None
    assert validate_score_value(9) == 9.0
    assert validate_score_value(7.25) == 7.25
    with pytest.raises(ValidationError):
        validate_score_value(7.255)
    with pytest.raises(ValidationError):
        validate_score_value(True)
    with pytest.raises(ValidationError):
        validate_score_value(11)


def test_percentage_conversion():
    assert convert_scale_to_10(85) == 8.5
    assert convert_scale_to_10(6.8) == 6.8
    assert format_score(68) == "6.8"
