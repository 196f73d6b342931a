import random

import pytest
from pydantic import ValidationError as PydanticValidationError

from utils.marks_validation import collect_subject_marks_errors, validate_subject_marks
from utils.payloads import BreakdownDraft, SubjectMarksDraft


def _row(total, *parts):
    return SubjectMarksDraft(
        total_marks=total,
        breakdowns=[BreakdownDraft(title=title, marks=marks) for title, marks in parts],
    )


def test_full_allocation_is_valid():
    assert validate_subject_marks([_row(100, ("Theory", 80), ("Practical", 20))]) is None


def test_under_allocation_is_valid():
    assert validate_subject_marks([_row(50, ("Written", 30))]) is None


def test_no_breakdowns_is_valid():
    assert validate_subject_marks([_row(25)]) is None


def test_over_allocation_is_rejected():
    err = validate_subject_marks([_row(100, ("Theory", 90), ("Practical", 20))])
    assert err is not None
    assert err.status_code == 400
    assert "110" in err.message and "100" in err.message


def test_float_noise_does_not_trip_the_sum_check():
    assert validate_subject_marks([_row(0.3, ("A", 0.1), ("B", 0.2))]) is None


@pytest.mark.parametrize("total", [0, -5])
def test_total_must_be_positive(total):
    errors = collect_subject_marks_errors([_row(total)])
    assert errors == ["subject_marks[0].total_marks must be greater than 0"]


def test_negative_breakdown_is_rejected():
    errors = collect_subject_marks_errors([_row(10, ("Oral", -1))])
    assert any("must not be negative" in e for e in errors)


def test_blank_breakdown_title_is_rejected():
    errors = collect_subject_marks_errors([_row(10, ("   ", 5))])
    assert errors == ["subject_marks[0].breakdowns[0].title must be a non-empty string"]


def test_empty_list_is_rejected():
    assert collect_subject_marks_errors([]) == [
        "subject_marks must contain at least one entry"
    ]


def test_every_problem_is_reported():
    errors = collect_subject_marks_errors(
        [_row(10, ("A", 8), ("B", 8)), _row(0, ("", 1))]
    )
    assert len(errors) == 3
    assert errors[0].startswith("subject_marks[0]")
    assert all(e.startswith("subject_marks[1]") for e in errors[1:])


def test_random_decompositions_match_the_sum_rule():
    rng = random.Random(20250714)
    for _ in range(200):
        total = rng.randint(1, 200)
        parts = [("Part %d" % i, rng.randint(0, 80)) for i in range(rng.randint(0, 4))]
        expected_ok = sum(m for _, m in parts) <= total
        assert (validate_subject_marks([_row(total, *parts)]) is None) == expected_ok


@pytest.mark.parametrize("total", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_total_is_rejected(total):
    row = SubjectMarksDraft.model_construct(total_marks=total, breakdowns=[])
    err = validate_subject_marks([row])
    assert err is not None
    assert err.details == ["subject_marks[0].total_marks must be greater than 0"]


def test_non_finite_breakdown_is_rejected():
    row = SubjectMarksDraft.model_construct(
        total_marks=100,
        breakdowns=[
            BreakdownDraft.model_construct(title="Theory", marks=float("nan")),
            BreakdownDraft.model_construct(title="Practical", marks=float("inf")),
        ],
    )
    assert collect_subject_marks_errors([row]) == [
        "subject_marks[0].breakdowns[0].marks must be a number",
        "subject_marks[0].breakdowns[1].marks must be a number",
    ]


@pytest.mark.parametrize("value", [float("nan"), float("inf")])
def test_payload_models_refuse_non_finite_numbers(value):
    with pytest.raises(PydanticValidationError):
        SubjectMarksDraft(total_marks=value)
    with pytest.raises(PydanticValidationError):
        BreakdownDraft(title="Theory", marks=value)
