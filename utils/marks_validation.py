import math
from typing import List, Optional, Sequence

from utils.errors import ValidationError
from utils.payloads import SubjectMarksDraft

# Absorbs float noise such as 0.1 + 0.2 when comparing breakdown sums.
MARKS_TOLERANCE = 1e-6


def is_number(value) -> bool:
    """True for real, finite numbers (rejects None, NaN and infinities)."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def collect_subject_marks_errors(subject_marks: Sequence[SubjectMarksDraft]) -> List[str]:
    """Check a subject-marks list against the decomposition rules.

    Rules:
    - at least one subject-marks row
    - total_marks is a finite number > 0
    - every breakdown has a non-empty title and finite, non-negative marks
    - sum(breakdowns.marks) <= total_marks (under-allocation is fine)

    Returns a list of human-readable problems; empty when valid.
    """
    errors = []
    if not subject_marks:
        return ["subject_marks must contain at least one entry"]

    for i, row in enumerate(subject_marks):
        path = f"subject_marks[{i}]"
        total = row.total_marks
        total_ok = is_number(total) and total > 0
        if not total_ok:
            errors.append(f"{path}.total_marks must be greater than 0")

        allocated = 0.0
        for j, bd in enumerate(row.breakdowns or []):
            bpath = f"{path}.breakdowns[{j}]"
            if not (bd.title or "").strip():
                errors.append(f"{bpath}.title must be a non-empty string")
            if not is_number(bd.marks):
                errors.append(f"{bpath}.marks must be a number")
                continue
            if bd.marks < 0:
                errors.append(f"{bpath}.marks must not be negative")
                continue
            allocated += float(bd.marks)

        if total_ok and allocated > total + MARKS_TOLERANCE:
            errors.append(
                f"{path} breakdown marks ({allocated:g}) exceed total marks ({total:g})"
            )
    return errors


def validate_subject_marks(
    subject_marks: Sequence[SubjectMarksDraft],
) -> Optional[ValidationError]:
    """Return a ValidationError describing every problem, or None when valid."""
    errors = collect_subject_marks_errors(subject_marks)
    if errors:
        return ValidationError(errors[0], errors)
    return None
