from typing import List, Optional, Sequence

import numpy as np
from scipy.stats import rankdata

# Percentage of total marks needed to pass.
DEFAULT_PASS_PERCENTAGE = 33.0


def rank_totals(totals: Sequence[Optional[float]]) -> List[Optional[int]]:
    """Competition ranks (1 = highest); ties share the lowest rank.

    Students without marks get None and do not take a rank.
    """
    marked_idx = [i for i, t in enumerate(totals) if t is not None]
    ranks: List[Optional[int]] = [None] * len(totals)
    if not marked_idx:
        return ranks
    values = np.array([float(totals[i]) for i in marked_idx])
    # rankdata ranks ascending; negate so the best total is rank 1
    computed = rankdata(-values, method="min")
    for i, r in zip(marked_idx, computed):
        ranks[i] = int(r)
    return ranks


def summarize_marks(
    totals: Sequence[Optional[float]],
    total_marks: float,
    pass_percentage: float = DEFAULT_PASS_PERCENTAGE,
) -> dict:
    """Descriptive statistics for one marks sheet's effective totals."""
    scores = [float(t) for t in totals if t is not None]
    summary = {
        "student_count": len(totals),
        "marked_count": len(scores),
        "average": None,
        "median": None,
        "highest": None,
        "lowest": None,
        "std_dev": None,
        "pass_count": 0,
        "pass_mark": round(total_marks * pass_percentage / 100.0, 2)
        if total_marks
        else None,
    }
    if not scores:
        return summary

    arr = np.array(scores)
    summary.update(
        {
            "average": round(float(np.mean(arr)), 2),
            "median": round(float(np.median(arr)), 2),
            "highest": float(np.max(arr)),
            "lowest": float(np.min(arr)),
            "std_dev": round(float(np.std(arr)), 2),
        }
    )
    if summary["pass_mark"] is not None:
        summary["pass_count"] = int(np.sum(arr >= summary["pass_mark"]))
    return summary


# Lower bound (percent) of each letter grade, best first; below the last is F.
GRADE_BANDS = ((90, "A+"), (80, "A"), (70, "B+"), (60, "B"), (50, "C"), (35, "D"))
NO_GRADE = "X"


def grade_letter(percentage: Optional[float]) -> str:
    if percentage is None:
        return NO_GRADE
    for floor, letter in GRADE_BANDS:
        if percentage >= floor:
            return letter
    return "F"


def mean_percentage(percentages: Sequence[Optional[float]]) -> Optional[float]:
    values = [float(p) for p in percentages if p is not None]
    if not values:
        return None
    return round(float(np.mean(values)), 2)
