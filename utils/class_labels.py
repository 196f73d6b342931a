import re
from datetime import date
from typing import Optional

_ACADEMIC_YEAR_RE = re.compile(r"^(\d{4})-(\d{4})$")

# Academic years start in April.
ACADEMIC_YEAR_START_MONTH = 4


def grade_label(grade: Optional[int]) -> str:
    """Map a numeric class grade to its display label.

    -1 and 0 are the pre-primary levels (LKG, UKG); everything else is
    "Class N".
    """
    if grade is None:
        return "Class"
    if grade == -1:
        return "LKG"
    if grade == 0:
        return "UKG"
    return f"Class {grade}"


def format_class_label(
    name: Optional[str], grade: Optional[int], section: Optional[str]
) -> str:
    """Label a class section, e.g. 'Class 5-A'.

    A stored name wins over the grade label; the section is appended unless
    the name already ends with it.
    """
    base = (name or "").strip() or grade_label(grade)
    section = (section or "").strip()
    if not section:
        return base

    upper_base = base.upper()
    upper_section = section.upper()
    if (
        upper_base.endswith(f"-{upper_section}")
        or upper_base.endswith(f" {upper_section}")
        or upper_base == upper_section
    ):
        return base
    return f"{base}-{section}"


def current_academic_year(today: Optional[date] = None) -> str:
    today = today or date.today()
    if today.month < ACADEMIC_YEAR_START_MONTH:
        return f"{today.year - 1}-{today.year}"
    return f"{today.year}-{today.year + 1}"


def is_valid_academic_year(value) -> bool:
    """True for 'YYYY-YYYY' strings whose second year follows the first."""
    if not isinstance(value, str):
        return False
    m = _ACADEMIC_YEAR_RE.match(value.strip())
    if not m:
        return False
    return int(m.group(2)) == int(m.group(1)) + 1
