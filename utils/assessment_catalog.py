import logging
from datetime import date
from typing import Iterable, List, Optional

from flask import current_app

from models import (
    Assessment,
    AssessmentClassGrade,
    AssessmentMarkBreakdown,
    AssessmentSubjectMark,
    db,
)
from utils.class_labels import current_academic_year, is_valid_academic_year
from utils.db_conn import commit_or_rollback, flush_or_rollback
from utils.errors import NotFoundError, ValidationError
from utils.marks_validation import collect_subject_marks_errors
from utils.payloads import AssessmentDraft, BreakdownDraft, SubjectMarksDraft

logger = logging.getLogger(__name__)

# Two formative and two summative slots per half-year.
ASSESSMENT_TYPES = ("FA1", "FA2", "SA1", "SA2", "FA3", "FA4", "SA3", "SA4")
DEFAULT_ASSESSMENT_TYPE = ASSESSMENT_TYPES[0]


def normalize_assessment_type(value: str, strict: bool = False) -> str:
    """Upper-case and match against the known types.

    Unknown values fall back to the first type unless ``strict`` is set, in
    which case they are rejected.
    """
    cleaned = (value or "").strip().upper().replace("-", "").replace(" ", "")
    if cleaned in ASSESSMENT_TYPES:
        return cleaned
    if strict:
        raise ValidationError(
            f"assessment_type must be one of {', '.join(ASSESSMENT_TYPES)}",
            [f"unknown assessment_type: {value!r}"],
        )
    logger.warning(
        f"Unknown assessment type {value!r}; using {DEFAULT_ASSESSMENT_TYPE}"
    )
    return DEFAULT_ASSESSMENT_TYPE


def normalize_class_grades(grades: Iterable[int]) -> List[int]:
    return sorted({int(g) for g in grades or []})


def _strict_types() -> bool:
    return bool(current_app.config.get("STRICT_ASSESSMENT_TYPES", False))


def _checked_fields(draft: AssessmentDraft):
    """Validate a draft and return (name, type, grades, academic_year)."""
    errors = []
    name = (draft.name or "").strip()
    if not name:
        errors.append("name must be a non-empty string")
    if not (draft.assessment_type or "").strip():
        errors.append("assessment_type must be a non-empty string")
    grades = normalize_class_grades(draft.class_grades)
    if not grades:
        errors.append("class_grades must contain at least one grade")

    academic_year = (draft.academic_year or "").strip() or current_academic_year()
    if not is_valid_academic_year(academic_year):
        errors.append("academic_year must look like YYYY-YYYY (e.g. 2025-2026)")

    errors.extend(collect_subject_marks_errors(draft.subject_marks))
    if errors:
        raise ValidationError(errors[0], errors)

    assessment_type = normalize_assessment_type(
        draft.assessment_type, strict=_strict_types()
    )
    return name, assessment_type, grades, academic_year


def _apply_class_grades(assessment: Assessment, grades: List[int]):
    existing = {row.grade: row for row in assessment.grade_rows}
    for grade, row in existing.items():
        if grade not in grades:
            assessment.grade_rows.remove(row)
    for grade in grades:
        if grade not in existing:
            assessment.grade_rows.append(AssessmentClassGrade(grade=grade))


def _match_breakdowns(
    existing: List[AssessmentMarkBreakdown], drafts: List[BreakdownDraft]
) -> List[Optional[AssessmentMarkBreakdown]]:
    """Pair each draft with the stored breakdown it edits, or None for a new one.

    A draft's ``id`` wins; drafts without a usable id fall back to a
    case-insensitive title match among the rows not yet claimed.
    """
    by_id = {b.id: b for b in existing}
    claimed = set()
    matches: List[Optional[AssessmentMarkBreakdown]] = [None] * len(drafts)

    for i, bd in enumerate(drafts):
        target = by_id.get(bd.id) if bd.id is not None else None
        if target is not None and target.id not in claimed:
            matches[i] = target
            claimed.add(target.id)

    for i, bd in enumerate(drafts):
        if matches[i] is not None or bd.id is not None and bd.id in by_id:
            continue
        title = bd.title.strip().lower()
        for b in existing:
            if b.id not in claimed and (b.title or "").strip().lower() == title:
                matches[i] = b
                claimed.add(b.id)
                break
    return matches


def _apply_subject_marks(assessment: Assessment, drafts: List[SubjectMarksDraft]):
    """Replace subject-mark rows and their breakdowns.

    Subject rows are reused by position. Breakdowns are matched by id, then
    by title, so marks entered against "Theory" stay with Theory when
    components are reordered or re-weighted. Breakdowns missing from the
    draft are deleted together with the marks stored against them.
    """
    rows = list(assessment.subject_marks)
    for pos, draft in enumerate(drafts):
        if pos < len(rows):
            row = rows[pos]
        else:
            row = AssessmentSubjectMark(position=pos)
            assessment.subject_marks.append(row)
        row.position = pos
        row.total_marks = float(draft.total_marks)

        existing = list(row.breakdowns)
        matches = _match_breakdowns(existing, draft.breakdowns)
        kept = {b for b in matches if b is not None}
        for stale in existing:
            if stale not in kept:
                for bm in list(stale.student_marks):
                    bm.student_mark.breakdown_marks.remove(bm)
                row.breakdowns.remove(stale)
        for bpos, (bd, target) in enumerate(zip(draft.breakdowns, matches)):
            if target is None:
                target = AssessmentMarkBreakdown()
                row.breakdowns.append(target)
            target.position = bpos
            target.title = bd.title.strip()
            target.marks = float(bd.marks)
        row.breakdowns.sort(key=lambda b: b.position)

    for extra in rows[len(drafts):]:
        assessment.subject_marks.remove(extra)


def _refresh_stored_totals(assessment: Assessment):
    """Re-derive cached totals after the decomposition changed."""
    subject_mark = assessment.primary_subject_mark
    if subject_mark is None:
        return
    current = {b.id for b in subject_mark.breakdowns}
    if not current:
        return
    for row in assessment.student_marks:
        row.marks_obtained = float(
            sum(
                bm.marks_obtained or 0
                for bm in row.breakdown_marks
                if bm.breakdown_id in current
            )
        )


def get_assessment(assessment_id: int) -> Assessment:
    assessment = db.session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFoundError(f"Assessment {assessment_id} not found")
    return assessment


def create_assessment(draft: AssessmentDraft) -> Assessment:
    name, assessment_type, grades, academic_year = _checked_fields(draft)

    assessment = Assessment(
        name=name,
        assessment_type=assessment_type,
        academic_year=academic_year,
        scheduled_date=draft.scheduled_date,
    )
    _apply_class_grades(assessment, grades)
    _apply_subject_marks(assessment, draft.subject_marks)

    db.session.add(assessment)
    commit_or_rollback("create assessment")
    logger.info(
        f"Assessment created: id={assessment.id} {assessment.name} ({assessment.academic_year}) grades={grades}"
    )
    return assessment


def update_assessment(assessment_id: int, draft: AssessmentDraft) -> Assessment:
    """Full replace of name, type, grades, date, year and subject marks."""
    assessment = get_assessment(assessment_id)
    name, assessment_type, grades, academic_year = _checked_fields(draft)

    assessment.name = name
    assessment.assessment_type = assessment_type
    assessment.academic_year = academic_year
    assessment.scheduled_date = draft.scheduled_date
    _apply_class_grades(assessment, grades)
    _apply_subject_marks(assessment, draft.subject_marks)
    flush_or_rollback("update assessment")
    _refresh_stored_totals(assessment)

    commit_or_rollback("update assessment")
    logger.info(f"Assessment updated: id={assessment.id}")
    return assessment


def delete_assessment(assessment_id: int):
    """Delete an assessment together with its marks rows and timetable entries."""
    assessment = get_assessment(assessment_id)
    db.session.delete(assessment)
    commit_or_rollback("delete assessment")
    logger.info(f"Assessment deleted: id={assessment_id}")


def list_assessments_by_year(academic_year: Optional[str] = None) -> List[Assessment]:
    """Assessments of a year ordered by scheduled date (undated last), then name."""
    academic_year = (academic_year or "").strip() or current_academic_year()
    rows = Assessment.query.filter_by(academic_year=academic_year).all()
    return sorted(
        rows,
        key=lambda a: (
            a.scheduled_date is None,
            a.scheduled_date or date.min,
            a.name.lower(),
            a.id,
        ),
    )
