"""
Exam timetable scheduler.

Maps every subject taught to a class grade to the date its exam is held
for a given assessment. Entries are keyed by (assessment, grade, subject);
subjects without a date are simply not stored.
"""

import logging
from datetime import date
from typing import List, Optional, Sequence

from models import Assessment, ExamTimetableEntry, db
from utils.assessment_catalog import get_assessment
from utils.class_labels import current_academic_year, grade_label
from utils.db_conn import commit_or_rollback
from utils.errors import PreconditionError, ValidationError
from utils.live import emit_timetable_update
from utils.payloads import TimetableEntryDraft
from utils.roster import subjects_for_grade

logger = logging.getLogger(__name__)


def _entry_dict(entry: ExamTimetableEntry) -> dict:
    return {"subject_id": entry.subject_id, "exam_date": entry.exam_date.isoformat()}


def _stored_entries(assessment_id: int, class_grade: int) -> List[ExamTimetableEntry]:
    return (
        ExamTimetableEntry.query.filter_by(
            assessment_id=assessment_id, class_grade=class_grade
        )
        .order_by(ExamTimetableEntry.exam_date, ExamTimetableEntry.subject_id)
        .all()
    )


def _require_grade(assessment: Assessment, class_grade: int):
    if class_grade not in assessment.class_grades:
        raise PreconditionError(
            f"{assessment.name} is not scheduled for {grade_label(class_grade)}"
        )


def load_timetable(assessment_id: int, class_grade: int) -> dict:
    assessment = get_assessment(assessment_id)
    _require_grade(assessment, class_grade)

    subjects = subjects_for_grade(class_grade)
    return {
        "assessment_id": assessment.id,
        "class_grade": class_grade,
        "class_name": grade_label(class_grade),
        "subjects": [
            {"subject_id": s.id, "name": s.name, "code": s.code} for s in subjects
        ],
        "entries": [_entry_dict(e) for e in _stored_entries(assessment_id, class_grade)],
    }


def _parse_exam_date(raw: str, subject_id: int) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError(
            f"Invalid exam date for subject {subject_id}",
            [f"subject {subject_id}: exam_date must be YYYY-MM-DD (got {raw!r})"],
        )


def save_timetable(
    assessment_id: int,
    class_grade: int,
    entries: Sequence[TimetableEntryDraft],
    grades_in_scope: Optional[Sequence[int]] = None,
) -> List[dict]:
    """Replace the stored dates for one assessment and grade.

    ``grades_in_scope`` is the set of grades selected where the edit was made;
    the timetable can only be edited with exactly one grade selected. When it
    is omitted the scope is ``class_grade`` alone.
    """
    scope = sorted(set(grades_in_scope)) if grades_in_scope is not None else [class_grade]
    if len(scope) != 1 or scope[0] != class_grade:
        raise PreconditionError(
            "Exam timetable can only be edited for exactly one class grade"
        )

    assessment = get_assessment(assessment_id)
    _require_grade(assessment, class_grade)

    chosen = {}
    for entry in entries:
        raw = (entry.exam_date or "").strip()
        if not raw:
            continue
        chosen[entry.subject_id] = _parse_exam_date(raw, entry.subject_id)
    if not chosen:
        raise ValidationError("select at least one exam date")

    taught = {s.id for s in subjects_for_grade(class_grade)}
    unknown = sorted(sid for sid in chosen if sid not in taught)
    if unknown:
        raise ValidationError(
            f"Subjects not taught to {grade_label(class_grade)}",
            [f"subject {sid} is not taught to {grade_label(class_grade)}" for sid in unknown],
        )

    try:
        existing = {e.subject_id: e for e in _stored_entries(assessment_id, class_grade)}
        for subject_id, row in existing.items():
            if subject_id not in chosen:
                db.session.delete(row)
        for subject_id, exam_date in chosen.items():
            row = existing.get(subject_id)
            if row is None:
                row = ExamTimetableEntry(
                    assessment_id=assessment_id,
                    class_grade=class_grade,
                    subject_id=subject_id,
                )
                db.session.add(row)
            row.exam_date = exam_date
    except Exception:
        db.session.rollback()
        raise

    commit_or_rollback("save exam timetable")
    logger.info(
        f"Exam timetable saved: assessment={assessment_id} grade={class_grade} subjects={len(chosen)}"
    )
    emit_timetable_update(assessment_id, class_grade)
    return [_entry_dict(e) for e in _stored_entries(assessment_id, class_grade)]


def calendar_events(
    academic_year: Optional[str] = None, class_grade: Optional[int] = None
) -> List[dict]:
    """Read-only exam events for the calendar, ordered by date."""
    academic_year = (academic_year or "").strip() or current_academic_year()
    query = (
        db.session.query(ExamTimetableEntry)
        .join(Assessment, Assessment.id == ExamTimetableEntry.assessment_id)
        .filter(Assessment.academic_year == academic_year)
    )
    if class_grade is not None:
        query = query.filter(ExamTimetableEntry.class_grade == class_grade)

    events = []
    for e in query.all():
        events.append(
            {
                "title": f"{e.assessment.name} - {e.subject.name}",
                "date": e.exam_date.isoformat(),
                "type": "exam",
                "assessment_id": e.assessment_id,
                "assessment_type": e.assessment.assessment_type,
                "class_grade": e.class_grade,
                "class_name": grade_label(e.class_grade),
                "subject_id": e.subject_id,
                "subject_name": e.subject.name,
            }
        )
    return sorted(events, key=lambda ev: (ev["date"], ev["class_grade"], ev["subject_name"]))
