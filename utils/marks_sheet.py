"""
Marks sheet engine.

A marks sheet is the set of per-student scores for one (assessment, class,
subject) triple. When the assessment's subject row has breakdown components
a student's total is always the sum of their component marks; otherwise the
directly entered total is used.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from models import (
    Assessment,
    AssessmentSubjectMark,
    SchoolClass,
    Student,
    StudentBreakdownMark,
    StudentMark,
    Subject,
    db,
)
from utils.assessment_catalog import get_assessment, list_assessments_by_year
from utils.class_labels import current_academic_year
from utils.db_conn import commit_or_rollback
from utils.errors import NotFoundError, PreconditionError, ValidationError
from utils.live import emit_marks_sheet_update
from utils.marks_validation import MARKS_TOLERANCE, is_number
from utils.payloads import MarksEntry, PendingEdit
from utils.roster import (
    class_teaches_subject,
    classes_for_grades,
    classes_for_student,
    roster_for_class,
    subjects_for_class,
)
from utils.statistics_utils import (
    grade_letter,
    mean_percentage,
    rank_totals,
    summarize_marks,
)

logger = logging.getLogger(__name__)


def effective_total(
    breakdown_ids: Sequence[int],
    breakdown_marks: Mapping[int, Optional[float]],
    marks_obtained: Optional[float],
) -> Optional[float]:
    """Total score for one student.

    With breakdown components the total is the sum of their marks (missing
    ones count as 0) and ``marks_obtained`` is ignored. Without components
    ``marks_obtained`` is returned unchanged.
    """
    if breakdown_ids:
        return float(sum(float(breakdown_marks.get(bid) or 0) for bid in breakdown_ids))
    return marks_obtained


def _resolve_scope(assessment_id: int, class_id: int, subject_id: int):
    assessment = get_assessment(assessment_id)
    school_class = db.session.get(SchoolClass, class_id)
    if school_class is None:
        raise NotFoundError(f"Class {class_id} not found")
    subject = db.session.get(Subject, subject_id)
    if subject is None:
        raise NotFoundError(f"Subject {subject_id} not found")

    if school_class.grade not in assessment.class_grades:
        raise PreconditionError(
            f"{assessment.name} is not scheduled for {school_class.display_name}"
        )
    if not class_teaches_subject(class_id, subject_id):
        raise PreconditionError(
            f"{subject.name} is not taught to {school_class.display_name}"
        )
    subject_mark = assessment.primary_subject_mark
    if subject_mark is None:
        raise PreconditionError(f"{assessment.name} has no marks decomposition")
    return assessment, school_class, subject, subject_mark


def _stored_rows(assessment_id, class_id, subject_id) -> Dict[int, StudentMark]:
    rows = StudentMark.query.filter_by(
        assessment_id=assessment_id, class_id=class_id, subject_id=subject_id
    ).all()
    return {row.student_id: row for row in rows}


def _stored_values(row: Optional[StudentMark]) -> dict:
    if row is None:
        return {"marks_obtained": None, "remarks": "", "breakdown": {}}
    return {
        "marks_obtained": row.marks_obtained,
        "remarks": row.remarks or "",
        "breakdown": {bm.breakdown_id: bm.marks_obtained for bm in row.breakdown_marks},
    }


def breakdown_template(subject_mark: AssessmentSubjectMark) -> List[dict]:
    return [
        {"breakdown_id": b.id, "title": b.title, "max_marks": b.marks}
        for b in subject_mark.breakdowns
    ]


def load_sheet(assessment_id: int, class_id: int, subject_id: int) -> dict:
    """Roster-ordered rows for one sheet, zero-filled where nothing is stored."""
    assessment, school_class, subject, subject_mark = _resolve_scope(
        assessment_id, class_id, subject_id
    )
    breakdown_ids = [b.id for b in subject_mark.breakdowns]
    stored = _stored_rows(assessment_id, class_id, subject_id)

    students = []
    for student in roster_for_class(class_id):
        values = _stored_values(stored.get(student.id))
        bd_values = {bid: float(values["breakdown"].get(bid) or 0) for bid in breakdown_ids}
        total = effective_total(breakdown_ids, bd_values, values["marks_obtained"])
        students.append(
            {
                "student_id": student.id,
                "full_name": student.full_name,
                "roll_number": student.roll_number,
                "marks_obtained": total,
                "remarks": values["remarks"],
                "breakdown_marks": [
                    {"breakdown_id": bid, "marks_obtained": bd_values[bid]}
                    for bid in breakdown_ids
                ],
                "saved": student.id in stored,
            }
        )

    totals = [s["marks_obtained"] for s in students]
    for row, rank in zip(students, rank_totals(totals)):
        row["rank"] = rank

    return {
        "assessment_id": assessment.id,
        "assessment_name": assessment.name,
        "class_id": school_class.id,
        "class_name": school_class.display_name,
        "subject_id": subject.id,
        "subject_name": subject.name,
        "total_marks": subject_mark.total_marks,
        "breakdowns": breakdown_template(subject_mark),
        "students": students,
        "summary": summarize_marks(totals, subject_mark.total_marks),
    }


def _merge_edits(
    entries: Sequence[MarksEntry],
    pending: Mapping[int, PendingEdit],
    stored: Dict[int, StudentMark],
) -> Dict[int, dict]:
    """Combine submitted rows with unsaved edits.

    Each entry fully replaces that student's row. Pending edits are laid
    over the entry, or over the stored row when no entry was sent.
    """
    merged: Dict[int, dict] = {}
    for entry in entries:
        merged[entry.student_id] = {
            "marks_obtained": entry.marks_obtained,
            "remarks": entry.remarks or "",
            "breakdown": {
                bm.breakdown_id: bm.marks_obtained for bm in entry.breakdown_marks
            },
        }

    for student_id, edit in (pending or {}).items():
        base = merged.get(student_id) or _stored_values(stored.get(student_id))
        base = {**base, "breakdown": dict(base["breakdown"])}
        if edit.was_set("marks_obtained"):
            base["marks_obtained"] = edit.marks_obtained
        if edit.was_set("remarks"):
            base["remarks"] = edit.remarks or ""
        if edit.breakdown_marks:
            base["breakdown"].update(edit.breakdown_marks)
        merged[student_id] = base
    return merged


def _check_rows(merged: Dict[int, dict], subject_mark: AssessmentSubjectMark) -> List[str]:
    maxima = {b.id: b for b in subject_mark.breakdowns}
    errors = []
    for student_id, values in merged.items():
        prefix = f"student {student_id}"
        for bid, value in values["breakdown"].items():
            bd = maxima.get(bid)
            if bd is None:
                errors.append(f"{prefix}: unknown breakdown {bid}")
                continue
            value = 0.0 if value is None else value
            if not is_number(value):
                errors.append(f"{prefix}: {bd.title} marks must be a number")
                continue
            value = float(value)
            if value < 0:
                errors.append(f"{prefix}: {bd.title} marks must not be negative")
            elif value > bd.marks + MARKS_TOLERANCE:
                errors.append(
                    f"{prefix}: {bd.title} marks ({value:g}) exceed the maximum ({bd.marks:g})"
                )
        if not maxima and values["marks_obtained"] is not None:
            if not is_number(values["marks_obtained"]):
                errors.append(f"{prefix}: marks must be a number")
                continue
            direct = float(values["marks_obtained"])
            if direct < 0:
                errors.append(f"{prefix}: marks must not be negative")
            elif direct > subject_mark.total_marks + MARKS_TOLERANCE:
                errors.append(
                    f"{prefix}: marks ({direct:g}) exceed total marks ({subject_mark.total_marks:g})"
                )
    return errors


def save_sheet(
    assessment_id: int,
    class_id: int,
    subject_id: int,
    entries: Sequence[MarksEntry],
    pending: Optional[Mapping[int, PendingEdit]] = None,
) -> int:
    """Persist the reconciled rows for one sheet in a single transaction.

    Only students present in ``entries`` or ``pending`` are written; other
    stored rows are left untouched. Returns the number of rows written.
    """
    assessment, school_class, subject, subject_mark = _resolve_scope(
        assessment_id, class_id, subject_id
    )
    stored = _stored_rows(assessment_id, class_id, subject_id)
    merged = _merge_edits(entries, pending or {}, stored)

    enrolled = {s.id for s in roster_for_class(class_id)}
    strangers = sorted(sid for sid in merged if sid not in enrolled)
    if strangers:
        raise PreconditionError(
            f"Students not enrolled in {school_class.display_name}",
            [f"student {sid} is not enrolled" for sid in strangers],
        )

    errors = _check_rows(merged, subject_mark)
    if errors:
        logger.warning(
            f"Rejected marks for assessment {assessment_id} class {class_id} subject {subject_id}: {len(errors)} problem(s)"
        )
        raise ValidationError(errors[0], errors)

    breakdown_ids = [b.id for b in subject_mark.breakdowns]
    try:
        with db.session.no_autoflush:
            for student_id, values in merged.items():
                row = stored.get(student_id)
                if row is None:
                    row = StudentMark(
                        assessment_id=assessment_id,
                        class_id=class_id,
                        subject_id=subject_id,
                        student_id=student_id,
                    )
                    db.session.add(row)

                bd_values = {
                    bid: float(values["breakdown"].get(bid) or 0)
                    for bid in breakdown_ids
                }
                existing = {bm.breakdown_id: bm for bm in row.breakdown_marks}
                for bid in breakdown_ids:
                    bm = existing.get(bid)
                    if bm is None:
                        bm = StudentBreakdownMark(breakdown_id=bid)
                        row.breakdown_marks.append(bm)
                    bm.marks_obtained = bd_values[bid]

                row.marks_obtained = effective_total(
                    breakdown_ids, bd_values, values["marks_obtained"]
                )
                row.remarks = values["remarks"] or None
    except Exception:
        db.session.rollback()
        raise

    commit_or_rollback("save marks sheet")
    logger.info(
        f"Marks saved: assessment={assessment_id} class={class_id} subject={subject_id} rows={len(merged)}"
    )
    emit_marks_sheet_update(assessment_id, class_id, subject_id)
    return len(merged)


def report_options(academic_year: Optional[str] = None) -> dict:
    """Assessments of a year plus the classes (and subjects) they apply to."""
    assessments = list_assessments_by_year(academic_year)
    grades = sorted({g for a in assessments for g in a.class_grades})
    classes = []
    for c in classes_for_grades(grades):
        classes.append(
            {
                "class_id": c.id,
                "class_name": c.display_name,
                "grade": c.grade,
                "subjects": [
                    {"subject_id": s.id, "subject_name": s.name}
                    for s in subjects_for_class(c.id)
                ],
            }
        )
    return {"assessments": [a.to_dict() for a in assessments], "classes": classes}


def _scored_rows(rows: Sequence[StudentMark]):
    """Yield (row, obtained, maximum) for stored rows that carry a score."""
    for row in rows:
        subject_mark = row.assessment.primary_subject_mark
        if subject_mark is None or not subject_mark.total_marks:
            continue
        breakdown_ids = [b.id for b in subject_mark.breakdowns]
        values = {bm.breakdown_id: bm.marks_obtained for bm in row.breakdown_marks}
        obtained = effective_total(breakdown_ids, values, row.marks_obtained)
        if obtained is None:
            continue
        yield row, float(obtained), float(subject_mark.total_marks)


def student_subject_performance(student_id: int, academic_year: Optional[str] = None) -> dict:
    """One student's results per subject across a year's assessments.

    ``avg_percentage`` is the mean of the per-assessment percentages;
    ``total_obtained``/``total_max`` are the raw sums behind it.
    """
    student = db.session.get(Student, student_id)
    if student is None:
        raise NotFoundError(f"Student {student_id} not found")
    academic_year = (academic_year or "").strip() or current_academic_year()

    rows = (
        StudentMark.query.join(Assessment, Assessment.id == StudentMark.assessment_id)
        .filter(
            StudentMark.student_id == student_id,
            Assessment.academic_year == academic_year,
        )
        .all()
    )
    buckets: Dict[int, dict] = {}
    for row, obtained, maximum in _scored_rows(rows):
        bucket = buckets.setdefault(
            row.subject_id, {"obtained": 0.0, "max": 0.0, "percentages": []}
        )
        bucket["obtained"] += obtained
        bucket["max"] += maximum
        bucket["percentages"].append(obtained / maximum * 100.0)

    subject_names = {}
    if buckets:
        subject_names = {
            s.id: s.name for s in Subject.query.filter(Subject.id.in_(list(buckets))).all()
        }

    subjects = []
    for subject_id, bucket in buckets.items():
        avg = mean_percentage(bucket["percentages"])
        subjects.append(
            {
                "subject_id": subject_id,
                "subject_name": subject_names.get(subject_id, ""),
                "avg_percentage": avg,
                "total_obtained": round(bucket["obtained"], 2),
                "total_max": round(bucket["max"], 2),
                "assessment_count": len(bucket["percentages"]),
                "grade_letter": grade_letter(avg),
            }
        )
    subjects.sort(key=lambda s: (s["subject_name"].lower(), s["subject_id"]))

    return {
        "academic_year": academic_year,
        "student_id": student.id,
        "student_name": student.full_name,
        "class_name": ", ".join(c.display_name for c in classes_for_student(student.id)),
        "subjects": subjects,
    }


def class_assessment_leaderboard(class_id: int, academic_year: Optional[str] = None) -> dict:
    """Rank a class by average assessment percentage over a year.

    A student's percentage for one assessment is their marks summed over
    every subject of it divided by the matching maximum marks. Students
    with no scored assessment are listed last without a rank.
    """
    school_class = db.session.get(SchoolClass, class_id)
    if school_class is None:
        raise NotFoundError(f"Class {class_id} not found")
    academic_year = (academic_year or "").strip() or current_academic_year()

    assessments = [
        a for a in list_assessments_by_year(academic_year)
        if school_class.grade in a.class_grades
    ]
    assessment_ids = [a.id for a in assessments]
    rows = []
    if assessment_ids:
        rows = StudentMark.query.filter(
            StudentMark.class_id == class_id,
            StudentMark.assessment_id.in_(assessment_ids),
        ).all()

    scores: Dict[int, Dict[int, List[float]]] = {}
    for row, obtained, maximum in _scored_rows(rows):
        acc = scores.setdefault(row.student_id, {}).setdefault(row.assessment_id, [0.0, 0.0])
        acc[0] += obtained
        acc[1] += maximum

    roster = roster_for_class(class_id)
    entries = []
    for student in roster:
        percentages = [
            obtained / maximum * 100.0
            for obtained, maximum in scores.get(student.id, {}).values()
            if maximum
        ]
        entries.append(
            {
                "student_id": student.id,
                "student_name": student.full_name,
                "roll_number": student.roll_number,
                "total_assessments": len(assessments),
                "assessments_with_scores": len(percentages),
                "avg_assessment_pct": mean_percentage(percentages),
            }
        )

    ranks = rank_totals([e["avg_assessment_pct"] for e in entries])
    for entry, rank in zip(entries, ranks):
        entry["rank"] = rank
    entries.sort(
        key=lambda e: (e["rank"] is None, e["rank"] or 0, e["student_name"].lower())
    )

    return {
        "class_id": school_class.id,
        "class_name": school_class.display_name,
        "academic_year": academic_year,
        "total_assessments": len(assessments),
        "total_students": len(roster),
        "entries": entries,
    }
