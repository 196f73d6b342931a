"""Read-only lookups against the school's roster and curriculum tables."""

import re
from typing import List

from models import ClassSubject, SchoolClass, Student, StudentClass, Subject, db

_DIGITS = re.compile(r"^\d+$")


def _roll_sort_key(student: Student):
    # Numeric roll numbers sort numerically ("2" before "10"); others after.
    roll = (student.roll_number or "").strip()
    if _DIGITS.match(roll):
        return (0, int(roll), "", student.full_name.lower(), student.id)
    return (1, 0, roll.lower(), student.full_name.lower(), student.id)


def roster_for_class(class_id: int) -> List[Student]:
    """Students enrolled in a class, in roll-number order."""
    students = (
        db.session.query(Student)
        .join(StudentClass, StudentClass.student_id == Student.id)
        .filter(StudentClass.class_id == class_id)
        .all()
    )
    return sorted(students, key=_roll_sort_key)


def subjects_for_class(class_id: int) -> List[Subject]:
    subjects = (
        db.session.query(Subject)
        .join(ClassSubject, ClassSubject.subject_id == Subject.id)
        .filter(ClassSubject.class_id == class_id)
        .all()
    )
    return sorted(subjects, key=lambda s: (s.name.lower(), s.id))


def subjects_for_grade(grade: int) -> List[Subject]:
    """Distinct subjects taught to any section of a grade, ordered by name."""
    subjects = (
        db.session.query(Subject)
        .join(ClassSubject, ClassSubject.subject_id == Subject.id)
        .join(SchoolClass, SchoolClass.id == ClassSubject.class_id)
        .filter(SchoolClass.grade == grade)
        .distinct()
        .all()
    )
    return sorted(subjects, key=lambda s: (s.name.lower(), s.id))


def class_teaches_subject(class_id: int, subject_id: int) -> bool:
    return (
        ClassSubject.query.filter_by(class_id=class_id, subject_id=subject_id).first()
        is not None
    )


def classes_for_grades(grades) -> List[SchoolClass]:
    grades = list(grades or [])
    if not grades:
        return []
    classes = SchoolClass.query.filter(SchoolClass.grade.in_(grades)).all()
    return sorted(
        classes,
        key=lambda c: (c.grade, (c.section or "").upper(), c.display_name, c.id),
    )


def classes_for_student(student_id: int) -> List[SchoolClass]:
    classes = (
        db.session.query(SchoolClass)
        .join(StudentClass, StudentClass.class_id == SchoolClass.id)
        .filter(StudentClass.student_id == student_id)
        .all()
    )
    return sorted(classes, key=lambda c: (c.grade, (c.section or "").upper(), c.id))
