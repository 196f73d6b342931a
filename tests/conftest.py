import os
import sys

import pytest

# Ensure project root is on sys.path so tests can import app.py
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import create_app
from models import ClassSubject, SchoolClass, Student, StudentClass, Subject, db
from utils.payloads import AssessmentDraft


TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "WTF_CSRF_ENABLED": False,
    "LIVE_UPDATES_ENABLED": False,
    "STRICT_ASSESSMENT_TYPES": False,
}


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def school(app):
    """Two grade-5 sections and one grade-6 section with students and subjects.

    Class 5-A: Alice (roll 1), Bob (roll 2), Zed (roll 10); Mathematics, Science
    Class 5-B: Carol (roll 1); Science, English
    Class 6-A: Dan (roll 1); Mathematics
    """
    math = Subject(name="Mathematics", code="MATH")
    science = Subject(name="Science", code="SCI")
    english = Subject(name="English", code="ENG")
    c5a = SchoolClass(grade=5, section="A")
    c5b = SchoolClass(grade=5, section="B")
    c6a = SchoolClass(grade=6, section="A")
    # inserted out of roll order on purpose
    zed = Student(full_name="Zed Young", roll_number="10")
    bob = Student(full_name="Bob Brown", roll_number="2")
    alice = Student(full_name="Alice Adams", roll_number="1")
    carol = Student(full_name="Carol Chen", roll_number="1")
    dan = Student(full_name="Dan Diaz", roll_number="1")
    db.session.add_all([math, science, english, c5a, c5b, c6a, zed, bob, alice, carol, dan])
    db.session.flush()

    for student, cls in ((zed, c5a), (bob, c5a), (alice, c5a), (carol, c5b), (dan, c6a)):
        db.session.add(StudentClass(student_id=student.id, class_id=cls.id))
    for cls, subject in (
        (c5a, math),
        (c5a, science),
        (c5b, science),
        (c5b, english),
        (c6a, math),
    ):
        db.session.add(ClassSubject(class_id=cls.id, subject_id=subject.id))
    db.session.commit()

    return {
        "math": math.id,
        "science": science.id,
        "english": english.id,
        "c5a": c5a.id,
        "c5b": c5b.id,
        "c6a": c6a.id,
        "alice": alice.id,
        "bob": bob.id,
        "zed": zed.id,
        "carol": carol.id,
        "dan": dan.id,
    }


def make_draft(**overrides) -> AssessmentDraft:
    data = {
        "name": "Unit Test 1",
        "assessment_type": "FA1",
        "class_grades": [5],
        "scheduled_date": "2025-07-14",
        "academic_year": "2025-2026",
        "subject_marks": [
            {
                "total_marks": 100,
                "breakdowns": [
                    {"title": "Theory", "marks": 80},
                    {"title": "Practical", "marks": 20},
                ],
            }
        ],
    }
    data.update(overrides)
    return AssessmentDraft.model_validate(data)
