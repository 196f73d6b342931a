from flask_sqlalchemy import SQLAlchemy

from utils.class_labels import format_class_label, grade_label

db = SQLAlchemy()


# ---------------------------------------------------------------------------
# Roster / curriculum tables. Owned by the school console; read-only here.
# ---------------------------------------------------------------------------


class SchoolClass(db.Model):
    __tablename__ = "school_classes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=True)  # e.g. "Class 5-A"
    grade = db.Column(db.Integer, nullable=False)  # -1 LKG, 0 UKG, 1..12
    section = db.Column(db.String(10), nullable=True)  # e.g. "A"
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    # Relationships
    enrollments = db.relationship(
        "StudentClass", backref="class_obj", cascade="all, delete-orphan"
    )
    class_subjects = db.relationship(
        "ClassSubject", backref="class_obj", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<SchoolClass {self.display_name}>"

    @property
    def display_name(self):
        """Label like 'Class 5-A', 'LKG-B' or the stored name."""
        return format_class_label(self.name, self.grade, self.section)

    @property
    def grade_label(self):
        return grade_label(self.grade)


class Student(db.Model):
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(150), nullable=False)
    roll_number = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<Student {self.roll_number} {self.full_name}>"


class StudentClass(db.Model):
    """Student-class enrollments (many-to-many relationship)"""

    __tablename__ = "student_classes"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    class_id = db.Column(
        db.Integer, db.ForeignKey("school_classes.id"), nullable=False
    )
    joined_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    student = db.relationship("Student", backref="enrollments")

    __table_args__ = (
        db.UniqueConstraint("student_id", "class_id", name="unique_student_class"),
    )

    def __repr__(self):
        return f"<StudentClass student:{self.student_id} class:{self.class_id}>"


class Subject(db.Model):
    __tablename__ = "subjects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), nullable=True)

    def __repr__(self):
        return f"<Subject {self.code or ''} {self.name}>"


class ClassSubject(db.Model):
    """Subjects taught to a class section."""

    __tablename__ = "class_subjects"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(
        db.Integer, db.ForeignKey("school_classes.id"), nullable=False
    )
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)

    subject = db.relationship("Subject")

    __table_args__ = (
        db.UniqueConstraint("class_id", "subject_id", name="unique_class_subject"),
    )


# ---------------------------------------------------------------------------
# Assessment catalog
# ---------------------------------------------------------------------------


class Assessment(db.Model):
    __tablename__ = "assessments"

    id = db.Column(db.Integer, primary_key=True)
    academic_year = db.Column(db.String(9), nullable=False, index=True)  # 2025-2026
    name = db.Column(db.String(100), nullable=False)
    assessment_type = db.Column(db.String(10), nullable=False)  # FA1 .. SA4
    scheduled_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    # Relationships
    grade_rows = db.relationship(
        "AssessmentClassGrade",
        backref="assessment",
        cascade="all, delete-orphan",
        order_by="AssessmentClassGrade.grade",
    )
    subject_marks = db.relationship(
        "AssessmentSubjectMark",
        backref="assessment",
        cascade="all, delete-orphan",
        order_by="AssessmentSubjectMark.position",
    )
    student_marks = db.relationship(
        "StudentMark", backref="assessment", cascade="all, delete-orphan"
    )
    timetable_entries = db.relationship(
        "ExamTimetableEntry", backref="assessment", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Assessment {self.name} ({self.assessment_type} {self.academic_year})>"

    @property
    def class_grades(self):
        return sorted(row.grade for row in self.grade_rows)

    @property
    def primary_subject_mark(self):
        """The subject-mark row graded on marks sheets (the first one)."""
        return self.subject_marks[0] if self.subject_marks else None

    def to_dict(self):
        return {
            "id": self.id,
            "academic_year": self.academic_year,
            "name": self.name,
            "assessment_type": self.assessment_type,
            "class_grades": self.class_grades,
            "scheduled_date": (
                self.scheduled_date.isoformat() if self.scheduled_date else None
            ),
            "total_marks": (
                self.primary_subject_mark.total_marks
                if self.primary_subject_mark
                else None
            ),
            "subject_marks": [sm.to_dict() for sm in self.subject_marks],
        }


class AssessmentClassGrade(db.Model):
    __tablename__ = "assessment_class_grades"

    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(
        db.Integer, db.ForeignKey("assessments.id"), nullable=False
    )
    grade = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("assessment_id", "grade", name="unique_assessment_grade"),
    )


class AssessmentSubjectMark(db.Model):
    __tablename__ = "assessment_subject_marks"

    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(
        db.Integer, db.ForeignKey("assessments.id"), nullable=False
    )
    total_marks = db.Column(db.Float, nullable=False)
    position = db.Column(db.Integer, nullable=False)

    breakdowns = db.relationship(
        "AssessmentMarkBreakdown",
        backref="subject_mark",
        cascade="all, delete-orphan",
        order_by="AssessmentMarkBreakdown.position",
    )

    def __repr__(self):
        return f"<AssessmentSubjectMark {self.total_marks} ({len(self.breakdowns)} parts)>"

    def to_dict(self):
        return {
            "id": self.id,
            "total_marks": self.total_marks,
            "breakdowns": [
                {"id": b.id, "title": b.title, "marks": b.marks}
                for b in self.breakdowns
            ],
        }


class AssessmentMarkBreakdown(db.Model):
    __tablename__ = "assessment_mark_breakdowns"

    id = db.Column(db.Integer, primary_key=True)
    subject_mark_id = db.Column(
        db.Integer, db.ForeignKey("assessment_subject_marks.id"), nullable=False
    )
    title = db.Column(db.String(100), nullable=False)
    marks = db.Column(db.Float, nullable=False)
    position = db.Column(db.Integer, nullable=False)

    student_marks = db.relationship(
        "StudentBreakdownMark", backref="breakdown", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<AssessmentMarkBreakdown {self.title} ({self.marks})>"


# ---------------------------------------------------------------------------
# Marks sheet and exam timetable
# ---------------------------------------------------------------------------


class StudentMark(db.Model):
    __tablename__ = "student_marks"

    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(
        db.Integer, db.ForeignKey("assessments.id"), nullable=False
    )
    class_id = db.Column(
        db.Integer, db.ForeignKey("school_classes.id"), nullable=False
    )
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    marks_obtained = db.Column(db.Float, nullable=True)
    remarks = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    breakdown_marks = db.relationship(
        "StudentBreakdownMark", backref="student_mark", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.UniqueConstraint(
            "assessment_id",
            "class_id",
            "subject_id",
            "student_id",
            name="unique_student_mark",
        ),
    )

    def __repr__(self):
        return f"<StudentMark a:{self.assessment_id} s:{self.student_id} {self.marks_obtained}>"


class StudentBreakdownMark(db.Model):
    __tablename__ = "student_breakdown_marks"

    id = db.Column(db.Integer, primary_key=True)
    student_mark_id = db.Column(
        db.Integer, db.ForeignKey("student_marks.id"), nullable=False
    )
    breakdown_id = db.Column(
        db.Integer, db.ForeignKey("assessment_mark_breakdowns.id"), nullable=False
    )
    marks_obtained = db.Column(db.Float, nullable=False, default=0.0)

    __table_args__ = (
        db.UniqueConstraint(
            "student_mark_id", "breakdown_id", name="unique_student_breakdown"
        ),
    )


class ExamTimetableEntry(db.Model):
    __tablename__ = "exam_timetable_entries"

    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(
        db.Integer, db.ForeignKey("assessments.id"), nullable=False
    )
    class_grade = db.Column(db.Integer, nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)
    exam_date = db.Column(db.Date, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    subject = db.relationship("Subject")

    __table_args__ = (
        db.UniqueConstraint(
            "assessment_id",
            "class_grade",
            "subject_id",
            name="unique_exam_timetable_entry",
        ),
    )

    def __repr__(self):
        return f"<ExamTimetableEntry a:{self.assessment_id} g:{self.class_grade} {self.exam_date}>"
