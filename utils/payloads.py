"""
Request payload shapes.

These pydantic models only describe the *shape* of what the console sends
(types, optional fields, coercion of strings to numbers/dates). Business
invariants (positive totals, breakdowns within the total, non-empty grades)
are checked in one place by ``utils.marks_validation`` and the services.
"""

import datetime as dt
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from utils.errors import ValidationError

# NaN/Infinity are valid JSON for Flask's parser but never valid marks.
FINITE_NUMBERS = ConfigDict(allow_inf_nan=False)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class BreakdownDraft(BaseModel):
    model_config = FINITE_NUMBERS

    id: Optional[int] = Field(
        None, description="Existing breakdown id when editing; omitted for new components"
    )
    title: str = Field("", description="Component name, e.g. Theory")
    marks: float = Field(..., description="Maximum marks of this component")


class SubjectMarksDraft(BaseModel):
    model_config = FINITE_NUMBERS

    total_marks: float = Field(..., description="Maximum achievable score")
    breakdowns: List[BreakdownDraft] = Field(default_factory=list)


class TimetableEntryDraft(BaseModel):
    subject_id: int
    exam_date: Optional[str] = Field(
        None, description="YYYY-MM-DD; blank entries are dropped"
    )

    @field_validator("exam_date", mode="before")
    @classmethod
    def _stringify_date(cls, value):
        if isinstance(value, dt.date):
            return value.isoformat()
        return value


class AssessmentDraft(BaseModel):
    name: str = ""
    assessment_type: str = ""
    class_grades: List[int] = Field(default_factory=list)
    scheduled_date: Optional[dt.date] = None
    academic_year: Optional[str] = None
    subject_marks: List[SubjectMarksDraft] = Field(default_factory=list)

    # Optional best-effort side step: {"class_grade": int, "entries": [...]}
    exam_timetable: Optional[dict] = None

    @field_validator("scheduled_date", "academic_year", mode="before")
    @classmethod
    def _blank_strings(cls, value):
        return _blank_to_none(value)


class BreakdownMarkEntry(BaseModel):
    model_config = FINITE_NUMBERS

    breakdown_id: int
    marks_obtained: Optional[float] = 0.0

    @field_validator("marks_obtained", mode="before")
    @classmethod
    def _blank_marks(cls, value):
        return _blank_to_none(value)


class MarksEntry(BaseModel):
    model_config = FINITE_NUMBERS

    student_id: int
    marks_obtained: Optional[float] = None
    remarks: Optional[str] = None
    breakdown_marks: List[BreakdownMarkEntry] = Field(default_factory=list)

    @field_validator("marks_obtained", mode="before")
    @classmethod
    def _blank_marks(cls, value):
        return _blank_to_none(value)


class PendingEdit(BaseModel):
    """Unsaved per-student edits held by the console.

    ``breakdown_marks`` maps breakdown id to marks, as the marks-sheet table
    keeps them while marks are being typed.

    Fields left out of the edit keep their current value; a field sent as
    null is cleared (see ``was_set``).
    """

    model_config = FINITE_NUMBERS

    marks_obtained: Optional[float] = None
    remarks: Optional[str] = None
    breakdown_marks: Optional[Dict[int, Optional[float]]] = None

    @field_validator("marks_obtained", mode="before")
    @classmethod
    def _blank_marks(cls, value):
        return _blank_to_none(value)

    def was_set(self, field: str) -> bool:
        return field in self.model_fields_set


class MarksSheetSaveRequest(BaseModel):
    assessment_id: int
    class_id: int
    subject_id: int
    entries: List[MarksEntry] = Field(default_factory=list)
    pending: Dict[int, PendingEdit] = Field(default_factory=dict)


class TimetableSaveRequest(BaseModel):
    class_grade: int
    entries: List[TimetableEntryDraft] = Field(default_factory=list)
    # Grades selected in the editing context, when the console sends them.
    class_grades: Optional[List[int]] = None


def parse_payload(model, data: Union[dict, None]):
    """Build ``model`` from a JSON body, mapping shape errors to ValidationError."""
    if data is None:
        raise ValidationError("request body must be a JSON object")
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        details = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            details.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
        raise ValidationError("invalid payload", details) from e
