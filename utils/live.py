import logging
import hashlib
from flask_socketio import emit, join_room, leave_room, SocketIO

from models import ExamTimetableEntry, StudentMark


_socketio: SocketIO | None = None
_logger = logging.getLogger(__name__)


def initialize_live(socketio: SocketIO, logger: logging.Logger | None = None):
    """Provide socketio and optional logger to this module."""
    global _socketio, _logger
    _socketio = socketio
    if logger is not None:
        _logger = logger


def sheet_room(assessment_id: int, class_id: int, subject_id: int) -> str:
    return f"sheet-{assessment_id}-{class_id}-{subject_id}"


def timetable_room(assessment_id: int, class_grade: int) -> str:
    return f"timetable-{assessment_id}-{class_grade}"


def _int_fields(data, *names):
    return tuple(int((data or {}).get(name)) for name in names)


def register_socketio_handlers(socketio: SocketIO):
    """Register Socket.IO event handlers. Call this after SocketIO(app) in app.py."""

    @socketio.on("connect")
    def _on_connect():
        emit("connected", {"message": "connected"})

    @socketio.on("subscribe_marks_sheet")
    def _on_subscribe_marks_sheet(data):
        try:
            scope = _int_fields(data, "assessment_id", "class_id", "subject_id")
        except (TypeError, ValueError):
            emit("error", {"message": "invalid marks sheet scope"})
            return
        join_room(sheet_room(*scope))
        emit("marks_sheet_version", {"version": compute_sheet_version(*scope)})

    @socketio.on("unsubscribe_marks_sheet")
    def _on_unsubscribe_marks_sheet(data):
        try:
            scope = _int_fields(data, "assessment_id", "class_id", "subject_id")
        except (TypeError, ValueError):
            return
        leave_room(sheet_room(*scope))

    @socketio.on("subscribe_exam_timetable")
    def _on_subscribe_exam_timetable(data):
        try:
            scope = _int_fields(data, "assessment_id", "class_grade")
        except (TypeError, ValueError):
            emit("error", {"message": "invalid timetable scope"})
            return
        join_room(timetable_room(*scope))

    @socketio.on("unsubscribe_exam_timetable")
    def _on_unsubscribe_exam_timetable(data):
        try:
            scope = _int_fields(data, "assessment_id", "class_grade")
        except (TypeError, ValueError):
            return
        leave_room(timetable_room(*scope))


def compute_sheet_version(assessment_id: int, class_id: int, subject_id: int) -> str:
    """Hash of every stored mark and remark on one marks sheet."""
    rows = (
        StudentMark.query.filter_by(
            assessment_id=assessment_id, class_id=class_id, subject_id=subject_id
        )
        .order_by(StudentMark.student_id)
        .all()
    )
    parts = []
    for r in rows:
        breakdown = ",".join(
            f"{bm.breakdown_id}={bm.marks_obtained!r}"
            for bm in sorted(r.breakdown_marks, key=lambda bm: bm.breakdown_id)
        )
        parts.append(f"{r.student_id}:{r.marks_obtained!r}:{r.remarks or ''}:{breakdown}")
    payload = "|".join(parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_timetable_version(assessment_id: int, class_grade: int) -> str:
    rows = (
        ExamTimetableEntry.query.filter_by(
            assessment_id=assessment_id, class_grade=class_grade
        )
        .order_by(ExamTimetableEntry.subject_id)
        .all()
    )
    payload = "|".join(f"{r.subject_id}:{r.exam_date.isoformat()}" for r in rows)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def emit_marks_sheet_update(assessment_id: int, class_id: int, subject_id: int):
    """Tell other editors of the same sheet that it changed."""
    if _socketio is None:
        return
    try:
        version = compute_sheet_version(assessment_id, class_id, subject_id)
        _socketio.emit(
            "marks_sheet_updated",
            {
                "assessment_id": assessment_id,
                "class_id": class_id,
                "subject_id": subject_id,
                "version": version,
            },
            to=sheet_room(assessment_id, class_id, subject_id),
        )
    except Exception as e:
        _logger.error(
            f"Failed to emit marks sheet update for {assessment_id}/{class_id}/{subject_id}: {str(e)}"
        )


def emit_timetable_update(assessment_id: int, class_grade: int):
    if _socketio is None:
        return
    try:
        version = compute_timetable_version(assessment_id, class_grade)
        _socketio.emit(
            "exam_timetable_updated",
            {
                "assessment_id": assessment_id,
                "class_grade": class_grade,
                "version": version,
            },
            to=timetable_room(assessment_id, class_grade),
        )
    except Exception as e:
        _logger.error(
            f"Failed to emit timetable update for {assessment_id}/{class_grade}: {str(e)}"
        )
