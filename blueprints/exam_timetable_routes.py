import logging
from flask import Blueprint, jsonify, request

from utils.errors import MarksServiceError, ValidationError
from utils.exam_timetable import calendar_events, load_timetable, save_timetable
from utils.payloads import TimetableSaveRequest, parse_payload

logger = logging.getLogger(__name__)


exam_timetable_bp = Blueprint("exam_timetable", __name__)


def _int_arg(name: str, required: bool = True):
    raw = request.args.get(name)
    if raw in (None, "", "None"):
        if required:
            raise ValidationError(f"{name} is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


# GET /api/assessments/<id>/exam-timetable?class_grade=: subjects + stored dates
@exam_timetable_bp.route(
    "/api/assessments/<int:assessment_id>/exam-timetable", methods=["GET"]
)
def api_get_exam_timetable(assessment_id):
    class_grade = _int_arg("class_grade")
    try:
        return jsonify(load_timetable(assessment_id, class_grade)), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to load timetable for {assessment_id}: {str(e)}")
        return jsonify({"error": "failed_to_load_timetable"}), 500


# PUT /api/assessments/<id>/exam-timetable: body {class_grade, entries[], class_grades?}
@exam_timetable_bp.route(
    "/api/assessments/<int:assessment_id>/exam-timetable", methods=["PUT"]
)
def api_save_exam_timetable(assessment_id):
    req = parse_payload(TimetableSaveRequest, request.get_json(silent=True))
    try:
        entries = save_timetable(
            assessment_id, req.class_grade, req.entries, req.class_grades
        )
        return (
            jsonify(
                {
                    "success": True,
                    "assessment_id": assessment_id,
                    "class_grade": req.class_grade,
                    "entries": entries,
                }
            ),
            200,
        )
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to save timetable for {assessment_id}: {str(e)}")
        return jsonify({"error": "failed_to_save_timetable"}), 500


# GET /api/calendar/exams?academic_year=&class_grade=: exam dates as calendar events
@exam_timetable_bp.route("/api/calendar/exams", methods=["GET"])
def api_calendar_exams():
    class_grade = _int_arg("class_grade", required=False)
    events = calendar_events(request.args.get("academic_year"), class_grade)
    return jsonify({"events": events}), 200
