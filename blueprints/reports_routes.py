import logging
from flask import Blueprint, jsonify, request

from utils.errors import MarksServiceError, ValidationError
from utils.marks_sheet import (
    class_assessment_leaderboard,
    load_sheet,
    report_options,
    save_sheet,
    student_subject_performance,
)
from utils.payloads import MarksSheetSaveRequest, parse_payload

logger = logging.getLogger(__name__)

reports_bp = Blueprint("reports", __name__)


def _required_int_args(*names):
    values = []
    missing = []
    for name in names:
        raw = request.args.get(name)
        if raw in (None, "", "None"):
            missing.append(name)
            continue
        try:
            values.append(int(raw))
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if missing:
        raise ValidationError(
            "Select assessment, class and subject",
            [f"{name} is required" for name in missing],
        )
    return values


@reports_bp.route("/api/reports/options", methods=["GET"])
def api_report_options():
    """Assessments of a year and the classes/subjects they can be graded for."""
    try:
        return jsonify(report_options(request.args.get("academic_year"))), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to load report options: {str(e)}")
        return jsonify({"error": "failed_to_load_options"}), 500


@reports_bp.route("/api/reports/marks-sheet", methods=["GET"])
def api_get_marks_sheet():
    assessment_id, class_id, subject_id = _required_int_args(
        "assessment_id", "class_id", "subject_id"
    )
    try:
        return jsonify(load_sheet(assessment_id, class_id, subject_id)), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to load marks sheet: {str(e)}")
        return jsonify({"error": "failed_to_load_marks_sheet"}), 500


@reports_bp.route("/api/reports/marks-sheet", methods=["PUT"])
def api_save_marks_sheet():
    req = parse_payload(MarksSheetSaveRequest, request.get_json(silent=True))
    try:
        saved = save_sheet(
            req.assessment_id, req.class_id, req.subject_id, req.entries, req.pending
        )
        sheet = load_sheet(req.assessment_id, req.class_id, req.subject_id)
        return jsonify({"success": True, "saved": saved, "sheet": sheet}), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to save marks sheet: {str(e)}")
        return jsonify({"error": "failed_to_save_marks"}), 500


@reports_bp.route("/api/reports/students/<int:student_id>/performance", methods=["GET"])
def api_student_performance(student_id):
    """Per-subject results of one student. Query param: academic_year."""
    try:
        data = student_subject_performance(student_id, request.args.get("academic_year"))
        return jsonify(data), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to load performance for student {student_id}: {str(e)}")
        return jsonify({"error": "failed_to_load_performance"}), 500


@reports_bp.route("/api/reports/classes/<int:class_id>/leaderboard", methods=["GET"])
def api_class_leaderboard(class_id):
    try:
        data = class_assessment_leaderboard(class_id, request.args.get("academic_year"))
        return jsonify(data), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to load leaderboard for class {class_id}: {str(e)}")
        return jsonify({"error": "failed_to_load_leaderboard"}), 500
