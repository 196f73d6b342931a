import logging
from flask import Blueprint, request, jsonify

from utils.assessment_catalog import (
    create_assessment,
    delete_assessment,
    get_assessment,
    list_assessments_by_year,
    update_assessment,
)
from utils.errors import MarksServiceError
from utils.exam_timetable import save_timetable
from utils.payloads import AssessmentDraft, TimetableSaveRequest, parse_payload

logger = logging.getLogger(__name__)


assessments_bp = Blueprint("assessments", __name__)


def _save_timetable_best_effort(assessment, timetable: dict):
    """Optional "also save timetable" step after an assessment write.

    Failures are reported back but never undo the assessment save.
    Returns (saved: bool | None, reason: str | None); None means skipped.
    """
    entries = (timetable or {}).get("entries") or []
    if not any((e or {}).get("exam_date") for e in entries if isinstance(e, dict)):
        return None, None

    grades = assessment.class_grades
    class_grade = timetable.get("class_grade")
    if class_grade in (None, ""):
        if len(grades) != 1:
            return False, "Exam timetable can only be edited for exactly one class grade"
        class_grade = grades[0]

    try:
        req = parse_payload(
            TimetableSaveRequest,
            {
                "class_grade": class_grade,
                "entries": entries,
                "class_grades": timetable.get("class_grades"),
            },
        )
        save_timetable(assessment.id, req.class_grade, req.entries, req.class_grades)
        return True, None
    except MarksServiceError as e:
        logger.warning(
            f"Timetable not saved for assessment {assessment.id}: {e.message}"
        )
        return False, e.message
    except Exception as e:
        logger.error(f"Timetable save failed for assessment {assessment.id}: {str(e)}")
        return False, "failed_to_save_timetable"


@assessments_bp.route("/api/assessments", methods=["GET"])
def api_list_assessments():
    """List assessments. Query param: academic_year (defaults to the current one)."""
    academic_year = request.args.get("academic_year")
    try:
        rows = list_assessments_by_year(academic_year)
        return jsonify({"assessments": [a.to_dict() for a in rows]}), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to list assessments: {str(e)}")
        return jsonify({"error": "failed_to_list_assessments"}), 500


@assessments_bp.route("/api/assessments/<int:assessment_id>", methods=["GET"])
def api_get_assessment(assessment_id):
    return jsonify(get_assessment(assessment_id).to_dict()), 200


@assessments_bp.route("/api/assessments", methods=["POST"])
def api_create_assessment():
    draft = parse_payload(AssessmentDraft, request.get_json(silent=True))
    try:
        assessment = create_assessment(draft)
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to create assessment: {str(e)}")
        return jsonify({"error": "failed_to_create_assessment"}), 500

    body = {"success": True, "assessment": assessment.to_dict()}
    saved, reason = _save_timetable_best_effort(assessment, draft.exam_timetable)
    if saved is not None:
        body["timetable_saved"] = saved
        if reason:
            body["timetable_error"] = reason
    return jsonify(body), 201


@assessments_bp.route("/api/assessments/<int:assessment_id>", methods=["PUT"])
def api_update_assessment(assessment_id):
    draft = parse_payload(AssessmentDraft, request.get_json(silent=True))
    try:
        assessment = update_assessment(assessment_id, draft)
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to update assessment {assessment_id}: {str(e)}")
        return jsonify({"error": "failed_to_update"}), 500

    body = {"success": True, "assessment": assessment.to_dict()}
    saved, reason = _save_timetable_best_effort(assessment, draft.exam_timetable)
    if saved is not None:
        body["timetable_saved"] = saved
        if reason:
            body["timetable_error"] = reason
    return jsonify(body), 200


@assessments_bp.route("/api/assessments/<int:assessment_id>", methods=["DELETE"])
def api_delete_assessment(assessment_id):
    try:
        delete_assessment(assessment_id)
        return jsonify({"success": True}), 200
    except MarksServiceError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete assessment {assessment_id}: {str(e)}")
        return jsonify({"error": "failed_to_delete"}), 500
