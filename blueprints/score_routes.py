import logging

from flask import Blueprint, jsonify, request

from models import db
from utils.errors import NotFoundError, ValidationError
from utils.template_store import SqlTemplateStore

logger = logging.getLogger(__name__)

score_bp = Blueprint("scores", __name__)


def _validation_response(e: ValidationError):
    return jsonify({"error": "validation_failed", "message": str(e), "details": e.details}), 400


# GET /api/exam-score/scores?classId=&month=&year=&studentId=&subjectId=&templateId=
# With templateId the rows come back in that template's column order.
@score_bp.route("/api/exam-score/scores", methods=["GET"], endpoint="get_scores")
def get_scores():
    args = request.args
    missing = [k for k in ("classId", "month", "year") if not args.get(k)]
    if missing:
        return (
            jsonify(
                {
                    "error": "validation_failed",
                    "message": "classId, month and year are required",
                    "details": [f"{k} is required" for k in missing],
                }
            ),
            400,
        )
    try:
        scores = SqlTemplateStore().get_scores(
            args.get("classId"),
            args.get("month"),
            args.get("year"),
            student_id=args.get("studentId"),
            subject_id=args.get("subjectId"),
            template_id=args.get("templateId"),
        )
        return jsonify({"scores": scores}), 200
    except ValidationError as e:
        return _validation_response(e)
    except NotFoundError as e:
        return jsonify({"error": "not_found", "message": str(e)}), 404
    except Exception as e:
        logger.error(f"Failed to fetch scores: {str(e)}")
        return jsonify({"error": "failed_to_fetch"}), 500


# PATCH /api/exam-score/scores: body {"scores": [{"id": int, "score": number|null}]}
@score_bp.route("/api/exam-score/scores", methods=["PATCH"], endpoint="bulk_update_scores")
def bulk_update_scores():
    try:
        payload = request.get_json(force=True, silent=True) or {}
        scores = payload.get("scores") if isinstance(payload, dict) else payload
        result = SqlTemplateStore().bulk_update_scores(scores)
        return jsonify(result), 200
    except ValidationError as e:
        return _validation_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to bulk update scores: {str(e)}")
        return jsonify({"error": "failed_to_update"}), 500


# PATCH /api/exam-score/scores/<id>: body {"score": number|null}
@score_bp.route(
    "/api/exam-score/scores/<int:score_id>", methods=["PATCH"], endpoint="update_score"
)
def update_score(score_id: int):
    try:
        payload = request.get_json(force=True, silent=True) or {}
        return jsonify(SqlTemplateStore().update_score(score_id, payload)), 200
    except ValidationError as e:
        return _validation_response(e)
    except NotFoundError as e:
        return jsonify({"error": "not_found", "message": str(e)}), 404
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update score {score_id}: {str(e)}")
        return jsonify({"error": "failed_to_update"}), 500


@score_bp.route(
    "/api/exam-score/scores/<int:score_id>", methods=["DELETE"], endpoint="delete_score"
)
def delete_score(score_id: int):
    try:
        return jsonify(SqlTemplateStore().delete_score(score_id)), 200
    except NotFoundError as e:
        return jsonify({"error": "not_found", "message": str(e)}), 404
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete score {score_id}: {str(e)}")
        return jsonify({"error": "failed_to_delete"}), 500


# GET /api/subjects: subject catalogue used by the template editor
@score_bp.route("/api/subjects", methods=["GET"], endpoint="list_subjects")
def list_subjects():
    try:
        return jsonify({"subjects": SqlTemplateStore().list_subjects()}), 200
    except Exception as e:
        logger.error(f"Failed to fetch subjects: {str(e)}")
        return jsonify({"error": "failed_to_fetch"}), 500


# GET /api/subjects/<id>/sub-subjects
@score_bp.route(
    "/api/subjects/<int:subject_id>/sub-subjects",
    methods=["GET"],
    endpoint="get_sub_subjects",
)
def get_sub_subjects(subject_id: int):
    try:
        return jsonify({"subSubjects": SqlTemplateStore().get_sub_subjects(subject_id)}), 200
    except NotFoundError as e:
        return jsonify({"error": "not_found", "message": str(e)}), 404
    except Exception as e:
        logger.error(f"Failed to fetch sub-subjects for {subject_id}: {str(e)}")
        return jsonify({"error": "failed_to_fetch"}), 500
