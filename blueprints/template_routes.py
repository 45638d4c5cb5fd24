import logging

from flask import Blueprint, jsonify, request
from flask_wtf.csrf import generate_csrf

from models import db
from utils.errors import NotFoundError, ValidationError
from utils.template_store import SqlTemplateStore

logger = logging.getLogger(__name__)


template_bp = Blueprint("templates", __name__, url_prefix="/api/exam-score")


def _parse_bool(value):
    if value is None or value == "":
        return None
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _validation_response(e: ValidationError):
    return jsonify({"error": "validation_failed", "message": str(e), "details": e.details}), 400


def _not_found_response(e: NotFoundError):
    return jsonify({"error": "not_found", "message": str(e)}), 404


# GET /api/exam-score/csrf-token: token for JSON clients (sent back as X-CSRFToken)
@template_bp.route("/csrf-token", methods=["GET"], endpoint="csrf_token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()}), 200


# POST /api/exam-score/templates: create a template; item order is recomputed
@template_bp.route("/templates", methods=["POST"], endpoint="create_template")
def create_template():
    try:
        payload = request.get_json(force=True, silent=True) or {}
        template = SqlTemplateStore().create_template(payload)
        return jsonify(template), 201
    except ValidationError as e:
        return _validation_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create template: {str(e)}")
        return jsonify({"error": "failed_to_create"}), 500


# GET /api/exam-score/templates?teacherId=&gradeLevel=&isActive=
@template_bp.route("/templates", methods=["GET"], endpoint="list_templates")
def list_templates():
    try:
        templates = SqlTemplateStore().list_templates(
            teacher_id=request.args.get("teacherId"),
            grade_level=request.args.get("gradeLevel"),
            is_active=_parse_bool(request.args.get("isActive")),
        )
        return jsonify({"templates": templates}), 200
    except ValidationError as e:
        return _validation_response(e)
    except Exception as e:
        logger.error(f"Failed to fetch templates: {str(e)}")
        return jsonify({"error": "failed_to_fetch"}), 500


# GET /api/exam-score/templates/<id>
@template_bp.route(
    "/templates/<int:template_id>", methods=["GET"], endpoint="get_template"
)
def get_template(template_id: int):
    try:
        return jsonify(SqlTemplateStore().get_template(template_id)), 200
    except NotFoundError as e:
        return _not_found_response(e)
    except Exception as e:
        logger.error(f"Failed to fetch template {template_id}: {str(e)}")
        return jsonify({"error": "failed_to_fetch"}), 500


# PATCH /api/exam-score/templates/<id>: name/isActive and full replacement of items
@template_bp.route(
    "/templates/<int:template_id>", methods=["PATCH"], endpoint="update_template"
)
def update_template(template_id: int):
    try:
        payload = request.get_json(force=True, silent=True) or {}
        return jsonify(SqlTemplateStore().update_template(template_id, payload)), 200
    except ValidationError as e:
        return _validation_response(e)
    except NotFoundError as e:
        return _not_found_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update template {template_id}: {str(e)}")
        return jsonify({"error": "failed_to_update"}), 500


# PATCH /api/exam-score/templates/<id>/reorder: drag-and-drop resubmission
@template_bp.route(
    "/templates/<int:template_id>/reorder",
    methods=["PATCH"],
    endpoint="reorder_template",
)
def reorder_template(template_id: int):
    try:
        payload = request.get_json(force=True, silent=True) or {}
        return jsonify(SqlTemplateStore().reorder_template(template_id, payload)), 200
    except ValidationError as e:
        return _validation_response(e)
    except NotFoundError as e:
        return _not_found_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to reorder template {template_id}: {str(e)}")
        return jsonify({"error": "failed_to_reorder"}), 500


# DELETE /api/exam-score/templates/<id>: hard delete; score rows are kept
@template_bp.route(
    "/templates/<int:template_id>", methods=["DELETE"], endpoint="delete_template"
)
def delete_template(template_id: int):
    try:
        return jsonify(SqlTemplateStore().delete_template(template_id)), 200
    except NotFoundError as e:
        return _not_found_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete template {template_id}: {str(e)}")
        return jsonify({"error": "failed_to_delete"}), 500


# POST /api/exam-score/apply-template: idempotent row materialization
@template_bp.route("/apply-template", methods=["POST"], endpoint="apply_template")
def apply_template():
    try:
        payload = request.get_json(force=True, silent=True) or {}
        missing = [
            k for k in ("templateId", "classId", "month", "year") if payload.get(k) in (None, "")
        ]
        if missing:
            raise ValidationError(
                "templateId, classId, month and year are required",
                [f"{k} is required" for k in missing],
            )
        result = SqlTemplateStore().apply_template(
            payload["templateId"], payload["classId"], payload["month"], payload["year"]
        )
        return jsonify(result), 200
    except ValidationError as e:
        return _validation_response(e)
    except NotFoundError as e:
        return _not_found_response(e)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to apply template: {str(e)}")
        return jsonify({"error": "failed_to_apply"}), 500
