import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import (
    db,
    ExamScore,
    ExamScoreTemplate,
    SchoolClass,
    Student,
    Subject,
    SubSubject,
    TemplateSubject,
    TemplateSubSubject,
)
from utils.errors import NotFoundError, StoreError, ValidationError
from utils.score_utils import validate_score_value
from utils.structure_utils import MAIN, column_order_map, template_columns
from utils.template_utils import (
    assign_item_order,
    flatten_reorder_payload,
    group_ordered_items,
    normalize_items,
)

logger = logging.getLogger(__name__)


def _to_int(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def _validate_period(month, year):
    month = _to_int(month, "month")
    year = _to_int(year, "year")
    errors = []
    if not 1 <= month <= 12:
        errors.append("month must be between 1 and 12")
    if not 1900 <= year <= 9999:
        errors.append("year is out of range")
    if errors:
        raise ValidationError("invalid period", errors)
    return month, year


class SqlTemplateStore:
    """Template store backed by the Flask-SQLAlchemy session.

    Must be used inside an application context. Records cross this boundary as
    plain dicts using the camelCase field names of the HTTP contract.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    # ---- helpers -----------------------------------------------------------

    def _commit(self, action: str):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Commit failed after {action}: {str(e)}")
            raise StoreError(f"failed_to_{action}", status_code=500)

    def _load_template(self, template_id) -> ExamScoreTemplate:
        template = self.session.get(ExamScoreTemplate, _to_int(template_id, "templateId"))
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template

    def _check_catalogue(self, pairs):
        errors = []
        subject_ids = {s for s, _ in pairs}
        known_subjects = {
            s.id
            for s in self.session.query(Subject).filter(Subject.id.in_(sorted(subject_ids)))
        }
        for subject_id in sorted(subject_ids - known_subjects):
            errors.append(f"subject {subject_id} does not exist")

        sub_ids = {sub for _, sub in pairs if sub is not None}
        if sub_ids:
            owners = {
                ss.id: ss.subject_id
                for ss in self.session.query(SubSubject).filter(SubSubject.id.in_(sorted(sub_ids)))
            }
            for subject_id, sub_id in pairs:
                if sub_id is None:
                    continue
                if sub_id not in owners:
                    errors.append(f"sub-subject {sub_id} does not exist")
                elif owners[sub_id] != subject_id:
                    errors.append(
                        f"sub-subject {sub_id} does not belong to subject {subject_id}"
                    )
        if errors:
            raise ValidationError("invalid template items", errors)

    def _replace_subjects(self, template: ExamScoreTemplate, items):
        pairs = normalize_items(items)
        self._check_catalogue(pairs)
        grouped = group_ordered_items(assign_item_order(pairs))

        # Remove ALL previous subject rows, then re-insert from the grouped items
        template.subjects.clear()
        self.session.flush()
        for entry in grouped:
            subject_row = TemplateSubject(
                subject_id=entry["subjectId"], position=entry["order"]
            )
            for sub in entry["subSubjects"]:
                subject_row.sub_subjects.append(
                    TemplateSubSubject(
                        sub_subject_id=sub["subSubjectId"], position=sub["order"]
                    )
                )
            template.subjects.append(subject_row)

    # ---- templates ---------------------------------------------------------

    def create_template(self, data: Dict) -> Dict:
        data = data or {}
        errors = []
        name = (data.get("name") or "").strip()
        if not name:
            errors.append("name is required")
        teacher_id = data.get("teacherId")
        try:
            teacher_id = int(teacher_id)
        except (TypeError, ValueError):
            errors.append("teacherId must be an integer")
        grade_level = data.get("gradeLevel")
        if grade_level in (None, ""):
            errors.append("gradeLevel is required")
        if errors:
            raise ValidationError("invalid template", errors)

        template = ExamScoreTemplate(
            name=name,
            teacher_id=teacher_id,
            grade_level=str(grade_level),
            is_active=True,
        )
        self.session.add(template)
        try:
            self._replace_subjects(template, data.get("items"))
        except ValidationError:
            self.session.rollback()
            raise
        self._commit("create_template")
        logger.info(
            f"Template {template.id} '{name}' created for teacher {teacher_id} "
            f"(grade {template.grade_level}, {len(template.subjects)} subjects)"
        )
        return template.to_dict()

    def get_template(self, template_id) -> Dict:
        return self._load_template(template_id).to_dict()

    def update_template(self, template_id, data: Dict) -> Dict:
        data = data or {}
        template = self._load_template(template_id)

        if "gradeLevel" in data and str(data.get("gradeLevel")) != str(template.grade_level):
            logger.info(
                f"Ignoring gradeLevel change on template {template.id}; grade level is fixed at creation"
            )

        if "name" in data:
            name = (data.get("name") or "").strip()
            if not name:
                raise ValidationError("invalid template", ["name must not be empty"])
            template.name = name
        if "isActive" in data and data["isActive"] is not None:
            template.is_active = bool(data["isActive"])
        if "items" in data and data["items"] is not None:
            try:
                self._replace_subjects(template, data["items"])
            except ValidationError:
                self.session.rollback()
                raise

        self._commit("update_template")
        logger.info(f"Template {template.id} updated")
        return template.to_dict()

    def reorder_template(self, template_id, data: Dict) -> Dict:
        items = flatten_reorder_payload((data or {}).get("subjects"))
        return self.update_template(template_id, {"items": items})

    def list_templates(
        self,
        teacher_id=None,
        grade_level=None,
        is_active: Optional[bool] = None,
    ) -> List[Dict]:
        query = self.session.query(ExamScoreTemplate)
        if teacher_id not in (None, ""):
            query = query.filter(
                ExamScoreTemplate.teacher_id == _to_int(teacher_id, "teacherId")
            )
        if grade_level not in (None, ""):
            query = query.filter(ExamScoreTemplate.grade_level == str(grade_level))
        if is_active is not None:
            query = query.filter(ExamScoreTemplate.is_active == bool(is_active))
        return [t.to_dict() for t in query.order_by(ExamScoreTemplate.id.asc())]

    def delete_template(self, template_id) -> Dict:
        template = self._load_template(template_id)
        self.session.delete(template)
        self._commit("delete_template")
        # Score rows stay: they are keyed by subject, not by template
        logger.info(f"Template {template_id} deleted")
        return {"message": "deleted", "id": int(template_id)}

    # ---- scores ------------------------------------------------------------

    def apply_template(self, template_id, class_id, month, year) -> Dict[str, int]:
        """Create one empty score row per student x template column.

        Rows whose identity key already exists for the period are skipped, so
        repeated calls never duplicate rows.
        """
        month, year = _validate_period(month, year)
        template = self._load_template(template_id)
        class_id = _to_int(class_id, "classId")
        school_class = self.session.get(SchoolClass, class_id)
        if school_class is None:
            raise NotFoundError(f"Class {class_id} not found")

        columns = template_columns(template.to_dict())
        students = (
            self.session.query(Student)
            .filter(Student.class_id == class_id)
            .order_by(Student.id.asc())
            .all()
        )
        existing = {
            row.identity
            for row in self.session.query(ExamScore).filter_by(
                class_id=class_id, month=month, year=year
            )
        }

        created = 0
        skipped = 0
        for student in students:
            for col in columns:
                identity = (student.id, col.subject_id, col.sub_subject_id or MAIN)
                if identity in existing:
                    skipped += 1
                    continue
                self.session.add(
                    ExamScore(
                        student_id=student.id,
                        class_id=class_id,
                        month=month,
                        year=year,
                        subject_id=col.subject_id,
                        sub_subject_id=col.sub_subject_id,
                        score=None,
                    )
                )
                existing.add(identity)
                created += 1

        self._commit("apply_template")
        logger.info(
            f"Applied template {template.id} to class {class_id} for {month}/{year}: "
            f"{created} created, {skipped} skipped"
        )
        return {"created": created, "skipped": skipped}

    def get_scores(
        self,
        class_id,
        month,
        year,
        student_id=None,
        subject_id=None,
        template_id=None,
    ) -> List[Dict]:
        month, year = _validate_period(month, year)
        query = self.session.query(ExamScore).filter_by(
            class_id=_to_int(class_id, "classId"), month=month, year=year
        )
        if student_id not in (None, ""):
            query = query.filter(ExamScore.student_id == _to_int(student_id, "studentId"))
        if subject_id not in (None, ""):
            query = query.filter(ExamScore.subject_id == _to_int(subject_id, "subjectId"))
        rows = [r.to_dict() for r in query]

        if template_id not in (None, ""):
            order = column_order_map(self._load_template(template_id).to_dict())
            unknown = len(order)

            def sort_key(r):
                key = (r["subjectId"], r["subSubjectId"] or MAIN)
                return (r["studentId"], order.get(key, unknown), r["subjectId"], r["subSubjectId"] or 0, r["id"])

        else:

            def sort_key(r):
                return (r["studentId"], r["subjectId"], r["subSubjectId"] or 0, r["id"])

        return sorted(rows, key=sort_key)

    def bulk_update_scores(self, scores: List[Dict]) -> Dict:
        if not isinstance(scores, list) or not scores:
            raise ValidationError("scores must be a non-empty array")

        errors = []
        updates = []
        for i, item in enumerate(scores):
            if not isinstance(item, dict) or item.get("id") in (None, ""):
                errors.append(f"scores[{i}].id is required")
                continue
            if "score" not in item:
                errors.append(f"scores[{i}].score is required (may be null)")
                continue
            try:
                score_id = int(item["id"])
            except (TypeError, ValueError):
                errors.append(f"scores[{i}].id must be an integer")
                continue
            try:
                value = validate_score_value(item["score"])
            except ValidationError as e:
                errors.append(f"scores[{i}]: {e}")
                continue
            updates.append((score_id, value))
        if errors:
            raise ValidationError("invalid scores", errors)

        ids = {score_id for score_id, _ in updates}
        rows = {
            r.id: r for r in self.session.query(ExamScore).filter(ExamScore.id.in_(sorted(ids)))
        }
        updated = 0
        not_found = []
        for score_id, value in updates:
            row = rows.get(score_id)
            if row is None:
                if score_id not in not_found:
                    not_found.append(score_id)
                continue
            row.score = value
            updated += 1

        self._commit("bulk_update_scores")
        if not_found:
            logger.warning(f"Bulk score update: ids not found {not_found}")
        logger.info(f"Bulk score update: {updated} updated")
        return {"updated": updated, "notFound": not_found}

    def update_score(self, score_id, data: Dict) -> Dict:
        data = data or {}
        if "score" not in data:
            raise ValidationError("score is required (may be null)")
        row = self.session.get(ExamScore, _to_int(score_id, "id"))
        if row is None:
            raise NotFoundError(f"Score {score_id} not found")
        row.score = validate_score_value(data["score"])
        self._commit("update_score")
        return row.to_dict()

    def delete_score(self, score_id) -> Dict:
        row = self.session.get(ExamScore, _to_int(score_id, "id"))
        if row is None:
            raise NotFoundError(f"Score {score_id} not found")
        self.session.delete(row)
        self._commit("delete_score")
        logger.info(f"Score {score_id} deleted")
        return {"message": "deleted", "id": int(score_id)}

    # ---- catalogue ---------------------------------------------------------

    def list_subjects(self) -> List[Dict]:
        return [s.to_dict() for s in self.session.query(Subject).order_by(Subject.id)]

    def get_sub_subjects(self, subject_id) -> List[Dict]:
        subject = self.session.get(Subject, _to_int(subject_id, "subjectId"))
        if subject is None:
            raise NotFoundError(f"Subject {subject_id} not found")
        return [s.to_dict() for s in subject.sub_subjects]
