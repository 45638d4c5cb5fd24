from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value is not None else None


class SchoolClass(db.Model):
    __tablename__ = "classes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=True)
    grade_level = db.Column(db.String(20), nullable=True)  # "1" .. "12"
    section = db.Column(db.String(10), nullable=True)
    teacher_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    # Relationships
    students = db.relationship(
        "Student", backref="school_class", order_by="Student.id", lazy=True
    )

    def __repr__(self):
        return f"<SchoolClass {self.id} grade={self.grade_level} {self.section}>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "gradeLevel": self.grade_level,
            "section": self.section,
            "teacherId": self.teacher_id,
        }


class Student(db.Model):
    __tablename__ = "students"

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey("classes.id"), nullable=False)
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    gender = db.Column(db.String(10), nullable=True)  # MALE, FEMALE
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())

    def __repr__(self):
        return f"<Student {self.id} - {self.full_name}>"

    @property
    def full_name(self):
        return f"{self.last_name} {self.first_name}"

    def to_dict(self):
        return {
            "id": self.id,
            "classId": self.class_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "gender": self.gender,
        }


class Subject(db.Model):
    __tablename__ = "subjects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    khmer_name = db.Column(db.String(100), nullable=True)

    sub_subjects = db.relationship(
        "SubSubject", backref="subject", order_by="SubSubject.id", lazy=True
    )

    def __repr__(self):
        return f"<Subject {self.name}>"

    def to_dict(self):
        return {"id": self.id, "name": self.name, "khmerName": self.khmer_name}


class SubSubject(db.Model):
    __tablename__ = "sub_subjects"

    id = db.Column(db.Integer, primary_key=True)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    khmer_name = db.Column(db.String(100), nullable=True)

    def __repr__(self):
        return f"<SubSubject {self.name} of subject {self.subject_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "subjectId": self.subject_id,
            "name": self.name,
            "khmerName": self.khmer_name,
        }


class ExamScoreTemplate(db.Model):
    __tablename__ = "exam_score_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    teacher_id = db.Column(db.Integer, nullable=False)
    grade_level = db.Column(db.String(20), nullable=True)  # immutable after creation
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    # Relationships
    subjects = db.relationship(
        "TemplateSubject",
        backref="template",
        order_by="TemplateSubject.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ExamScoreTemplate {self.name} (grade {self.grade_level})>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "teacherId": self.teacher_id,
            "gradeLevel": self.grade_level,
            "isActive": bool(self.is_active),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "subjects": [s.to_dict() for s in self.subjects],
        }


class TemplateSubject(db.Model):
    __tablename__ = "exam_score_template_subjects"
    __table_args__ = (db.UniqueConstraint("template_id", "subject_id"),)

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("exam_score_templates.id"), nullable=False
    )
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    subject = db.relationship("Subject", lazy="joined")
    sub_subjects = db.relationship(
        "TemplateSubSubject",
        backref="template_subject",
        order_by="TemplateSubSubject.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "subjectId": self.subject_id,
            "order": self.position,
            "subject": self.subject.to_dict() if self.subject else None,
            "subSubjects": [s.to_dict() for s in self.sub_subjects],
        }


class TemplateSubSubject(db.Model):
    __tablename__ = "exam_score_template_sub_subjects"
    __table_args__ = (db.UniqueConstraint("template_subject_id", "sub_subject_id"),)

    id = db.Column(db.Integer, primary_key=True)
    template_subject_id = db.Column(
        db.Integer, db.ForeignKey("exam_score_template_subjects.id"), nullable=False
    )
    sub_subject_id = db.Column(
        db.Integer, db.ForeignKey("sub_subjects.id"), nullable=False
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    sub_subject = db.relationship("SubSubject", lazy="joined")

    def to_dict(self):
        return {
            "subSubjectId": self.sub_subject_id,
            "order": self.position,
            "subSubject": self.sub_subject.to_dict() if self.sub_subject else None,
        }


class ExamScore(db.Model):
    __tablename__ = "exam_scores"
    __table_args__ = (
        db.Index("ix_exam_scores_period", "class_id", "year", "month"),
        # sub_subject_key mirrors sub_subject_id with 0 for main, so the key has no NULLs
        db.UniqueConstraint(
            "class_id",
            "month",
            "year",
            "student_id",
            "subject_id",
            "sub_subject_key",
            name="uq_exam_scores_identity",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey("classes.id"), nullable=False)
    month = db.Column(db.Integer, nullable=False)  # 1..12
    year = db.Column(db.Integer, nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.id"), nullable=False)
    sub_subject_id = db.Column(
        db.Integer, db.ForeignKey("sub_subjects.id"), nullable=True
    )
    sub_subject_key = db.Column(db.Integer, nullable=False, default=0)
    score = db.Column(db.Float, nullable=True)  # 0..10, two decimals
    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(
        db.DateTime,
        default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    def __repr__(self):
        return (
            f"<ExamScore {self.id} student={self.student_id} "
            f"{self.subject_id}/{self.sub_subject_id or 'main'} {self.month}/{self.year}>"
        )

    @validates("sub_subject_id")
    def _sync_sub_subject_key(self, key, value):
        self.sub_subject_key = value or 0
        return value

    @property
    def identity(self):
        """(student_id, subject_id, sub_subject_id or "main") within the period."""
        return (self.student_id, self.subject_id, self.sub_subject_id or "main")

    def to_dict(self):
        return {
            "id": self.id,
            "studentId": self.student_id,
            "classId": self.class_id,
            "month": self.month,
            "year": self.year,
            "subjectId": self.subject_id,
            "subSubjectId": self.sub_subject_id,
            "score": self.score,
        }
