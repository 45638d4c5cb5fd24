"""
Fixtures for the exam score template tests.

Every test gets a fresh in-memory SQLite database seeded with a small
subject catalogue and two classes:

    class 9  (grade 5)  - 9 students
    class 10 (grade 6)  - 2 students

Subjects: Math(1), Khmer(2) with Reading(1)/Writing(2), Science(3),
English(4) with Grammar(3).
"""

from urllib.parse import urlsplit

import pytest
import requests

from app import create_app
from models import db, SchoolClass, Student, Subject, SubSubject
from utils.store_client import ExamScoreStoreClient
from utils.template_store import SqlTemplateStore

MATH, KHMER, SCIENCE, ENGLISH = 1, 2, 3, 4
READING, WRITING, GRAMMAR = 1, 2, 3

TEACHER_ID = 7


def _seed():
    db.session.add_all(
        [
            Subject(id=MATH, name="Math", khmer_name="គណិតវិទ្យា"),
            Subject(id=KHMER, name="Khmer", khmer_name="ភាសាខ្មែរ"),
            Subject(id=SCIENCE, name="Science"),
            Subject(id=ENGLISH, name="English"),
        ]
    )
    db.session.add_all(
        [
            SubSubject(id=READING, subject_id=KHMER, name="Reading"),
            SubSubject(id=WRITING, subject_id=KHMER, name="Writing"),
            SubSubject(id=GRAMMAR, subject_id=ENGLISH, name="Grammar"),
        ]
    )
    db.session.add_all(
        [
            SchoolClass(id=9, name="Grade 5A", grade_level="5", section="A", teacher_id=TEACHER_ID),
            SchoolClass(id=10, name="Grade 6B", grade_level="6", section="B", teacher_id=TEACHER_ID),
        ]
    )
    for i in range(1, 10):
        db.session.add(Student(id=i, class_id=9, first_name=f"Student{i}", last_name="Sok"))
    for i in range(10, 12):
        db.session.add(Student(id=i, class_id=10, first_name=f"Student{i}", last_name="Chan"))
    db.session.commit()


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "WTF_CSRF_ENABLED": False,
        }
    )
    with app.app_context():
        db.create_all()
        _seed()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def csrf_app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite://"})
    with app.app_context():
        db.create_all()
        _seed()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return SqlTemplateStore()


@pytest.fixture
def class9_students():
    return [{"id": i, "firstName": f"Student{i}"} for i in range(1, 10)]


@pytest.fixture
def make_template(store):
    """Factory: make_template([(subject, sub_or_None), ...], name=..., grade_level=...)."""

    def factory(pairs, name="Monthly", grade_level="5", teacher_id=TEACHER_ID):
        return store.create_template(
            {
                "name": name,
                "teacherId": teacher_id,
                "gradeLevel": grade_level,
                "items": [{"subjectId": s, "subSubjectId": sub} for s, sub in pairs],
            }
        )

    return factory


class FlaskSessionAdapter:
    """Stands in for requests.Session and routes calls into a Flask test client.

    Replies are real requests.Response objects so raise_for_status/json behave
    exactly as they would over the network.
    """

    def __init__(self, test_client):
        self.test_client = test_client
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path))
        query = {k: str(v) for k, v in (params or {}).items()}
        resp = self.test_client.open(
            path, method=method, query_string=query, json=json, headers=headers
        )
        out = requests.Response()
        out.status_code = resp.status_code
        out._content = resp.get_data()
        out.headers.update(dict(resp.headers))
        out.encoding = "utf-8"
        out.url = url
        return out


@pytest.fixture
def api_client(csrf_app):
    adapter = FlaskSessionAdapter(csrf_app.test_client())
    return ExamScoreStoreClient("http://testserver", session=adapter)
