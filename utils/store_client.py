import os
import logging
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv

from utils.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/exam-score"


class ExamScoreStoreClient:
    """HTTP client for the exam score template store.

    Same methods as SqlTemplateStore, so a ScoreGrid can run against a remote
    service. Every transport failure or non-2xx reply raises StoreError.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self._csrf_token: Optional[str] = None

    @classmethod
    def from_env(cls, session: Optional[requests.Session] = None):
        load_dotenv()
        base_url = os.getenv("EXAM_SCORE_API_URL", "http://localhost:5000")
        timeout = float(os.getenv("EXAM_SCORE_API_TIMEOUT", "10"))
        return cls(base_url, session=session, timeout=timeout)

    # ---- transport ---------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _ensure_csrf(self) -> str:
        if self._csrf_token is None:
            data = self._request("GET", f"{API_PREFIX}/csrf-token", csrf=False)
            self._csrf_token = data.get("csrf_token")
            if not self._csrf_token:
                raise StoreError("Store did not return a CSRF token")
        return self._csrf_token

    def _request(self, method: str, path: str, params=None, json=None, csrf=None):
        if csrf is None:
            csrf = method not in ("GET", "HEAD", "OPTIONS")
        headers = {"Accept": "application/json"}
        if csrf:
            headers["X-CSRFToken"] = self._ensure_csrf()
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            resp = self.session.request(
                method,
                self._url(path),
                params=params or None,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {str(e)}")
            raise StoreError(f"Could not reach the score store: {e}")

        try:
            body = resp.json()
        except ValueError:
            body = {}

        body_dict = body if isinstance(body, dict) else {}

        if resp.status_code == 404:
            raise NotFoundError(
                body_dict.get("message") or f"{path} not found",
                details=body_dict.get("details"),
            )
        if not resp.ok:
            error = body_dict.get("error")
            logger.error(f"{method} {path} returned {resp.status_code}: {error}")
            raise StoreError(
                error or f"Store request failed with status {resp.status_code}",
                status_code=resp.status_code,
                details=body_dict.get("details"),
            )
        return body

    @staticmethod
    def _unwrap(body, key: str):
        """Responses may be a bare list or {key: [...]} / {data: [...]}."""
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            return body.get(key) or body.get("data") or []
        return []

    # ---- templates ---------------------------------------------------------

    def create_template(self, data: Dict) -> Dict:
        return self._request("POST", f"{API_PREFIX}/templates", json=data)

    def get_template(self, template_id) -> Dict:
        return self._request("GET", f"{API_PREFIX}/templates/{int(template_id)}")

    def update_template(self, template_id, data: Dict) -> Dict:
        return self._request(
            "PATCH", f"{API_PREFIX}/templates/{int(template_id)}", json=data
        )

    def reorder_template(self, template_id, data: Dict) -> Dict:
        return self._request(
            "PATCH", f"{API_PREFIX}/templates/{int(template_id)}/reorder", json=data
        )

    def list_templates(self, teacher_id=None, grade_level=None, is_active=None) -> List[Dict]:
        params = {
            "teacherId": teacher_id,
            "gradeLevel": grade_level,
            "isActive": None if is_active is None else str(bool(is_active)).lower(),
        }
        body = self._request("GET", f"{API_PREFIX}/templates", params=params)
        return self._unwrap(body, "templates")

    def delete_template(self, template_id) -> Dict:
        return self._request("DELETE", f"{API_PREFIX}/templates/{int(template_id)}")

    # ---- scores ------------------------------------------------------------

    def apply_template(self, template_id, class_id, month, year) -> Dict[str, int]:
        payload = {
            "templateId": template_id,
            "classId": class_id,
            "month": month,
            "year": year,
        }
        body = self._request("POST", f"{API_PREFIX}/apply-template", json=payload)
        return {
            "created": int(body.get("created", 0)),
            "skipped": int(body.get("skipped", 0)),
        }

    def get_scores(
        self,
        class_id,
        month,
        year,
        student_id=None,
        subject_id=None,
        template_id=None,
    ) -> List[Dict]:
        params = {
            "classId": class_id,
            "month": month,
            "year": year,
            "studentId": student_id,
            "subjectId": subject_id,
            "templateId": template_id,
        }
        body = self._request("GET", f"{API_PREFIX}/scores", params=params)
        return self._unwrap(body, "scores")

    def bulk_update_scores(self, scores: List[Dict]) -> Dict:
        body = self._request("PATCH", f"{API_PREFIX}/scores", json={"scores": scores})
        return {
            "updated": int(body.get("updated", 0)),
            "notFound": list(body.get("notFound") or []),
        }

    def update_score(self, score_id, data: Dict) -> Dict:
        return self._request("PATCH", f"{API_PREFIX}/scores/{int(score_id)}", json=data)

    def delete_score(self, score_id) -> Dict:
        return self._request("DELETE", f"{API_PREFIX}/scores/{int(score_id)}")

    # ---- catalogue ---------------------------------------------------------

    def list_subjects(self) -> List[Dict]:
        return self._unwrap(self._request("GET", "/api/subjects"), "subjects")

    def get_sub_subjects(self, subject_id) -> List[Dict]:
        body = self._request("GET", f"/api/subjects/{int(subject_id)}/sub-subjects")
        return self._unwrap(body, "subSubjects")


class SubSubjectCache:
    """Memoizing sub-subject lookup, filled on demand for the life of the object."""

    def __init__(self, store):
        self.store = store
        self._cache: Dict[int, List[Dict]] = {}

    def sub_subjects_of(self, subject_id) -> List[Dict]:
        subject_id = int(subject_id)
        if subject_id not in self._cache:
            self._cache[subject_id] = list(self.store.get_sub_subjects(subject_id))
        return self._cache[subject_id]

    def __contains__(self, subject_id) -> bool:
        return int(subject_id) in self._cache
