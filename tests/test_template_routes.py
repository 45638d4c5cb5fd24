from conftest import KHMER, MATH, READING, SCIENCE, TEACHER_ID, WRITING


def _create(client, items, name="Monthly", grade_level="5"):
    return client.post(
        "/api/exam-score/templates",
        json={
            "name": name,
            "teacherId": TEACHER_ID,
            "gradeLevel": grade_level,
            "items": [{"subjectId": s, "subSubjectId": sub} for s, sub in items],
        },
    )


def test_welcome(client):
    resp = client.get("/welcome")
    assert resp.status_code == 200
    assert "message" in resp.get_json()


def test_create_and_fetch_template(client):
    resp = _create(client, [(KHMER, WRITING), (MATH, None), (KHMER, READING)])
    assert resp.status_code == 201
    created = resp.get_json()
    assert [s["subjectId"] for s in created["subjects"]] == [KHMER, MATH]

    fetched = client.get(f"/api/exam-score/templates/{created['id']}").get_json()
    assert fetched["subjects"][0]["subSubjects"][0]["subSubjectId"] == WRITING


def test_create_template_validation_error(client):
    resp = _create(client, [])
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "validation_failed"
    assert body["details"]


def test_list_templates_filters(client):
    _create(client, [(MATH, None)], name="Grade 5")
    _create(client, [(SCIENCE, None)], name="Grade 6", grade_level="6")

    resp = client.get(f"/api/exam-score/templates?teacherId={TEACHER_ID}&gradeLevel=6&isActive=true")
    assert resp.status_code == 200
    assert [t["name"] for t in resp.get_json()["templates"]] == ["Grade 6"]


def test_update_reorder_and_delete(client):
    template_id = _create(client, [(MATH, None), (SCIENCE, None)]).get_json()["id"]

    resp = client.patch(
        f"/api/exam-score/templates/{template_id}",
        json={"isActive": False, "gradeLevel": "12"},
    )
    assert resp.status_code == 200
    assert resp.get_json()["isActive"] is False
    assert resp.get_json()["gradeLevel"] == "5"

    resp = client.patch(
        f"/api/exam-score/templates/{template_id}/reorder",
        json={"subjects": [{"subjectId": MATH, "order": 1}, {"subjectId": SCIENCE, "order": 0}]},
    )
    assert [s["subjectId"] for s in resp.get_json()["subjects"]] == [SCIENCE, MATH]

    assert client.delete(f"/api/exam-score/templates/{template_id}").status_code == 200
    assert client.get(f"/api/exam-score/templates/{template_id}").status_code == 404


def test_apply_template_end_to_end(client):
    template_id = _create(client, [(MATH, None), (KHMER, READING), (KHMER, WRITING)]).get_json()["id"]
    payload = {"templateId": template_id, "classId": 9, "month": 3, "year": 2025}

    first = client.post("/api/exam-score/apply-template", json=payload)
    assert first.status_code == 200
    assert first.get_json() == {"created": 27, "skipped": 0}

    again = client.post("/api/exam-score/apply-template", json=payload)
    assert again.get_json() == {"created": 0, "skipped": 27}

    scores = client.get("/api/exam-score/scores?classId=9&month=3&year=2025").get_json()["scores"]
    assert len(scores) == 27


def test_apply_template_requires_fields(client):
    resp = client.post("/api/exam-score/apply-template", json={"templateId": 1})
    assert resp.status_code == 400
    assert "classId is required" in resp.get_json()["details"]


def test_scores_bulk_and_single_updates(client):
    template_id = _create(client, [(MATH, None)]).get_json()["id"]
    client.post(
        "/api/exam-score/apply-template",
        json={"templateId": template_id, "classId": 10, "month": 1, "year": 2025},
    )
    rows = client.get(
        f"/api/exam-score/scores?classId=10&month=1&year=2025&templateId={template_id}"
    ).get_json()["scores"]

    resp = client.patch(
        "/api/exam-score/scores",
        json={"scores": [{"id": rows[0]["id"], "score": 9.75}, {"id": 4242, "score": None}]},
    )
    assert resp.get_json() == {"updated": 1, "notFound": [4242]}

    resp = client.patch("/api/exam-score/scores", json={"scores": [{"id": rows[0]["id"], "score": -1}]})
    assert resp.status_code == 400

    resp = client.patch(f"/api/exam-score/scores/{rows[1]['id']}", json={"score": 5})
    assert resp.get_json()["score"] == 5.0
    assert client.delete(f"/api/exam-score/scores/{rows[1]['id']}").status_code == 200
    assert client.patch(f"/api/exam-score/scores/{rows[1]['id']}", json={"score": 5}).status_code == 404


def test_get_scores_requires_period(client):
    resp = client.get("/api/exam-score/scores?classId=9")
    assert resp.status_code == 400
    assert "month is required" in resp.get_json()["details"]


def test_subject_catalogue(client):
    assert len(client.get("/api/subjects").get_json()["subjects"]) == 4
    subs = client.get(f"/api/subjects/{KHMER}/sub-subjects").get_json()["subSubjects"]
    assert [s["name"] for s in subs] == ["Reading", "Writing"]
    assert client.get("/api/subjects/99/sub-subjects").status_code == 404


def test_mutations_require_csrf_token(csrf_app):
    client = csrf_app.test_client()
    payload = {
        "name": "Monthly",
        "teacherId": TEACHER_ID,
        "gradeLevel": "5",
        "items": [{"subjectId": MATH}],
    }
    resp = client.post("/api/exam-score/templates", json=payload)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "csrf_failed"

    token = client.get("/api/exam-score/csrf-token").get_json()["csrf_token"]
    resp = client.post("/api/exam-score/templates", json=payload, headers={"X-CSRFToken": token})
    assert resp.status_code == 201
