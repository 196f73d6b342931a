import json

import pytest


ASSESSMENT_BODY = {
    "name": "Half Yearly",
    "assessment_type": "SA1",
    "class_grades": [5],
    "scheduled_date": "2025-09-20",
    "academic_year": "2025-2026",
    "subject_marks": [
        {
            "total_marks": 100,
            "breakdowns": [
                {"title": "Theory", "marks": 80},
                {"title": "Practical", "marks": 20},
            ],
        }
    ],
}


@pytest.fixture
def created(client, school):
    resp = client.post("/api/assessments", json=ASSESSMENT_BODY)
    assert resp.status_code == 201
    return resp.get_json()["assessment"]


def test_welcome(client):
    resp = client.get("/welcome")
    assert resp.status_code == 200
    assert "message" in resp.get_json()


def test_csrf_token_endpoint(client):
    resp = client.get("/api/csrf-token")
    assert resp.status_code == 200
    assert resp.get_json()["csrf_token"]


def test_health_reports_database(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["database"] is True


def test_create_and_fetch_assessment(client, created):
    assert created["assessment_type"] == "SA1"
    resp = client.get(f"/api/assessments/{created['id']}")
    assert resp.status_code == 200
    assert resp.get_json()["name"] == "Half Yearly"

    listed = client.get("/api/assessments?academic_year=2025-2026").get_json()
    assert [a["id"] for a in listed["assessments"]] == [created["id"]]


def test_create_rejects_over_allocation(client):
    body = dict(ASSESSMENT_BODY)
    body["subject_marks"] = [
        {
            "total_marks": 100,
            "breakdowns": [
                {"title": "Theory", "marks": 90},
                {"title": "Practical", "marks": 20},
            ],
        }
    ]
    resp = client.post("/api/assessments", json=body)
    assert resp.status_code == 400
    data = resp.get_json()
    assert data["error"] == "validation_failed"
    assert "exceed total marks" in data["message"]


def test_create_rejects_non_object_body(client):
    resp = client.post("/api/assessments", json=[1, 2])
    assert resp.status_code == 400


def test_create_rejects_bad_shapes(client):
    body = dict(ASSESSMENT_BODY, class_grades=["five"])
    resp = client.post("/api/assessments", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["details"]


def test_create_rejects_nan_total(client):
    raw = json.dumps(ASSESSMENT_BODY).replace('"total_marks": 100', '"total_marks": NaN')
    assert "NaN" in raw
    resp = client.post("/api/assessments", data=raw, content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_failed"


def test_unknown_assessment_is_404(client):
    assert client.get("/api/assessments/404").status_code == 404
    assert client.put("/api/assessments/404", json=ASSESSMENT_BODY).status_code == 404
    resp = client.delete("/api/assessments/404")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "not_found"


def test_update_and_delete(client, created):
    body = dict(ASSESSMENT_BODY, name="Half Yearly Exam", class_grades=[5, 6])
    resp = client.put(f"/api/assessments/{created['id']}", json=body)
    assert resp.status_code == 200
    assert resp.get_json()["assessment"]["class_grades"] == [5, 6]

    assert client.delete(f"/api/assessments/{created['id']}").status_code == 200
    assert client.get(f"/api/assessments/{created['id']}").status_code == 404


def test_create_with_timetable_step(client, school):
    body = dict(
        ASSESSMENT_BODY,
        exam_timetable={
            "entries": [
                {"subject_id": school["math"], "exam_date": "2025-09-22"},
                {"subject_id": school["science"], "exam_date": ""},
            ]
        },
    )
    resp = client.post("/api/assessments", json=body)
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["timetable_saved"] is True

    tt = client.get(
        f"/api/assessments/{data['assessment']['id']}/exam-timetable?class_grade=5"
    ).get_json()
    assert tt["entries"] == [{"subject_id": school["math"], "exam_date": "2025-09-22"}]


def test_timetable_step_failure_keeps_assessment(client, school):
    body = dict(
        ASSESSMENT_BODY,
        class_grades=[5, 6],
        exam_timetable={
            "entries": [{"subject_id": school["math"], "exam_date": "2025-09-22"}]
        },
    )
    resp = client.post("/api/assessments", json=body)
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["timetable_saved"] is False
    assert data["timetable_error"]
    assert client.get(f"/api/assessments/{data['assessment']['id']}").status_code == 200


def test_timetable_put(client, created, school):
    url = f"/api/assessments/{created['id']}/exam-timetable"
    resp = client.put(
        url,
        json={
            "class_grade": 5,
            "entries": [{"subject_id": school["science"], "exam_date": "2025-09-23"}],
        },
    )
    assert resp.status_code == 200
    assert resp.get_json()["entries"][0]["exam_date"] == "2025-09-23"

    events = client.get("/api/calendar/exams?academic_year=2025-2026").get_json()["events"]
    assert events[0]["title"] == "Half Yearly - Science"


def test_timetable_put_all_blank(client, created, school):
    resp = client.put(
        f"/api/assessments/{created['id']}/exam-timetable",
        json={"class_grade": 5, "entries": [{"subject_id": school["math"], "exam_date": ""}]},
    )
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "select at least one exam date"


def test_timetable_put_multiple_grades(client, created, school):
    resp = client.put(
        f"/api/assessments/{created['id']}/exam-timetable",
        json={
            "class_grade": 5,
            "class_grades": [5, 6],
            "entries": [{"subject_id": school["math"], "exam_date": "2025-09-23"}],
        },
    )
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "precondition_failed"


def test_timetable_get_requires_grade(client, created):
    resp = client.get(f"/api/assessments/{created['id']}/exam-timetable")
    assert resp.status_code == 400


def test_marks_sheet_requires_selection(client, created):
    resp = client.get(f"/api/reports/marks-sheet?assessment_id={created['id']}")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Select assessment, class and subject"


def test_marks_sheet_save_and_load(client, created, school):
    theory, practical = [b["id"] for b in created["subject_marks"][0]["breakdowns"]]
    query = (
        f"assessment_id={created['id']}&class_id={school['c5a']}&subject_id={school['math']}"
    )

    resp = client.put(
        "/api/reports/marks-sheet",
        json={
            "assessment_id": created["id"],
            "class_id": school["c5a"],
            "subject_id": school["math"],
            "entries": [
                {
                    "student_id": school["alice"],
                    "marks_obtained": 5,
                    "breakdown_marks": [
                        {"breakdown_id": theory, "marks_obtained": 70},
                        {"breakdown_id": practical, "marks_obtained": 18},
                    ],
                }
            ],
            "pending": {
                str(school["bob"]): {"breakdown_marks": {str(theory): 40}},
            },
        },
    )
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["saved"] == 2

    sheet = client.get(f"/api/reports/marks-sheet?{query}").get_json()
    totals = {s["student_id"]: s["marks_obtained"] for s in sheet["students"]}
    assert totals[school["alice"]] == 88
    assert totals[school["bob"]] == 40
    assert totals[school["zed"]] == 0


def test_marks_sheet_rejects_over_maximum(client, created, school):
    theory = created["subject_marks"][0]["breakdowns"][0]["id"]
    resp = client.put(
        "/api/reports/marks-sheet",
        json={
            "assessment_id": created["id"],
            "class_id": school["c5a"],
            "subject_id": school["math"],
            "entries": [
                {
                    "student_id": school["alice"],
                    "breakdown_marks": [{"breakdown_id": theory, "marks_obtained": 81}],
                }
            ],
        },
    )
    assert resp.status_code == 400


def test_marks_sheet_rejects_non_finite_marks(client, created, school):
    theory = created["subject_marks"][0]["breakdowns"][0]["id"]
    raw = (
        '{"assessment_id": %d, "class_id": %d, "subject_id": %d, "entries": '
        '[{"student_id": %d, "breakdown_marks": '
        '[{"breakdown_id": %d, "marks_obtained": Infinity}]}]}'
        % (created["id"], school["c5a"], school["math"], school["alice"], theory)
    )
    resp = client.put("/api/reports/marks-sheet", data=raw, content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_failed"


def test_marks_sheet_rejects_other_class_student(client, created, school):
    resp = client.put(
        "/api/reports/marks-sheet",
        json={
            "assessment_id": created["id"],
            "class_id": school["c5a"],
            "subject_id": school["math"],
            "entries": [{"student_id": school["dan"]}],
        },
    )
    assert resp.status_code == 409


def test_report_options(client, created, school):
    data = client.get("/api/reports/options?academic_year=2025-2026").get_json()
    assert [a["name"] for a in data["assessments"]] == ["Half Yearly"]
    assert {c["class_id"] for c in data["classes"]} == {school["c5a"], school["c5b"]}
