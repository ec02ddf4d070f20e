"""Exam API endpoints."""

import httpx


async def test_create_and_submit_exam(client: httpx.AsyncClient, staff, student, auth_headers):
    headers = auth_headers(staff["examiner"])
    response = await client.post(
        "/api/exams",
        json={"student_id": student.id, "unit": 5, "review_units": [3], "date": "2026-10-19"},
        headers=headers,
    )
    assert response.status_code == 201
    attempt = response.json()
    assert attempt["status"] == "pending"
    assert attempt["review_units"] == [3]
    assert attempt["examiner_id"] == staff["examiner"].id

    questions = [
        {"kind": "current_part", "mistake_count": m, "max_weight": 33} for m in (0, 2, 1)
    ] + [{"kind": "cumulative", "mistake_count": 10, "max_weight": 100, "unit_reference": 3}]
    response = await client.post(
        f"/api/exams/{attempt['id']}/submit", json={"questions": questions}, headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["final_score"] == 93.5
    assert body["passed"] is True
    assert len(body["questions"]) == 4

    response = await client.post(
        f"/api/exams/{attempt['id']}/submit", json={"questions": questions}, headers=headers
    )
    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyCompleted"

    response = await client.get(f"/api/exams/{attempt['id']}", headers=headers)
    assert response.json()["final_score"] == 93.5


async def test_create_exam_unknown_student(client: httpx.AsyncClient, staff, auth_headers):
    response = await client.post(
        "/api/exams", json={"student_id": 999, "unit": 5}, headers=auth_headers(staff["examiner"])
    )
    assert response.status_code == 404


async def test_create_exam_invalid_unit(client: httpx.AsyncClient, staff, student, auth_headers):
    response = await client.post(
        "/api/exams",
        json={"student_id": student.id, "unit": 31},
        headers=auth_headers(staff["examiner"]),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"


async def test_teacher_cannot_create_exam(client: httpx.AsyncClient, staff, student, auth_headers):
    response = await client.post(
        "/api/exams",
        json={"student_id": student.id, "unit": 5},
        headers=auth_headers(staff["teacher"]),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


async def test_wizard_commit(client: httpx.AsyncClient, staff, student, auth_headers):
    response = await client.post(
        "/api/exams/wizard",
        json={
            "student_id": student.id,
            "unit": 5,
            "current_mistakes": [0, 2, 1],
            "current_texts": ["4:24", None, None],
        },
        headers=auth_headers(staff["examiner"]),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["stage"] == "COMMITTED"
    assert body["attempt"]["final_score"] == 97.0
    assert body["attempt"]["questions"][0]["question_text"] == "4:24"


async def test_wizard_forced_fail_ignores_pass_override(
    client: httpx.AsyncClient, staff, student, auth_headers
):
    response = await client.post(
        "/api/exams/wizard",
        json={
            "student_id": student.id,
            "unit": 5,
            "current_mistakes": [10, 10, 10],
            "forced_fail": True,
            "passed": True,
        },
        headers=auth_headers(staff["examiner"]),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["stage"] == "FAILED_EARLY"
    assert body["attempt"]["passed"] is False


async def test_wizard_rejects_advance_below_gatekeeper(
    client: httpx.AsyncClient, staff, student, auth_headers
):
    response = await client.post(
        "/api/exams/wizard",
        json={
            "student_id": student.id,
            "unit": 5,
            "review_units": [3],
            "current_mistakes": [10, 10, 10],
            "review_mistakes": {"3": 0},
        },
        headers=auth_headers(staff["examiner"]),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidTransition"


async def test_card_history_and_unit_summary(client: httpx.AsyncClient, staff, student, auth_headers):
    examiner = auth_headers(staff["examiner"])
    for mistakes, when in (([20, 20, 0], "2026-09-01"), ([0, 0, 0], "2026-10-01")):
        await client.post(
            "/api/exams/wizard",
            json={"student_id": student.id, "unit": 5, "current_mistakes": mistakes,
                  "forced_fail": mistakes[0] > 0, "date": when},
            headers=examiner,
        )

    viewer = auth_headers(staff["supervisor"])
    response = await client.get(f"/api/exams/students/{student.id}/card", headers=viewer)
    assert response.status_code == 200
    card = response.json()
    assert len(card) == 30
    slot = card[4]
    assert slot["unit"] == 5
    assert slot["status"] == "passed"
    assert [a["attempt_number"] for a in slot["attempts"]] == [2, 1]
    assert card[0] == {"unit": 1, "status": "not_attempted", "attempts": []}

    response = await client.get(f"/api/exams/students/{student.id}/history", headers=viewer)
    assert [a["date"] for a in response.json()] == ["2026-09-01", "2026-10-01"]

    response = await client.get(f"/api/exams/students/{student.id}/units/5", headers=viewer)
    summary = response.json()
    assert (summary["total_attempts"], summary["times_passed"], summary["best_score"]) == (2, 1, 100.0)


async def test_card_unknown_student(client: httpx.AsyncClient, staff, auth_headers):
    response = await client.get("/api/exams/students/999/card", headers=auth_headers(staff["admin"]))
    assert response.status_code == 404


async def test_create_exam_rejects_date_with_trailing_text(
    client: httpx.AsyncClient, staff, student, auth_headers
):
    response = await client.post(
        "/api/exams",
        json={"student_id": student.id, "unit": 5, "date": "2026-10-19<<junk>>"},
        headers=auth_headers(staff["examiner"]),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"
