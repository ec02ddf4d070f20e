"""Point ledger API endpoints."""

import httpx


async def test_award_from_rule(
    client: httpx.AsyncClient, staff, student, circle_session, point_rules, auth_headers
):
    response = await client.post(
        "/api/points/award",
        json={"student_id": student.id, "session_id": circle_session.id, "rule_key": "ATTENDANCE_PRESENT"},
        headers=auth_headers(staff["teacher"]),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["awarded"] is True
    assert body["transaction"]["amount"] == 2
    assert body["transaction"]["awarded_by_id"] == staff["teacher"].id
    assert body["balance"] == 2


async def test_award_zero_rule_is_no_op(
    client: httpx.AsyncClient, staff, student, circle_session, point_rules, auth_headers
):
    response = await client.post(
        "/api/points/award",
        json={"student_id": student.id, "session_id": circle_session.id, "rule_key": "RECITATION_POOR"},
        headers=auth_headers(staff["teacher"]),
    )
    assert response.json() == {"awarded": False, "transaction": None, "balance": 0}


async def test_award_requires_rule_or_amount(
    client: httpx.AsyncClient, staff, student, auth_headers
):
    response = await client.post(
        "/api/points/award",
        json={"student_id": student.id},
        headers=auth_headers(staff["teacher"]),
    )
    assert response.status_code == 400


async def test_manual_points_and_budget(
    client: httpx.AsyncClient, staff, student, circle_session, auth_headers
):
    headers = auth_headers(staff["teacher"])
    payload = {"student_id": student.id, "session_id": circle_session.id, "reason": "bonus"}

    response = await client.post("/api/points/manual", json={**payload, "amount": 10}, headers=headers)
    assert response.status_code == 201
    assert response.json()["source_kind"] == "manual_reward"

    response = await client.post(
        "/api/points/award", json={**payload, "amount": 8}, headers=headers
    )
    assert response.status_code == 200

    response = await client.post("/api/points/manual", json={**payload, "amount": 5}, headers=headers)
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "BudgetExceeded"
    assert (body["cap"], body["used"], body["requested"]) == (20, 18, 5)

    response = await client.get(f"/api/points/sessions/{circle_session.id}/budget", headers=headers)
    assert response.json()["remaining"] == 2

    response = await client.get(f"/api/points/students/{student.id}/balance", headers=headers)
    assert response.json()["balance"] == 18


async def test_examiner_cannot_award_manual_points(
    client: httpx.AsyncClient, staff, student, circle_session, auth_headers
):
    response = await client.post(
        "/api/points/manual",
        json={"student_id": student.id, "session_id": circle_session.id, "amount": 3, "reason": "bonus"},
        headers=auth_headers(staff["examiner"]),
    )
    assert response.status_code == 403


async def test_point_history(client: httpx.AsyncClient, staff, student, circle_session, auth_headers):
    headers = auth_headers(staff["teacher"])
    for amount in (1, 2, 3):
        await client.post(
            "/api/points/manual",
            json={"student_id": student.id, "session_id": circle_session.id,
                  "amount": amount, "reason": f"bonus {amount}"},
            headers=headers,
        )

    response = await client.get(f"/api/points/students/{student.id}/history?limit=2", headers=headers)
    assert [t["amount"] for t in response.json()] == [3, 2]

    response = await client.get(f"/api/points/students/{student.id}/history?limit=0", headers=headers)
    assert response.status_code == 400


async def test_rule_admin(client: httpx.AsyncClient, staff, point_rules, auth_headers):
    admin = auth_headers(staff["admin"])
    response = await client.get("/api/points/rules", headers=admin)
    assert len(response.json()) == 9

    response = await client.patch(
        "/api/points/rules/EXAM_PASSED", json={"points": 15, "is_active": False}, headers=admin
    )
    assert response.status_code == 200
    assert response.json()["points"] == 15
    assert response.json()["is_active"] is False

    response = await client.get("/api/points/rules", headers=auth_headers(staff["teacher"]))
    assert response.status_code == 403
