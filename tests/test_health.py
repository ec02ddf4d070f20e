"""Smoke tests - verify the app starts and basic endpoints respond."""

import httpx


async def test_health_returns_ok(client: httpx.AsyncClient):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_unauthenticated_request_is_rejected(client: httpx.AsyncClient):
    response = await client.get("/api/points/students/1/balance")
    assert response.status_code == 401


async def test_unregistered_email_is_forbidden(client: httpx.AsyncClient):
    response = await client.get(
        "/api/points/students/1/balance",
        headers={"cf-access-authenticated-user-email": "stranger@example.com"},
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Not registered"


async def test_registered_user_is_resolved(client: httpx.AsyncClient, staff, student, auth_headers):
    response = await client.get(
        f"/api/points/students/{student.id}/balance", headers=auth_headers(staff["teacher"])
    )
    assert response.status_code == 200
    assert response.json() == {"student_id": student.id, "balance": 0}


async def test_middleware_records_email_without_database_lookup():
    """The middleware alone must work with no database behind it."""
    from fastapi import FastAPI, Request

    from app.middleware import AuthMiddleware

    bare = FastAPI()
    bare.add_middleware(AuthMiddleware)

    @bare.get("/whoami")
    async def whoami(request: Request):
        return {"email": request.state.user_email, "user": hasattr(request.state, "user")}

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=bare), base_url="http://testserver"
    ) as ac:
        response = await ac.get(
            "/whoami", headers={"cf-access-authenticated-user-email": "teacher@example.com"}
        )
        anonymous = await ac.get("/whoami")

    assert response.json() == {"email": "teacher@example.com", "user": False}
    assert anonymous.json() == {"email": None, "user": False}
