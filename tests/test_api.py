"""API tests through the ASGI app."""

from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from swimschool.core.settings import settings
from swimschool.main import app


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def auth_headers(client):
    response = await client.post(
        "/auth/login",
        data={"username": settings.admin_email, "password": settings.admin_password},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
async def weekly(factory, monday):
    level = await factory.level()
    template = await factory.template(level)
    plan = await factory.weekly_plan(level)
    student = await factory.student(level)
    enrolment = await factory.enrolment(student, plan, [template], monday)
    invoice = await factory.paid_invoice(
        enrolment, plan, coverage_start=monday, coverage_end=date(2026, 2, 23)
    )
    return {
        "enrolment_id": enrolment.id,
        "invoice_id": invoice.id,
        "template_id": template.id,
        "level": level,
    }


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_sweep_health_before_first_run(client):
    response = await client.get("/health/sweep")
    assert response.status_code == 200
    body = response.json()
    assert body["last_run_at"] is None
    assert body["interval_minutes"] == settings.coverage_sweep_interval_minutes


async def test_current_operator(client, auth_headers):
    response = await client.get("/auth/me", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["username"] == settings.admin_email
    assert response.json()["is_admin"] is True


async def test_login_rejects_bad_password(client):
    response = await client.post(
        "/auth/login", data={"username": settings.admin_email, "password": "wrong"}
    )
    assert response.status_code == 401


async def test_requires_token(client, weekly):
    response = await client.get(f"/api/enrolments/{weekly['enrolment_id']}")
    assert response.status_code in (401, 403)


async def test_apply_invoice_and_read_history(client, auth_headers, weekly):
    response = await client.post(
        f"/api/invoices/{weekly['invoice_id']}/apply", headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["entitlements_applied_at"] is not None

    response = await client.get(f"/api/enrolments/{weekly['enrolment_id']}", headers=auth_headers)
    assert response.json()["paid_through_date"] == "2026-02-23"

    response = await client.get(
        f"/api/enrolments/{weekly['enrolment_id']}/coverage-history", headers=auth_headers
    )
    history = response.json()
    assert len(history) == 1
    assert history[0]["reason"] == "INVOICE_APPLIED"
    assert history[0]["actor"] == settings.admin_email


async def test_coverage_preview(client, auth_headers, weekly):
    response = await client.get(
        f"/api/enrolments/{weekly['enrolment_id']}/coverage",
        params={"quantity": 2},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["periods"] == 2
    assert body["credits_purchased"] is None


async def test_missing_enrolment_returns_domain_error(client, auth_headers):
    response = await client.get("/api/enrolments/9999", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


async def test_holiday_crud_recomputes(client, auth_headers, weekly):
    await client.post(f"/api/invoices/{weekly['invoice_id']}/apply", headers=auth_headers)

    response = await client.post(
        "/api/holidays/",
        json={"name": "Pool closed", "start_date": "2026-02-16", "end_date": "2026-02-16"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    holiday_id = response.json()["id"]

    response = await client.get(f"/api/enrolments/{weekly['enrolment_id']}", headers=auth_headers)
    assert response.json()["paid_through_date"] == "2026-03-02"

    response = await client.get("/api/holidays/", headers=auth_headers)
    assert [h["id"] for h in response.json()] == [holiday_id]

    response = await client.delete(f"/api/holidays/{holiday_id}", headers=auth_headers)
    assert response.status_code == 204


async def test_invalid_holiday_range(client, auth_headers):
    response = await client.post(
        "/api/holidays/",
        json={"name": "Backwards", "start_date": "2026-02-16", "end_date": "2026-02-10"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


async def test_cancel_occurrence_and_capacity(client, auth_headers, weekly):
    template_id = weekly["template_id"]
    response = await client.post(
        f"/api/classes/{template_id}/cancellations/2026-02-09",
        json={"reason": "Lifeguard sick"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["reason"] == "Lifeguard sick"

    response = await client.get(
        f"/api/classes/{template_id}/capacity/2026-02-16", headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["current_count"] == 1

    response = await client.post(
        "/api/makeups/availability",
        json={"occurrences": [{"template_id": template_id, "session_date": "2026-02-09"}]},
        headers=auth_headers,
    )
    assert response.json()[0]["cancelled"] is True


async def test_change_enrolment_class(client, auth_headers, factory, weekly):
    await client.post(f"/api/invoices/{weekly['invoice_id']}/apply", headers=auth_headers)
    wednesday = await factory.template(weekly["level"], day_of_week=2)
    url = f"/api/enrolments/{weekly['enrolment_id']}/change"

    response = await client.post(
        url,
        json={"template_ids": [wednesday.id], "effective_date": "2026-02-02"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["paid_through_date"] == "2026-02-25"

    # Back to Monday loses two days of paid coverage
    response = await client.post(
        url, json={"template_ids": [weekly["template_id"]]}, headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "coverage_would_shorten"

    response = await client.get(
        f"/api/enrolments/{weekly['enrolment_id']}/coverage-history", headers=auth_headers
    )
    assert [h["reason"] for h in response.json()] == ["PLAN_CHANGED", "INVOICE_APPLIED"]


async def test_change_enrolment_needs_classes_or_plan(client, auth_headers, weekly):
    response = await client.post(
        f"/api/enrolments/{weekly['enrolment_id']}/change", json={}, headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"
