"""
Tests for registration endpoints, error rendering and rate limiting.
"""

from datetime import timedelta

import jwt
import pytest
from httpx import AsyncClient

from event_admission.core import clock
from event_admission.core.config import get_settings


def _url(event_id: int, suffix: str = "") -> str:
    return f"/api/v1/events/{event_id}/registrations{suffix}"


@pytest.mark.asyncio
async def test_register(client: AsyncClient, auth_headers, test_event):
    response = await client.post(
        _url(test_event.id),
        json={"roster_ref": "team-blue"},
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "registered"
    assert data["registration_id"] > 0


@pytest.mark.asyncio
async def test_register_without_body(client: AsyncClient, auth_headers, test_event):
    response = await client.post(_url(test_event.id), headers=auth_headers)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_register_unauthenticated(client: AsyncClient, test_event):
    response = await client.post(_url(test_event.id))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_register_with_invalid_token(client: AsyncClient, test_event):
    response = await client.post(_url(test_event.id), headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_register_with_expired_token(client: AsyncClient, test_event):
    settings = get_settings()
    token = jwt.encode(
        {"sub": "42", "exp": clock.utcnow() - timedelta(minutes=1)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )

    response = await client.post(_url(test_event.id), headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_register_rejects_non_positive_event_id(client: AsyncClient, auth_headers):
    response = await client.post(_url(0), headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_register_unknown_event_renders_typed_error(client: AsyncClient, auth_headers):
    response = await client.post(
        _url(9999),
        headers={**auth_headers, "X-Request-ID": "req-abc"},
    )

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "event_not_found"
    assert error["message"] == "Event 9999 not found"
    assert error["request_id"] == "req-abc"
    assert response.headers["X-Request-ID"] == "req-abc"


@pytest.mark.asyncio
async def test_duplicate_registration(client: AsyncClient, auth_headers, test_event):
    first = await client.post(_url(test_event.id), headers=auth_headers)
    assert first.status_code == 201

    second = await client.post(_url(test_event.id), headers=auth_headers)
    assert second.status_code == 409
    assert second.json()["error"]["code"] == "already_registered"


@pytest.mark.asyncio
async def test_full_event_returns_waitlist_position(client: AsyncClient, headers_for, test_event):
    for participant_id in (10, 11):
        await client.post(_url(test_event.id), headers=headers_for(participant_id))

    response = await client.post(_url(test_event.id), headers=headers_for(12))

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "waitlist"
    assert data["waitlist_position"] == 1
    assert "waitlist" in data["message"]


@pytest.mark.asyncio
async def test_sixth_attempt_is_rate_limited(client: AsyncClient, auth_headers, test_event):
    """Failed attempts count too: one success, four duplicates, then throttled."""
    for _ in range(5):
        await client.post(_url(test_event.id), headers=auth_headers)

    response = await client.post(_url(test_event.id), headers=auth_headers)

    assert response.status_code == 429
    error = response.json()["error"]
    assert error["code"] == "rate_limited"
    assert error["details"]["max_requests"] == 5
    assert "Rate limit exceeded for Event registration attempts" in error["message"]
    assert 0 < int(response.headers["Retry-After"]) <= 60


@pytest.mark.asyncio
async def test_withdraw_promotes_next_in_line(client: AsyncClient, headers_for, make_event):
    event = await make_event(capacity=1)
    await client.post(_url(event.id), headers=headers_for(10))
    await client.post(_url(event.id), headers=headers_for(11))

    response = await client.delete(_url(event.id, "/me"), headers=headers_for(10))

    assert response.status_code == 200
    assert response.json() == {"success": True, "promoted_participant_id": 11}

    status = await client.get(_url(event.id, "/status"), headers=headers_for(11))
    assert status.json()["user_status"]["status"] == "registered"


@pytest.mark.asyncio
async def test_withdraw_when_not_registered(client: AsyncClient, auth_headers, test_event):
    response = await client.delete(_url(test_event.id, "/me"), headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_registered"


@pytest.mark.asyncio
async def test_organizer_drops_participant(client: AsyncClient, auth_headers, organizer_headers, test_event):
    await client.post(_url(test_event.id), headers=auth_headers)

    response = await client.delete(_url(test_event.id, "/42"), headers=organizer_headers)
    assert response.status_code == 200

    again = await client.post(_url(test_event.id), headers=auth_headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "dropped"


@pytest.mark.asyncio
async def test_staff_with_manage_grant_can_drop(client: AsyncClient, auth_headers, staff_headers, test_event):
    await client.post(_url(test_event.id), headers=auth_headers)

    response = await client.delete(_url(test_event.id, "/42"), headers=staff_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_participant_cannot_drop_others(client: AsyncClient, auth_headers, headers_for, test_event):
    await client.post(_url(test_event.id), headers=headers_for(10))

    response = await client.delete(_url(test_event.id, "/10"), headers=auth_headers)

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "permission_denied"


@pytest.mark.asyncio
async def test_status_anonymous(client: AsyncClient, auth_headers, test_event):
    await client.post(_url(test_event.id), headers=auth_headers)

    response = await client.get(_url(test_event.id, "/status"))

    assert response.status_code == 200
    data = response.json()
    assert data["event"]["id"] == test_event.id
    assert data["registration_stats"] == {"registered": 1, "checked_in": 0, "waitlist": 0, "total": 1}
    assert data["user_status"] is None
    assert data["is_registration_open"] is True
    assert data["is_full"] is False


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient, auth_headers, test_event):
    await client.post(_url(test_event.id), headers=auth_headers)

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "registration_attempts_total" in response.text
    assert "rate_limit_decisions_total" in response.text
