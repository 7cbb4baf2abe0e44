"""
Tests for check-in endpoints.

Events start shortly after "now" so the real clock falls inside the
check-in window.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from event_admission.core import clock


def _url(event_id: int, suffix: str = "") -> str:
    return f"/api/v1/events/{event_id}/check-in{suffix}"


async def _register(client: AsyncClient, event_id: int, headers: dict) -> None:
    response = await client.post(f"/api/v1/events/{event_id}/registrations", headers=headers)
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_check_in_and_undo(client: AsyncClient, auth_headers, make_event):
    event = await make_event(start_time=clock.utcnow() + timedelta(minutes=30))
    await _register(client, event.id, auth_headers)

    response = await client.post(_url(event.id), headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "checked_in"
    assert response.json()["checked_in_at"] is not None

    undo = await client.delete(_url(event.id), headers=auth_headers)
    assert undo.status_code == 200
    assert undo.json() == {"success": True, "status": "registered", "checked_in_at": None}


@pytest.mark.asyncio
async def test_check_in_before_window(client: AsyncClient, auth_headers, make_event):
    event = await make_event(start_time=clock.utcnow() + timedelta(hours=3))
    await _register(client, event.id, auth_headers)

    response = await client.post(_url(event.id), headers=auth_headers)

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "window_not_open"
    assert "opens_at" in error["details"]


@pytest.mark.asyncio
async def test_check_in_from_waitlist(client: AsyncClient, headers_for, make_event):
    event = await make_event(capacity=1, start_time=clock.utcnow() + timedelta(minutes=30))
    await _register(client, event.id, headers_for(10))
    await _register(client, event.id, headers_for(11))

    response = await client.post(_url(event.id), headers=headers_for(11))

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "on_waitlist"


@pytest.mark.asyncio
async def test_check_in_is_rate_limited(client: AsyncClient, auth_headers, make_event):
    event = await make_event(start_time=clock.utcnow() + timedelta(hours=3))
    await _register(client, event.id, auth_headers)

    for _ in range(10):
        await client.post(_url(event.id), headers=auth_headers)
    response = await client.post(_url(event.id), headers=auth_headers)

    assert response.status_code == 429
    assert "Event check-in attempts" in response.json()["error"]["message"]


@pytest.mark.asyncio
async def test_check_in_status(client: AsyncClient, auth_headers, make_event):
    event = await make_event(start_time=clock.utcnow() + timedelta(minutes=30))
    await _register(client, event.id, auth_headers)

    response = await client.get(_url(event.id, "/status"), headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["is_registered"] is True
    assert data["is_checked_in"] is False
    assert data["check_in_open"] is True
    assert data["registration_status"] == "registered"


@pytest.mark.asyncio
async def test_check_in_stats_for_organizer(client: AsyncClient, auth_headers, organizer_headers, make_event):
    event = await make_event(start_time=clock.utcnow() + timedelta(minutes=30))
    await _register(client, event.id, auth_headers)
    await client.post(_url(event.id), headers=auth_headers)

    response = await client.get(_url(event.id, "/stats"), headers=organizer_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["checked_in"] == 1
    assert data["checked_in_percentage"] == 100
    assert data["checked_in_list"][0]["participant_id"] == 42


@pytest.mark.asyncio
async def test_check_in_stats_forbidden_for_participants(client: AsyncClient, auth_headers, test_event):
    response = await client.get(_url(test_event.id, "/stats"), headers=auth_headers)
    assert response.status_code == 403
