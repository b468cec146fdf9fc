"""
Tests for RSVP and catalog endpoints including concurrency scenarios.
"""

import asyncio

import pytest
from httpx import AsyncClient

from conftest import identity_headers


@pytest.mark.asyncio
async def test_register(client: AsyncClient, upcoming_room, auth_headers):
    """Successful RSVP takes one seat."""
    response = await client.post(f"/api/v1/rooms/{upcoming_room.id}/rsvp", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "registered"
    assert data["message"] == f"Registered for {upcoming_room.id}. It now appears in Your Shows."

    room = (await client.get(f"/api/v1/rooms/{upcoming_room.id}")).json()
    assert room["rsvp_config"]["booked_count"] == 1


@pytest.mark.asyncio
async def test_register_unauthenticated(client: AsyncClient, upcoming_room):
    response = await client.post(f"/api/v1/rooms/{upcoming_room.id}/rsvp")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_register_twice_returns_existing_status(client: AsyncClient, upcoming_room, auth_headers):
    url = f"/api/v1/rooms/{upcoming_room.id}/rsvp"
    await client.post(url, headers=auth_headers)
    response = await client.post(url, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "registered"
    room = (await client.get(f"/api/v1/rooms/{upcoming_room.id}")).json()
    assert room["rsvp_config"]["booked_count"] == 1


@pytest.mark.asyncio
async def test_register_full_room_waitlists(client: AsyncClient, small_room):
    statuses = []
    for n in range(3):
        response = await client.post(f"/api/v1/rooms/{small_room}/rsvp", headers=identity_headers(f"u{n}"))
        statuses.append(response.json()["status"])

    assert statuses == ["registered", "registered", "waitlisted"]
    assert response.json()["message"] == f"Added to waitlist for {small_room}."


@pytest.mark.asyncio
async def test_register_closed_rsvp_is_refused(client: AsyncClient, small_room, host_headers, auth_headers):
    await client.patch(f"/api/v1/rooms/{small_room}/rsvp-config", json={"open": False}, headers=host_headers)

    response = await client.post(f"/api/v1/rooms/{small_room}/rsvp", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "refused"
    assert response.json()["message"] == "RSVP is currently closed for this room."


@pytest.mark.asyncio
async def test_register_after_start_is_closed(client: AsyncClient, current_room, ended_room, auth_headers):
    response = await client.post(f"/api/v1/rooms/{current_room.id}/rsvp", headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["detail"] == "Registration closed for this room."

    response = await client.post(f"/api/v1/rooms/{ended_room.id}/rsvp", headers=auth_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_register_missing_room(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/rooms/nope/rsvp", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_concurrent_registrations_do_not_overbook(client: AsyncClient, small_room):
    """Many users racing for two seats: two registered, the rest waitlisted."""
    responses = await asyncio.gather(*(
        client.post(f"/api/v1/rooms/{small_room}/rsvp", headers=identity_headers(f"racer-{n}"))
        for n in range(12)
    ))

    statuses = [r.json()["status"] for r in responses]
    assert statuses.count("registered") == 2
    assert statuses.count("waitlisted") == 10

    room = (await client.get(f"/api/v1/rooms/{small_room}")).json()
    assert room["rsvp_config"]["booked_count"] == 2
    assert room["rsvp_config"]["waitlist_count"] == 10


@pytest.mark.asyncio
async def test_cancel_rsvp(client: AsyncClient, upcoming_room, auth_headers):
    url = f"/api/v1/rooms/{upcoming_room.id}/rsvp"
    await client.post(url, headers=auth_headers)

    response = await client.delete(url, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["released"] == "registered"
    room = (await client.get(f"/api/v1/rooms/{upcoming_room.id}")).json()
    assert room["rsvp_config"]["booked_count"] == 0

    # Nothing left to cancel
    assert (await client.delete(url, headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_catalog_buckets(client: AsyncClient, upcoming_room, current_room, ended_room, auth_headers):
    await client.post(f"/api/v1/rooms/{upcoming_room.id}/rsvp", headers=auth_headers)

    response = await client.get("/api/v1/catalog/", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert [room["id"] for room in data["yours"]] == [upcoming_room.id]
    assert data["upcoming"] == []
    assert [room["id"] for room in data["current"]] == [current_room.id]
