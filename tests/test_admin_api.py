import pytest

from conftest import at, client_contact
from slotwise.core.security import create_access_token
from slotwise.services.booking_service import create_booking


def auth(business) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(business.id)}"}


async def seed_bookings(session, seed):
    morning = await create_booking(
        session, "downtown", seed.haircut.id, seed.alex.id, at("09:00"), client_contact()
    )
    afternoon = await create_booking(
        session, "downtown", seed.consult.id, seed.blair.id, at("14:00"), client_contact(name="Robin")
    )
    return morning, afternoon


@pytest.mark.asyncio
async def test_requires_bearer_token(client):
    resp = await client.get("/booking/admin/my-appointments")
    assert resp.status_code == 401
    assert resp.json()["success"] is False

    resp = await client.get("/booking/admin/my-appointments", headers={"Authorization": "Bearer nonsense"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_lists_own_appointments_in_range(client, session, seed):
    morning, afternoon = await seed_bookings(session, seed)

    resp = await client.get("/booking/admin/my-appointments", headers=auth(seed.business))
    assert resp.status_code == 200
    assert [a["id"] for a in resp.json()["data"]] == [morning.id, afternoon.id]

    resp = await client.get(
        "/booking/admin/my-appointments",
        params={"start": "2030-01-07T18:00:00Z"},
        headers=auth(seed.business),
    )
    assert [a["id"] for a in resp.json()["data"]] == [afternoon.id]

    resp = await client.get("/booking/admin/my-appointments", headers=auth(seed.other))
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_cancel_and_complete(client, session, seed):
    morning, afternoon = await seed_bookings(session, seed)
    headers = auth(seed.business)

    resp = await client.post(f"/booking/admin/appointments/{morning.id}/cancel", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "Cancelled"

    again = await client.post(f"/booking/admin/appointments/{morning.id}/complete", headers=headers)
    assert again.status_code == 409

    resp = await client.post(f"/booking/admin/appointments/{afternoon.id}/complete", headers=headers)
    assert resp.json()["data"]["status"] == "Completed"

    # The cancelled slot is bookable again
    rebook = await create_booking(
        session, "downtown", seed.haircut.id, seed.alex.id, at("09:00"), client_contact()
    )
    assert rebook.id != morning.id


@pytest.mark.asyncio
async def test_cannot_touch_other_business_appointments(client, session, seed):
    morning, _ = await seed_bookings(session, seed)
    resp = await client.post(f"/booking/admin/appointments/{morning.id}/cancel", headers=auth(seed.other))
    assert resp.status_code == 404

    resp = await client.post("/booking/admin/appointments/99999/cancel", headers=auth(seed.business))
    assert resp.status_code == 404
