"""
Integration tests for ticket types, seats and holds.

Tests cover:
- POST/GET /events/{event_id}/ticket-types with sold/available counts
- PATCH /ticket-types/{ticket_type_id}
- POST/GET /events/{event_id}/seats with seat state
- POST/GET /events/{event_id}/holds, DELETE /holds/{hold_id}
"""

from datetime import timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.validators import utcnow
from tests.conftest import acreate_paid_order_in_db


class TestTicketTypes:
    """Tests for the ticket type endpoints."""

    @pytest.mark.anyio
    async def test_should_create_ticket_type_in_event_currency(
        self, client: httpx.AsyncClient, act_as, organizer, live_event
    ):
        act_as(organizer)

        response = await client.post(
            f"/api/v1/events/{live_event.id}/ticket-types",
            json={"name": "Early Bird", "price_cents": 2500, "capacity": 50, "per_order_limit": 4},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["currency"] == live_event.currency
        assert data["status"] == "active"
        assert data["kind"] == "GA"

    @pytest.mark.anyio
    async def test_should_reject_negative_price(
        self, client: httpx.AsyncClient, act_as, organizer, live_event
    ):
        act_as(organizer)

        response = await client.post(
            f"/api/v1/events/{live_event.id}/ticket-types",
            json={"name": "Broken", "price_cents": -1},
        )

        assert response.status_code == 422

    @pytest.mark.anyio
    async def test_should_reject_inverted_sales_window(
        self, client: httpx.AsyncClient, act_as, organizer, live_event
    ):
        act_as(organizer)
        start = utcnow() + timedelta(days=1)

        response = await client.post(
            f"/api/v1/events/{live_event.id}/ticket-types",
            json={
                "name": "Window",
                "sales_start": start.isoformat(),
                "sales_end": (start - timedelta(hours=1)).isoformat(),
            },
        )

        assert response.status_code == 400

    @pytest.mark.anyio
    async def test_should_forbid_non_managers(
        self, client: httpx.AsyncClient, act_as, buyer, live_event
    ):
        act_as(buyer)

        response = await client.post(
            f"/api/v1/events/{live_event.id}/ticket-types", json={"name": "Sneaky"}
        )

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_should_report_sold_and_available(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        buyer,
        live_event,
        ga_ticket_type,
    ):
        await acreate_paid_order_in_db(async_db_session, buyer, live_event, ga_ticket_type, 3)
        act_as(buyer)

        response = await client.get(f"/api/v1/events/{live_event.id}/ticket-types")

        assert response.status_code == 200
        [row] = response.json()
        assert row["sold"] == 3
        assert row["available"] == ga_ticket_type.capacity - 3

    @pytest.mark.anyio
    async def test_should_update_ticket_type(
        self, client: httpx.AsyncClient, act_as, organizer, ga_ticket_type
    ):
        act_as(organizer)

        response = await client.patch(
            f"/api/v1/ticket-types/{ga_ticket_type.id}",
            json={"status": "paused", "price_cents": 6000},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "paused"
        assert response.json()["price_cents"] == 6000


class TestSeats:
    """Tests for the seat endpoints."""

    @pytest.mark.anyio
    async def test_should_add_seats_and_report_state(
        self, client: httpx.AsyncClient, act_as, organizer, live_event
    ):
        act_as(organizer)

        response = await client.post(
            f"/api/v1/events/{live_event.id}/seats",
            json={
                "seats": [
                    {"section": "A", "row": "1", "number": "1"},
                    {"section": "A", "row": "1", "number": "2"},
                ]
            },
        )

        assert response.status_code == 201
        labels = [s["label"] for s in response.json()]
        assert labels == ["A-1-1", "A-1-2"]
        assert {s["state"] for s in response.json()} == {"available"}

    @pytest.mark.anyio
    async def test_should_reject_duplicate_seat(
        self, client: httpx.AsyncClient, act_as, organizer, live_event
    ):
        act_as(organizer)
        seat = {"section": "A", "row": "1", "number": "1"}

        response = await client.post(
            f"/api/v1/events/{live_event.id}/seats", json={"seats": [seat, seat]}
        )

        assert response.status_code == 409

    @pytest.mark.anyio
    async def test_should_show_held_seat(
        self, client: httpx.AsyncClient, act_as, organizer, buyer, live_event
    ):
        act_as(organizer)
        created = await client.post(
            f"/api/v1/events/{live_event.id}/seats",
            json={"seats": [{"section": "B", "row": "2", "number": "7"}]},
        )
        seat_id = created.json()[0]["id"]
        await client.post(f"/api/v1/events/{live_event.id}/holds", json={"seat_id": seat_id})

        act_as(buyer)
        response = await client.get(f"/api/v1/events/{live_event.id}/seats")

        assert response.json()[0]["state"] == "held"


class TestHolds:
    """Tests for the hold endpoints."""

    @pytest.mark.anyio
    async def test_should_hold_quantity_and_reduce_availability(
        self, client: httpx.AsyncClient, act_as, organizer, live_event, ga_ticket_type
    ):
        act_as(organizer)

        hold = await client.post(
            f"/api/v1/events/{live_event.id}/holds",
            json={"ticket_type_id": str(ga_ticket_type.id), "quantity": 10, "reason": "comp"},
        )
        listing = await client.get(f"/api/v1/events/{live_event.id}/ticket-types")

        assert hold.status_code == 201
        assert hold.json()["reason"] == "comp"
        assert listing.json()[0]["available"] == ga_ticket_type.capacity - 10

    @pytest.mark.anyio
    async def test_should_require_ticket_type_or_seat(
        self, client: httpx.AsyncClient, act_as, organizer, live_event
    ):
        act_as(organizer)

        response = await client.post(f"/api/v1/events/{live_event.id}/holds", json={"quantity": 2})

        assert response.status_code == 400

    @pytest.mark.anyio
    async def test_should_not_hold_a_held_seat_twice(
        self, client: httpx.AsyncClient, act_as, organizer, live_event
    ):
        act_as(organizer)
        created = await client.post(
            f"/api/v1/events/{live_event.id}/seats",
            json={"seats": [{"section": "C", "row": "1", "number": "1"}]},
        )
        seat_id = created.json()[0]["id"]
        await client.post(f"/api/v1/events/{live_event.id}/holds", json={"seat_id": seat_id})

        response = await client.post(
            f"/api/v1/events/{live_event.id}/holds", json={"seat_id": seat_id}
        )

        assert response.status_code == 409

    @pytest.mark.anyio
    async def test_should_release_hold_and_drop_it_from_active_list(
        self, client: httpx.AsyncClient, act_as, organizer, live_event, ga_ticket_type
    ):
        act_as(organizer)
        hold = await client.post(
            f"/api/v1/events/{live_event.id}/holds",
            json={"ticket_type_id": str(ga_ticket_type.id), "quantity": 5},
        )

        released = await client.delete(f"/api/v1/holds/{hold.json()['id']}")
        active = await client.get(f"/api/v1/events/{live_event.id}/holds")
        everything = await client.get(
            f"/api/v1/events/{live_event.id}/holds", params={"active_only": "false"}
        )

        assert released.status_code == 200
        assert released.json()["released_at"] is not None
        assert active.json() == []
        assert len(everything.json()) == 1

    @pytest.mark.anyio
    async def test_should_ignore_expired_holds(
        self, client: httpx.AsyncClient, act_as, organizer, live_event, ga_ticket_type
    ):
        act_as(organizer)
        await client.post(
            f"/api/v1/events/{live_event.id}/holds",
            json={
                "ticket_type_id": str(ga_ticket_type.id),
                "quantity": 5,
                "expires_at": (utcnow() - timedelta(minutes=1)).isoformat(),
            },
        )

        listing = await client.get(f"/api/v1/events/{live_event.id}/ticket-types")

        assert listing.json()[0]["available"] == ga_ticket_type.capacity
