"""
Integration tests for buyer disputes.

Tests cover:
- POST /disputes (window, paid orders only, one active dispute)
- GET /disputes, /orgs/{org_id}/disputes, /disputes/{dispute_id}
- POST /disputes/{dispute_id}/messages
- POST /disputes/{dispute_id}/resolve (admin), /appeal, /close
"""

from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.models import Ticket
from ticketing.db.validators import utcnow
from ticketing.domain.enums import TicketStatus
from tests.conftest import (
    acreate_live_event_in_db,
    acreate_paid_order_in_db,
    acreate_ticket_type_in_db,
)


@pytest.fixture
async def paid_order(async_db_session: AsyncSession, buyer, live_event, ga_ticket_type):
    return await acreate_paid_order_in_db(async_db_session, buyer, live_event, ga_ticket_type, 2)


async def _open(client: httpx.AsyncClient, order, reason: str = "event_changed") -> httpx.Response:
    return await client.post(
        "/api/v1/disputes",
        json={
            "order_id": str(order.id),
            "reason": reason,
            "description": "The headliner was replaced.",
        },
    )


class TestOpenDispute:
    """Tests for POST /api/v1/disputes."""

    @pytest.mark.anyio
    async def test_should_open_dispute_and_notify_organizer(
        self, client: httpx.AsyncClient, act_as, buyer, organizer, paid_order
    ):
        act_as(buyer)

        response = await _open(client, paid_order)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "open"
        assert data["messages"][0]["sender_role"] == "buyer"
        assert data["messages"][0]["body"] == "The headliner was replaced."

        act_as(organizer)
        inbox = await client.get("/api/v1/notifications", params={"search": "dispute"})
        assert [n["type"] for n in inbox.json()["items"]] == ["dispute.opened"]

    @pytest.mark.anyio
    async def test_should_allow_one_active_dispute_per_order(
        self, client: httpx.AsyncClient, act_as, buyer, paid_order
    ):
        act_as(buyer)
        await _open(client, paid_order)

        response = await _open(client, paid_order, "other")

        assert response.status_code == 409

    @pytest.mark.anyio
    async def test_should_reject_unpaid_order(
        self, client: httpx.AsyncClient, act_as, buyer, live_event, ga_ticket_type
    ):
        act_as(buyer)
        order = await client.post(
            "/api/v1/orders",
            json={
                "event_id": str(live_event.id),
                "items": [{"ticket_type_id": str(ga_ticket_type.id)}],
            },
        )

        response = await client.post(
            "/api/v1/disputes",
            json={"order_id": order.json()["id"], "reason": "x", "description": "y"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Only paid orders can be disputed"

    @pytest.mark.anyio
    async def test_should_close_window_thirty_days_after_event(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        buyer,
        organizer,
        org,
    ):
        past_event = await acreate_live_event_in_db(
            async_db_session, org, organizer, title="Old Show", start_at=utcnow() - timedelta(days=40)
        )
        ticket_type = await acreate_ticket_type_in_db(async_db_session, past_event, organizer)
        order = await acreate_paid_order_in_db(async_db_session, buyer, past_event, ticket_type)
        act_as(buyer)

        response = await _open(client, order)

        assert response.status_code == 400
        assert response.json()["message"] == "Dispute window has closed"

    @pytest.mark.anyio
    async def test_should_hide_other_buyers_orders(
        self, client: httpx.AsyncClient, act_as, organizer, paid_order
    ):
        act_as(organizer)

        response = await _open(client, paid_order)

        assert response.status_code == 404


class TestDisputeConversation:
    """Tests for messages and visibility."""

    @pytest.mark.anyio
    async def test_should_mark_responded_on_organizer_reply(
        self, client: httpx.AsyncClient, act_as, buyer, organizer, paid_order
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()

        act_as(organizer)
        response = await client.post(
            f"/api/v1/disputes/{dispute['id']}/messages", json={"body": "We are sorry."}
        )

        assert response.status_code == 201
        assert response.json()["status"] == "responded"
        assert {m["sender_role"] for m in response.json()["messages"]} == {"buyer", "organizer"}

        act_as(buyer)
        unread = await client.get("/api/v1/notifications/unread-count")
        assert unread.json()["count"] >= 1

    @pytest.mark.anyio
    async def test_should_list_org_disputes_for_managers(
        self, client: httpx.AsyncClient, act_as, buyer, organizer, org, paid_order
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()
        mine = await client.get("/api/v1/disputes")
        outsider = await client.get(f"/api/v1/orgs/{org.id}/disputes")

        act_as(organizer)
        org_list = await client.get(f"/api/v1/orgs/{org.id}/disputes", params={"status": "open"})

        assert [d["id"] for d in mine.json()["items"]] == [dispute["id"]]
        assert outsider.status_code == 403
        assert [d["id"] for d in org_list.json()["items"]] == [dispute["id"]]


class TestResolution:
    """Tests for resolve, appeal and close."""

    @pytest.mark.anyio
    async def test_should_refund_in_full_and_void_tickets(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        buyer,
        admin,
        paid_order,
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()

        act_as(admin)
        response = await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve",
            json={"resolution": "full_refund", "note": "Refund approved"},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["status"] == "resolved"
        assert data["refund_amount_cents"] == paid_order.total_cents
        assert data["messages"][-1]["sender_role"] == "platform"
        statuses = (
            await async_db_session.execute(
                select(Ticket.status).where(Ticket.order_id == paid_order.id)
            )
        ).scalars().all()
        assert set(statuses) == {TicketStatus.VOID}

        act_as(buyer)
        order = await client.get(f"/api/v1/orders/{paid_order.id}")
        assert order.json()["status"] == "refunded"

    @pytest.mark.anyio
    async def test_should_cap_partial_refund(
        self, client: httpx.AsyncClient, act_as, buyer, admin, paid_order
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()
        act_as(admin)

        too_much = await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve",
            json={"resolution": "partial_refund", "amount_cents": paid_order.total_cents + 1},
        )
        partial = await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve",
            json={"resolution": "partial_refund", "amount_cents": 2500},
        )

        assert too_much.status_code == 400
        assert too_much.json()["details"]["refundable_cents"] == paid_order.total_cents
        assert partial.json()["refund_amount_cents"] == 2500

    @pytest.mark.anyio
    async def test_should_refund_order_when_partial_amount_covers_remainder(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        buyer,
        admin,
        paid_order,
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()
        act_as(admin)

        response = await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve",
            json={"resolution": "partial_refund", "amount_cents": paid_order.total_cents},
        )

        assert response.status_code == 200
        assert response.json()["refund_amount_cents"] == paid_order.total_cents
        statuses = (
            await async_db_session.execute(
                select(Ticket.status).where(Ticket.order_id == paid_order.id)
            )
        ).scalars().all()
        assert set(statuses) == {TicketStatus.VOID}
        act_as(buyer)
        order = await client.get(f"/api/v1/orders/{paid_order.id}")
        assert order.json()["status"] == "refunded"

    @pytest.mark.anyio
    async def test_should_keep_order_paid_after_smaller_partial_refund(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        buyer,
        admin,
        paid_order,
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()
        act_as(admin)

        await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve",
            json={"resolution": "partial_refund", "amount_cents": paid_order.total_cents - 1},
        )

        statuses = (
            await async_db_session.execute(
                select(Ticket.status).where(Ticket.order_id == paid_order.id)
            )
        ).scalars().all()
        assert set(statuses) == {TicketStatus.ISSUED}
        act_as(buyer)
        order = await client.get(f"/api/v1/orders/{paid_order.id}")
        assert order.json()["status"] == "paid"

    @pytest.mark.anyio
    async def test_should_require_resolve_permission(
        self, client: httpx.AsyncClient, act_as, buyer, organizer, paid_order
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()
        act_as(organizer)

        response = await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve", json={"resolution": "no_refund"}
        )

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_should_allow_one_appeal_after_no_refund(
        self, client: httpx.AsyncClient, act_as, buyer, admin, paid_order
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()
        act_as(admin)
        await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve", json={"resolution": "no_refund"}
        )

        act_as(buyer)
        appeal = await client.post(
            f"/api/v1/disputes/{dispute['id']}/appeal", json={"reason": "Please reconsider"}
        )
        again = await client.post(
            f"/api/v1/disputes/{dispute['id']}/appeal", json={"reason": "Again"}
        )

        assert appeal.json()["status"] == "appealed"
        assert appeal.json()["appeal_reason"] == "Please reconsider"
        assert again.status_code == 409

    @pytest.mark.anyio
    async def test_should_not_appeal_refunded_dispute(
        self, client: httpx.AsyncClient, act_as, buyer, admin, paid_order
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()
        act_as(admin)
        await client.post(
            f"/api/v1/disputes/{dispute['id']}/resolve",
            json={"resolution": "partial_refund", "amount_cents": 100},
        )
        act_as(buyer)

        response = await client.post(
            f"/api/v1/disputes/{dispute['id']}/appeal", json={"reason": "More please"}
        )

        assert response.status_code == 409

    @pytest.mark.anyio
    async def test_should_let_buyer_close_and_reopen(
        self, client: httpx.AsyncClient, act_as, buyer, organizer, paid_order
    ):
        act_as(buyer)
        dispute = (await _open(client, paid_order)).json()

        act_as(organizer)
        by_organizer = await client.post(f"/api/v1/disputes/{dispute['id']}/close")
        act_as(buyer)
        closed = await client.post(f"/api/v1/disputes/{dispute['id']}/close")
        message = await client.post(
            f"/api/v1/disputes/{dispute['id']}/messages", json={"body": "One more thing"}
        )
        reopened = await _open(client, paid_order)

        assert by_organizer.status_code == 403
        assert closed.json()["status"] == "closed"
        assert message.status_code == 409
        assert reopened.status_code == 201
