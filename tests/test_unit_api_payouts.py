"""
Integration tests for organizer balances and payouts.

Tests cover:
- GET /orgs/{org_id}/balance
- POST/GET /orgs/{org_id}/payouts, GET /orgs/{org_id}/payouts/stats
- PATCH /payouts/{payout_id} review transitions (admin only)
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import acreate_paid_order_in_db


@pytest.fixture
async def paid_order(async_db_session: AsyncSession, buyer, live_event, ga_ticket_type):
    """Two GA tickets: 10000 subtotal + 700 tax."""
    return await acreate_paid_order_in_db(async_db_session, buyer, live_event, ga_ticket_type, 2)


class TestBalance:
    """Tests for GET /api/v1/orgs/{org_id}/balance."""

    @pytest.mark.anyio
    async def test_should_exclude_tax_from_available(
        self, client: httpx.AsyncClient, act_as, organizer, org, paid_order
    ):
        act_as(organizer)

        response = await client.get(f"/api/v1/orgs/{org.id}/balance")

        assert response.status_code == 200
        data = response.json()
        assert data["currency"] == "USD"
        assert data["gross_cents"] == 10700
        assert data["tax_cents"] == 700
        assert data["available_cents"] == 10000
        assert data["can_create_payout"] is True

    @pytest.mark.anyio
    async def test_should_subtract_refunds(
        self, client: httpx.AsyncClient, act_as, buyer, organizer, org, paid_order
    ):
        act_as(buyer)
        await client.post(f"/api/v1/orders/{paid_order.id}/cancel")
        act_as(organizer)

        response = await client.get(f"/api/v1/orgs/{org.id}/balance")

        data = response.json()
        assert data["refunds_cents"] == 10700
        assert data["available_cents"] == -700
        assert data["can_create_payout"] is False

    @pytest.mark.anyio
    async def test_should_be_empty_for_other_currency(
        self, client: httpx.AsyncClient, act_as, organizer, org, paid_order
    ):
        act_as(organizer)

        response = await client.get(f"/api/v1/orgs/{org.id}/balance", params={"currency": "eur"})

        assert response.json()["currency"] == "EUR"
        assert response.json()["available_cents"] == 0

    @pytest.mark.anyio
    async def test_should_forbid_non_finance_members(
        self, client: httpx.AsyncClient, act_as, buyer, org
    ):
        act_as(buyer)

        response = await client.get(f"/api/v1/orgs/{org.id}/balance")

        assert response.status_code == 403


class TestPayoutRequests:
    """Tests for POST /api/v1/orgs/{org_id}/payouts."""

    @pytest.mark.anyio
    async def test_should_request_payout_and_reserve_balance(
        self, client: httpx.AsyncClient, act_as, organizer, org, paid_order
    ):
        act_as(organizer)

        response = await client.post(f"/api/v1/orgs/{org.id}/payouts", json={"amount_cents": 4000})
        balance = await client.get(f"/api/v1/orgs/{org.id}/balance")

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert response.json()["currency"] == "USD"
        assert balance.json()["available_cents"] == 6000
        assert balance.json()["has_pending_payout"] is True
        assert balance.json()["can_create_payout"] is False

    @pytest.mark.anyio
    async def test_should_allow_one_payout_in_flight(
        self, client: httpx.AsyncClient, act_as, organizer, org, paid_order
    ):
        act_as(organizer)
        await client.post(f"/api/v1/orgs/{org.id}/payouts", json={"amount_cents": 1000})

        response = await client.post(f"/api/v1/orgs/{org.id}/payouts", json={"amount_cents": 1000})

        assert response.status_code == 409

    @pytest.mark.anyio
    async def test_should_reject_amount_above_balance(
        self, client: httpx.AsyncClient, act_as, organizer, org, paid_order
    ):
        act_as(organizer)

        response = await client.post(f"/api/v1/orgs/{org.id}/payouts", json={"amount_cents": 10001})

        assert response.status_code == 400
        assert response.json()["details"]["available_cents"] == 10000

    @pytest.mark.anyio
    async def test_should_reject_non_positive_amount(
        self, client: httpx.AsyncClient, act_as, organizer, org, paid_order
    ):
        act_as(organizer)

        response = await client.post(f"/api/v1/orgs/{org.id}/payouts", json={"amount_cents": 0})

        assert response.status_code == 400
        assert response.json()["message"] == "Payout amount must be positive"


class TestPayoutReview:
    """Tests for PATCH /api/v1/payouts/{payout_id}."""

    async def _request(self, client, act_as, organizer, org, amount: int = 5000) -> str:
        act_as(organizer)
        response = await client.post(f"/api/v1/orgs/{org.id}/payouts", json={"amount_cents": amount})
        return response.json()["id"]

    @pytest.mark.anyio
    async def test_should_move_payout_to_paid(
        self, client: httpx.AsyncClient, act_as, organizer, admin, org, paid_order
    ):
        payout_id = await self._request(client, act_as, organizer, org)
        act_as(admin)

        in_review = await client.patch(f"/api/v1/payouts/{payout_id}", json={"status": "in_review"})
        paid = await client.patch(f"/api/v1/payouts/{payout_id}", json={"status": "paid"})

        assert in_review.json()["status"] == "in_review"
        assert in_review.json()["processed_at"] is None
        assert paid.json()["status"] == "paid"
        assert paid.json()["reviewed_by"] == str(admin.id)
        assert paid.json()["processed_at"] is not None

        act_as(organizer)
        stats = await client.get(f"/api/v1/orgs/{org.id}/payouts/stats")
        balance = await client.get(f"/api/v1/orgs/{org.id}/balance")
        assert stats.json()["total_paid_cents"] == 5000
        assert stats.json()["by_status"]["paid"] == 1
        assert balance.json()["paid_out_cents"] == 5000
        assert balance.json()["can_create_payout"] is True

    @pytest.mark.anyio
    async def test_should_release_balance_when_failed(
        self, client: httpx.AsyncClient, act_as, organizer, admin, org, paid_order
    ):
        payout_id = await self._request(client, act_as, organizer, org)
        act_as(admin)
        await client.patch(f"/api/v1/payouts/{payout_id}", json={"status": "in_review"})

        failed = await client.patch(
            f"/api/v1/payouts/{payout_id}",
            json={"status": "failed", "failure_reason": "Bank rejected"},
        )

        assert failed.json()["failure_reason"] == "Bank rejected"
        act_as(organizer)
        balance = await client.get(f"/api/v1/orgs/{org.id}/balance")
        assert balance.json()["available_cents"] == 10000

    @pytest.mark.anyio
    async def test_should_reject_skipping_review(
        self, client: httpx.AsyncClient, act_as, organizer, admin, org, paid_order
    ):
        payout_id = await self._request(client, act_as, organizer, org)
        act_as(admin)

        response = await client.patch(f"/api/v1/payouts/{payout_id}", json={"status": "paid"})

        assert response.status_code == 409
        assert response.json()["message"] == "Cannot change payout status from pending to paid"

    @pytest.mark.anyio
    async def test_should_require_review_permission(
        self, client: httpx.AsyncClient, act_as, organizer, org, paid_order
    ):
        payout_id = await self._request(client, act_as, organizer, org)

        response = await client.patch(f"/api/v1/payouts/{payout_id}", json={"status": "in_review"})

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_should_list_payout_history(
        self, client: httpx.AsyncClient, act_as, organizer, admin, org, paid_order
    ):
        payout_id = await self._request(client, act_as, organizer, org, amount=2000)
        act_as(admin)
        await client.patch(f"/api/v1/payouts/{payout_id}", json={"status": "canceled"})
        act_as(organizer)
        await client.post(f"/api/v1/orgs/{org.id}/payouts", json={"amount_cents": 3000})

        everything = await client.get(f"/api/v1/orgs/{org.id}/payouts")
        pending = await client.get(f"/api/v1/orgs/{org.id}/payouts", params={"status": "pending"})

        assert everything.json()["total"] == 2
        assert [p["amount_cents"] for p in pending.json()["items"]] == [3000]
