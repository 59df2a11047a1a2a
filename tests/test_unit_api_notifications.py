"""
Integration tests for the notification inbox, audit log and currency config.

Tests cover:
- GET /notifications, /notifications/unread-count, /notifications/stats
- POST /notifications/{id}/read, /notifications/read-all, DELETE /notifications/{id}
- GET/PUT /notifications/preferences
- GET /audit-log (admin only, keyset pagination)
- GET /currency/config
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.domain.enums import NotificationCategory
from ticketing.repos.notification_repo import create_notification
from tests.conftest import acreate_paid_order_in_db


async def _seed_inbox(session: AsyncSession, user) -> None:
    await create_notification(
        session,
        user_id=user.id,
        type="order.paid",
        category=NotificationCategory.TRANSACTIONAL,
        title="Order confirmed",
        message="Your order is confirmed.",
    )
    await create_notification(
        session,
        user_id=user.id,
        type="promo",
        category=NotificationCategory.MARKETING,
        title="Weekend deals",
        message="Half price comedy tickets.",
    )
    await session.commit()


class TestInbox:
    """Tests for reading and managing notifications."""

    @pytest.mark.anyio
    async def test_should_list_and_filter_inbox(
        self, client: httpx.AsyncClient, async_db_session: AsyncSession, act_as, buyer
    ):
        await _seed_inbox(async_db_session, buyer)
        act_as(buyer)

        everything = await client.get("/api/v1/notifications")
        marketing = await client.get("/api/v1/notifications", params={"category": "marketing"})
        search = await client.get("/api/v1/notifications", params={"search": "COMEDY"})

        assert everything.json()["total"] == 2
        assert [n["type"] for n in marketing.json()["items"]] == ["promo"]
        assert [n["title"] for n in search.json()["items"]] == ["Weekend deals"]

    @pytest.mark.anyio
    async def test_should_search_percent_sign_literally(
        self, client: httpx.AsyncClient, async_db_session: AsyncSession, act_as, buyer
    ):
        await _seed_inbox(async_db_session, buyer)
        await create_notification(
            async_db_session,
            user_id=buyer.id,
            type="promo",
            category=NotificationCategory.MARKETING,
            title="Flash sale",
            message="20% off tonight only.",
        )
        await async_db_session.commit()
        act_as(buyer)

        response = await client.get("/api/v1/notifications", params={"search": "%"})

        assert [n["title"] for n in response.json()["items"]] == ["Flash sale"]

    @pytest.mark.anyio
    async def test_should_track_read_state(
        self, client: httpx.AsyncClient, async_db_session: AsyncSession, act_as, buyer
    ):
        await _seed_inbox(async_db_session, buyer)
        act_as(buyer)
        first = (await client.get("/api/v1/notifications")).json()["items"][0]

        read = await client.post(f"/api/v1/notifications/{first['id']}/read")
        count = await client.get("/api/v1/notifications/unread-count")
        unread = await client.get("/api/v1/notifications", params={"unread_only": "true"})

        assert read.json()["read_at"] is not None
        assert count.json() == {"count": 1}
        assert unread.json()["total"] == 1

    @pytest.mark.anyio
    async def test_should_mark_all_read(
        self, client: httpx.AsyncClient, async_db_session: AsyncSession, act_as, buyer
    ):
        await _seed_inbox(async_db_session, buyer)
        act_as(buyer)

        response = await client.post("/api/v1/notifications/read-all")
        again = await client.post("/api/v1/notifications/read-all")

        assert response.json() == {"updated": 2}
        assert again.json() == {"updated": 0}

    @pytest.mark.anyio
    async def test_should_report_category_stats(
        self, client: httpx.AsyncClient, async_db_session: AsyncSession, act_as, buyer
    ):
        await _seed_inbox(async_db_session, buyer)
        act_as(buyer)

        response = await client.get("/api/v1/notifications/stats")

        data = response.json()
        assert data["total"] == 2
        assert data["unread"] == 2
        assert data["by_category"]["marketing"] == 1
        assert data["by_category"]["system"] == 0

    @pytest.mark.anyio
    async def test_should_not_touch_other_users_notifications(
        self, client: httpx.AsyncClient, async_db_session: AsyncSession, act_as, buyer, organizer
    ):
        await _seed_inbox(async_db_session, buyer)
        act_as(buyer)
        first = (await client.get("/api/v1/notifications")).json()["items"][0]

        act_as(organizer)
        read = await client.post(f"/api/v1/notifications/{first['id']}/read")
        delete = await client.delete(f"/api/v1/notifications/{first['id']}")

        assert read.status_code == 404
        assert delete.status_code == 404

    @pytest.mark.anyio
    async def test_should_delete_notification(
        self, client: httpx.AsyncClient, async_db_session: AsyncSession, act_as, buyer
    ):
        await _seed_inbox(async_db_session, buyer)
        act_as(buyer)
        first = (await client.get("/api/v1/notifications")).json()["items"][0]

        response = await client.delete(f"/api/v1/notifications/{first['id']}")

        assert response.status_code == 204
        assert (await client.get("/api/v1/notifications")).json()["total"] == 1


class TestPreferences:
    """Tests for notification preferences."""

    @pytest.mark.anyio
    async def test_should_return_defaults_for_every_category(
        self, client: httpx.AsyncClient, act_as, buyer
    ):
        act_as(buyer)

        response = await client.get("/api/v1/notifications/preferences")

        by_category = {p["category"]: p for p in response.json()}
        assert set(by_category) == {"transactional", "event", "marketing", "system"}
        assert by_category["marketing"]["email"] is False
        assert by_category["transactional"]["email"] is True
        assert by_category["system"]["sms"] is False

    @pytest.mark.anyio
    async def test_should_update_only_given_channels(
        self, client: httpx.AsyncClient, act_as, buyer
    ):
        act_as(buyer)

        response = await client.put(
            "/api/v1/notifications/preferences",
            json={"preferences": [{"category": "marketing", "sms": True}]},
        )

        marketing = next(p for p in response.json() if p["category"] == "marketing")
        assert marketing == {
            "category": "marketing",
            "in_app": True,
            "email": False,
            "push": True,
            "sms": True,
        }

    @pytest.mark.anyio
    async def test_should_skip_in_app_when_disabled(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        buyer,
        live_event,
        ga_ticket_type,
    ):
        act_as(buyer)
        await client.put(
            "/api/v1/notifications/preferences",
            json={"preferences": [{"category": "transactional", "in_app": False}]},
        )

        await acreate_paid_order_in_db(async_db_session, buyer, live_event, ga_ticket_type)
        response = await client.get("/api/v1/notifications")

        assert response.json()["total"] == 0


class TestAuditLog:
    """Tests for GET /api/v1/audit-log."""

    @pytest.mark.anyio
    async def test_should_require_audit_permission(
        self, client: httpx.AsyncClient, act_as, organizer
    ):
        act_as(organizer)

        response = await client.get("/api/v1/audit-log")

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_should_filter_by_entity(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        admin,
        buyer,
        live_event,
        ga_ticket_type,
    ):
        order = await acreate_paid_order_in_db(async_db_session, buyer, live_event, ga_ticket_type)
        act_as(admin)

        response = await client.get(
            "/api/v1/audit-log", params={"entity_type": "order", "entity_id": str(order.id)}
        )

        data = response.json()
        assert response.status_code == 200
        assert [e["action"] for e in data["items"]] == ["PAY", "CREATE"]
        assert {e["performed_by"] for e in data["items"]} == {str(buyer.id)}

    @pytest.mark.anyio
    async def test_should_page_with_cursors(
        self,
        client: httpx.AsyncClient,
        async_db_session: AsyncSession,
        act_as,
        admin,
        buyer,
        live_event,
        ga_ticket_type,
    ):
        order = await acreate_paid_order_in_db(async_db_session, buyer, live_event, ga_ticket_type)
        act_as(admin)
        params = {"entity_type": "ORDER", "entity_id": str(order.id), "limit": 1}

        first = (await client.get("/api/v1/audit-log", params=params)).json()
        second = (
            await client.get("/api/v1/audit-log", params={**params, "cursor": first["next_cursor"]})
        ).json()

        assert first["has_next"] is True
        assert first["has_prev"] is False
        assert first["items"][0]["action"] == "PAY"
        assert second["items"][0]["action"] == "CREATE"
        assert second["has_next"] is False
        assert second["has_prev"] is True

    @pytest.mark.anyio
    async def test_should_reject_malformed_cursor(self, client: httpx.AsyncClient, act_as, admin):
        act_as(admin)

        response = await client.get("/api/v1/audit-log", params={"cursor": "%%%"})

        assert response.status_code == 400


class TestCurrencyConfig:
    """Tests for GET /api/v1/currency/config."""

    @pytest.mark.anyio
    async def test_should_be_public(self, client: httpx.AsyncClient):
        response = await client.get("/api/v1/currency/config")

        assert response.status_code == 200
        data = response.json()
        assert data["default_currency"] == "NGN"
        assert data["currency_symbol"] == "₦"
        assert "USD" in data["supported_currencies"]
        assert data["names"]["EUR"]
