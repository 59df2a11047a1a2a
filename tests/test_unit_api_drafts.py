"""
Integration tests for the event creator wizard endpoints.

Tests cover:
- POST/GET /orgs/{org_id}/drafts
- PUT /drafts/{draft_id}/sections/{section} (server-side validation)
- POST /drafts/{draft_id}/duplicate
- POST /drafts/{draft_id}/publish (live, scheduled and idempotent)
"""

from datetime import timedelta

import httpx
import pytest

from ticketing.db.validators import utcnow


def _sections() -> dict[str, dict]:
    starts_at = utcnow() + timedelta(days=14)
    return {
        "basics": {"title": "Rooftop Sessions", "visibility": "public"},
        "story": {
            "description": "Live music above the city.",
            "transfer_enabled": True,
            "transfer_cutoff": "24h",
        },
        "tickets": {
            "currency": "usd",
            "ticket_types": [
                {"name": "Standard", "price_cents": 3000, "quantity": 200, "per_order_limit": 6},
                {"name": "VIP", "price_cents": 9000, "quantity": 20},
            ],
        },
        "schedule": {
            "occurrences": [
                {"starts_at": (starts_at + timedelta(days=7)).isoformat()},
                {
                    "starts_at": starts_at.isoformat(),
                    "ends_at": (starts_at + timedelta(hours=4)).isoformat(),
                },
            ]
        },
        "checkout": {"contact_email": "hello@example.com", "questions": [{"label": "Dietary needs"}]},
    }


async def _create_draft(client: httpx.AsyncClient, org) -> dict:
    response = await client.post(f"/api/v1/orgs/{org.id}/drafts", json={"title": "Untitled"})
    assert response.status_code == 201, response.text
    return response.json()


async def _complete_draft(client: httpx.AsyncClient, draft_id: str) -> dict:
    data = {}
    for section, payload in _sections().items():
        response = await client.put(
            f"/api/v1/drafts/{draft_id}/sections/{section}", json={"payload": payload}
        )
        data = response.json()
    return data


class TestDraftEditing:
    """Tests for creating and editing drafts."""

    @pytest.mark.anyio
    async def test_should_start_with_five_incomplete_sections(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)

        draft = await _create_draft(client, org)

        assert draft["status"] == "draft"
        assert draft["completion_percent"] == 0
        assert [s["section"] for s in draft["sections"]] == [
            "basics",
            "story",
            "tickets",
            "schedule",
            "checkout",
        ]
        assert {s["status"] for s in draft["sections"]} == {"incomplete"}

    @pytest.mark.anyio
    async def test_should_forbid_non_managers(self, client: httpx.AsyncClient, act_as, buyer, org):
        act_as(buyer)

        response = await client.post(f"/api/v1/orgs/{org.id}/drafts")

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_should_validate_section_server_side(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)

        response = await client.put(
            f"/api/v1/drafts/{draft['id']}/sections/basics", json={"payload": {"title": "ab"}}
        )

        basics = response.json()["sections"][0]
        assert response.status_code == 200
        assert basics["status"] == "invalid"
        assert basics["errors"][0]["field"] == "title"
        assert response.json()["completion_percent"] == 0

    @pytest.mark.anyio
    async def test_should_reject_negative_ticket_fee(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)
        tickets = _sections()["tickets"]
        tickets["ticket_types"][0]["fee_cents"] = -100

        response = await client.put(
            f"/api/v1/drafts/{draft['id']}/sections/tickets", json={"payload": tickets}
        )

        section = next(s for s in response.json()["sections"] if s["section"] == "tickets")
        assert response.status_code == 200
        assert section["status"] == "invalid"
        assert section["errors"] == [
            {"field": "ticket_types[0].fee_cents", "message": "Fee must be a non-negative integer"}
        ]

    @pytest.mark.anyio
    async def test_should_apply_basics_to_draft(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)

        response = await client.put(
            f"/api/v1/drafts/{draft['id']}/sections/basics",
            json={"payload": {"title": "Rooftop Sessions", "visibility": "unlisted"}},
        )

        data = response.json()
        assert data["title"] == "Rooftop Sessions"
        assert data["slug"] == "rooftop-sessions"
        assert data["visibility"] == "unlisted"
        assert data["completion_percent"] == 20
        assert data["active_section"] == "basics"

    @pytest.mark.anyio
    async def test_should_reject_unknown_section(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)

        response = await client.put(
            f"/api/v1/drafts/{draft['id']}/sections/merch", json={"payload": {}}
        )

        assert response.status_code == 400

    @pytest.mark.anyio
    async def test_should_become_ready_when_complete(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)

        data = await _complete_draft(client, draft["id"])

        assert data["status"] == "ready"
        assert data["completion_percent"] == 100

    @pytest.mark.anyio
    async def test_should_hide_draft_from_other_users(
        self, client: httpx.AsyncClient, act_as, organizer, buyer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)

        act_as(buyer)
        response = await client.get(f"/api/v1/drafts/{draft['id']}")

        assert response.status_code == 403

    @pytest.mark.anyio
    async def test_should_duplicate_with_sections_reset(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)
        await _complete_draft(client, draft["id"])

        response = await client.post(f"/api/v1/drafts/{draft['id']}/duplicate")
        listing = await client.get(f"/api/v1/orgs/{org.id}/drafts")

        copy = response.json()
        assert response.status_code == 201
        assert copy["title"] == "Rooftop Sessions (Copy)"
        assert copy["completion_percent"] == 0
        assert copy["sections"][0]["payload"]["title"] == "Rooftop Sessions"
        assert listing.json()["total"] == 2


class TestDraftPublishing:
    """Tests for POST /api/v1/drafts/{draft_id}/publish."""

    @pytest.mark.anyio
    async def test_should_list_blocking_sections(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)
        await client.put(
            f"/api/v1/drafts/{draft['id']}/sections/basics",
            json={"payload": _sections()["basics"]},
        )

        response = await client.post(f"/api/v1/drafts/{draft['id']}/publish")

        assert response.status_code == 400
        assert response.json()["details"]["blocking_sections"] == [
            "story",
            "tickets",
            "schedule",
            "checkout",
        ]

    @pytest.mark.anyio
    async def test_should_publish_live_event_with_ticket_types(
        self, client: httpx.AsyncClient, act_as, organizer, buyer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)
        await _complete_draft(client, draft["id"])

        response = await client.post(f"/api/v1/drafts/{draft['id']}/publish")

        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "published"
        assert result["message"] == "Event published"

        act_as(buyer)
        event = (await client.get(f"/api/v1/events/{result['event_id']}")).json()
        ticket_types = (await client.get(f"/api/v1/events/{result['event_id']}/ticket-types")).json()
        occurrences = (await client.get(f"/api/v1/events/{result['event_id']}/occurrences")).json()
        assert event["status"] == "live"
        assert event["title"] == "Rooftop Sessions"
        assert event["currency"] == "USD"
        assert event["policy"]["transfer_cutoff_hours"] == 24
        assert sorted(t["name"] for t in ticket_types) == ["Standard", "VIP"]
        assert len(occurrences) == 2

    @pytest.mark.anyio
    async def test_should_return_same_event_when_published_twice(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)
        await _complete_draft(client, draft["id"])

        first = await client.post(f"/api/v1/drafts/{draft['id']}/publish")
        second = await client.post(f"/api/v1/drafts/{draft['id']}/publish")

        assert second.status_code == 200
        assert second.json()["event_id"] == first.json()["event_id"]
        assert second.json()["message"] == "Event already published"

    @pytest.mark.anyio
    async def test_should_schedule_future_publish(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)
        await _complete_draft(client, draft["id"])

        response = await client.post(
            f"/api/v1/drafts/{draft['id']}/publish",
            json={"publish_at": (utcnow() + timedelta(days=2)).isoformat()},
        )
        event = await client.get(f"/api/v1/events/{response.json()['event_id']}")

        assert response.json()["status"] == "scheduled"
        assert response.json()["message"] == "Event scheduled"
        assert event.json()["status"] == "pending"

    @pytest.mark.anyio
    async def test_should_lock_published_draft(
        self, client: httpx.AsyncClient, act_as, organizer, org
    ):
        act_as(organizer)
        draft = await _create_draft(client, org)
        await _complete_draft(client, draft["id"])
        await client.post(f"/api/v1/drafts/{draft['id']}/publish")

        response = await client.put(
            f"/api/v1/drafts/{draft['id']}/sections/basics",
            json={"payload": {"title": "Changed"}},
        )

        assert response.status_code == 409
