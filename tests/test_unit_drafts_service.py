"""
Tests for the event wizard section validators and helpers.
"""

from datetime import UTC, datetime

import pytest

from ticketing.domain.enums import DraftSectionType, SectionStatus
from ticketing.services.drafts import (
    compute_completion,
    parse_datetime,
    schedule_occurrences,
    slugify,
    transfer_cutoff_hours,
    validate_section,
)


class TestSlugify:
    def test_should_lowercase_and_hyphenate(self):
        assert slugify("  Lagos Jazz Night 2025! ") == "lagos-jazz-night-2025"

    def test_should_cap_length(self):
        slug = slugify("a" * 100)

        assert len(slug) == 60

    def test_should_fall_back_for_empty_result(self):
        assert slugify("!!!") == "event"

    def test_should_use_given_fallback(self):
        assert slugify("***", fallback="org") == "org"


class TestParseDatetime:
    def test_should_accept_z_suffix(self):
        assert parse_datetime("2030-01-01T20:00:00Z") == datetime(2030, 1, 1, 20, tzinfo=UTC)

    def test_should_treat_naive_values_as_utc(self):
        assert parse_datetime(datetime(2030, 1, 1)) == datetime(2030, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize("value", [None, "", "not a date", 42])
    def test_should_return_none_for_unparseable(self, value):
        assert parse_datetime(value) is None


class TestValidateSection:
    def test_should_mark_empty_payload_incomplete(self):
        status, errors = validate_section(DraftSectionType.BASICS, {})

        assert status == SectionStatus.INCOMPLETE
        assert errors == []

    def test_should_accept_valid_basics(self):
        status, errors = validate_section(
            DraftSectionType.BASICS, {"title": "Jazz Night", "visibility": "public"}
        )

        assert status == SectionStatus.VALID
        assert errors == []

    def test_should_flag_short_title(self):
        status, errors = validate_section(DraftSectionType.BASICS, {"title": "ab"})

        assert status == SectionStatus.INVALID
        assert errors[0]["field"] == "title"

    def test_should_require_a_ticket_type(self):
        status, errors = validate_section(DraftSectionType.TICKETS, {"ticket_types": []})

        assert status == SectionStatus.INVALID
        assert errors == [{"field": "ticket_types", "message": "Add at least one ticket type"}]

    def test_should_flag_negative_price_and_bad_sales_window(self):
        payload = {
            "ticket_types": [
                {
                    "name": "VIP",
                    "price_cents": -1,
                    "sales_start": "2030-01-02T00:00:00Z",
                    "sales_end": "2030-01-01T00:00:00Z",
                }
            ]
        }

        _, errors = validate_section(DraftSectionType.TICKETS, payload)

        fields = {e["field"] for e in errors}
        assert fields == {"ticket_types[0].price_cents", "ticket_types[0].sales_end"}

    @pytest.mark.parametrize("fee", [-50, 1.5, "100", True])
    def test_should_flag_fee_that_is_not_a_non_negative_integer(self, fee):
        payload = {"ticket_types": [{"name": "VIP", "price_cents": 1000, "fee_cents": fee}]}

        status, errors = validate_section(DraftSectionType.TICKETS, payload)

        assert status == SectionStatus.INVALID
        assert errors == [
            {"field": "ticket_types[0].fee_cents", "message": "Fee must be a non-negative integer"}
        ]

    def test_should_flag_occurrence_ending_before_start(self):
        payload = {
            "occurrences": [
                {"starts_at": "2030-01-01T20:00:00Z", "ends_at": "2030-01-01T19:00:00Z"}
            ]
        }

        status, errors = validate_section(DraftSectionType.SCHEDULE, payload)

        assert status == SectionStatus.INVALID
        assert errors[0]["field"] == "occurrences[0].ends_at"

    def test_should_require_contact_email_for_checkout(self):
        status, errors = validate_section(DraftSectionType.CHECKOUT, {"questions": []})

        assert status == SectionStatus.INVALID
        assert errors[0]["field"] == "contact_email"

    def test_should_flag_unknown_transfer_cutoff(self):
        _, errors = validate_section(
            DraftSectionType.STORY, {"description": "Great", "transfer_cutoff": "1y"}
        )

        assert errors == [{"field": "transfer_cutoff", "message": "Unknown transfer cutoff"}]


class TestDraftHelpers:
    def test_should_compute_completion_percent(self):
        statuses = [SectionStatus.VALID, SectionStatus.VALID, SectionStatus.INVALID]

        assert compute_completion(statuses) == 67
        assert compute_completion([]) == 0

    def test_should_sort_occurrences_and_skip_unparseable(self):
        payload = {
            "occurrences": [
                {"starts_at": "2030-02-01T20:00:00Z"},
                {"starts_at": "garbage"},
                {"starts_at": "2030-01-01T20:00:00Z", "door_time": "2030-01-01T18:00:00Z"},
            ]
        }

        occurrences = schedule_occurrences(payload)

        assert [o["starts_at"].month for o in occurrences] == [1, 2]
        assert occurrences[0]["gate_open_at"] == datetime(2030, 1, 1, 18, tzinfo=UTC)

    def test_should_map_transfer_cutoff(self):
        assert transfer_cutoff_hours({"transfer_cutoff": "7d"}) == 168
        assert transfer_cutoff_hours({}) is None
