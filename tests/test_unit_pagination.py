"""
Tests for offset and keyset pagination helpers.

Tests cover:
- page/limit clamping and total_pages
- cursor encode/decode and malformed cursors
- keyset page info in both directions
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from ticketing.api.schemas.pagination import CursorDirection
from ticketing.repos.pagination import (
    build_paginated_response,
    calculate_skip,
    clamp_pagination,
    contains_pattern,
    decode_cursor,
    encode_cursor,
    get_keyset_page_info,
)


@dataclass
class Row:
    id: uuid.UUID
    created_at: datetime


def _rows(count: int) -> list[Row]:
    base = datetime(2030, 1, 1, tzinfo=UTC)
    return [Row(uuid.uuid4(), base - timedelta(minutes=i)) for i in range(count)]


class TestOffsetPagination:
    @pytest.mark.parametrize(
        ("page", "limit", "expected"),
        [
            (None, None, (1, 20)),
            (0, -5, (1, 20)),
            (3, 10, (3, 10)),
            (2, 500, (2, 100)),
        ],
    )
    def test_should_clamp_page_and_limit(self, page, limit, expected):
        assert clamp_pagination(page, limit) == expected

    def test_should_calculate_skip(self):
        assert calculate_skip(3, 20) == 40

    def test_should_compute_total_pages(self):
        response = build_paginated_response(["a", "b"], page=1, limit=2, total=5)

        assert response["total_pages"] == 3
        assert response["items"] == ["a", "b"]

    def test_should_report_zero_pages_for_empty_result(self):
        assert build_paginated_response([], page=1, limit=20, total=0)["total_pages"] == 0


class TestContainsPattern:
    def test_should_wrap_term_in_wildcards(self):
        assert contains_pattern("  jazz ") == "%jazz%"

    def test_should_escape_like_wildcards(self):
        assert contains_pattern("100%_off") == r"%100\%\_off%"

    def test_should_escape_the_escape_character(self):
        assert contains_pattern("a\\b") == r"%a\\b%"


class TestCursorEncoding:
    def test_should_round_trip_cursor(self):
        row_id = uuid.uuid4()
        ts = datetime(2030, 5, 1, 12, 30, tzinfo=UTC)

        decoded_id, decoded_ts = decode_cursor(encode_cursor(row_id, ts))

        assert decoded_id == str(row_id)
        assert decoded_ts == ts

    @pytest.mark.parametrize("cursor", ["not-base64!", "e30=", "bm90IGpzb24="])
    def test_should_reject_malformed_cursor(self, cursor):
        with pytest.raises(ValueError, match="Invalid cursor"):
            decode_cursor(cursor)


class TestKeysetPageInfo:
    def test_should_report_next_page_when_extra_row_fetched(self):
        rows = _rows(4)

        items, has_next, has_prev, next_cursor, prev_cursor = get_keyset_page_info(
            rows, 3, CursorDirection.NEXT, is_first_page=True
        )

        assert items == rows[:3]
        assert has_next is True
        assert has_prev is False
        assert decode_cursor(next_cursor)[0] == str(rows[2].id)
        assert prev_cursor is None

    def test_should_report_last_page(self):
        rows = _rows(2)

        _, has_next, has_prev, next_cursor, prev_cursor = get_keyset_page_info(
            rows, 3, CursorDirection.NEXT, is_first_page=False
        )

        assert has_next is False
        assert has_prev is True
        assert next_cursor is None
        assert prev_cursor is not None

    def test_should_reverse_rows_when_paging_back(self):
        # PREV queries run ascending, oldest first
        rows = list(reversed(_rows(3)))

        items, has_next, has_prev, _, _ = get_keyset_page_info(rows, 3, CursorDirection.PREV)

        assert items == list(reversed(rows))
        assert has_next is True
        assert has_prev is False

    def test_should_return_no_cursors_for_empty_page(self):
        assert get_keyset_page_info([], 10, CursorDirection.NEXT) == ([], False, False, None, None)
