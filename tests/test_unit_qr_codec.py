"""
Tests for ticket QR payload encoding and barcode generation.
"""

import base64
import uuid

import pytest

from ticketing.core.errors import ValidationError
from ticketing.services.qr_codec import GA_MARKER, build_barcode, decode_qr, encode_qr


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class TestEncodeQr:
    def test_should_encode_ga_ticket_with_marker(self):
        ticket_id, order_id, type_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

        payload = encode_qr(ticket_id, order_id, type_id)

        decoded = base64.b64decode(payload).decode("utf-8")
        assert decoded == f"{ticket_id}|{order_id}|{type_id}|{GA_MARKER}"

    def test_should_encode_seat_id_for_seated_ticket(self):
        seat_id = uuid.uuid4()

        payload = encode_qr(uuid.uuid4(), uuid.uuid4(), uuid.uuid4(), seat_id)

        assert base64.b64decode(payload).decode("utf-8").endswith(f"|{seat_id}")

    def test_should_be_deterministic(self):
        ids = (uuid.uuid4(), uuid.uuid4(), uuid.uuid4())

        assert encode_qr(*ids) == encode_qr(*ids)


class TestDecodeQr:
    def test_should_return_ticket_id_from_payload(self):
        ticket_id = uuid.uuid4()
        payload = encode_qr(ticket_id, uuid.uuid4(), uuid.uuid4())

        assert decode_qr(payload) == str(ticket_id)

    def test_should_pass_through_bare_ticket_id(self):
        ticket_id = str(uuid.uuid4())

        # UUIDs contain hyphens, so they never look like base64
        assert decode_qr(ticket_id) == ticket_id

    def test_should_pass_through_base64_without_delimiter(self):
        value = _b64("just-some-text")

        assert decode_qr(value) == value

    def test_should_pass_through_non_utf8_base64(self):
        value = base64.b64encode(b"\xff\xfe\xfd").decode("ascii")

        assert decode_qr(value) == value

    def test_should_accept_payload_without_padding(self):
        padded = _b64("ticket-1|order|type|GA")
        unpadded = padded.rstrip("=")
        assert unpadded != padded

        assert decode_qr(unpadded) == "ticket-1"

    def test_should_reject_payload_with_too_few_segments(self):
        with pytest.raises(ValidationError, match="Invalid QR code format"):
            decode_qr(_b64("a|b"))

    def test_should_reject_pending_placeholder(self):
        with pytest.raises(ValidationError):
            decode_qr(_b64("PENDING|order|type|GA"))

    def test_should_reject_empty_ticket_segment(self):
        with pytest.raises(ValidationError):
            decode_qr(_b64("|order|type|GA"))


class TestBuildBarcode:
    def test_should_build_ga_barcode(self):
        assert build_barcode("o", "t", None, 3) == "o-t-3"

    def test_should_include_seat_in_barcode(self):
        assert build_barcode("o", "t", "s", 1) == "o-t-s-1"
