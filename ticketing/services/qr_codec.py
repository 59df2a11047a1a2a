"""
Ticket QR payload encoding.

A QR payload is base64 of ``ticket_id|order_id|ticket_type_id|seat``
where seat is the seat id or ``GA``. Scanners may send either a QR
payload or a bare ticket id, so decoding falls back to the raw input
whenever the value is not a QR payload.
"""

import base64
import binascii
import re
import uuid

from ticketing.core.errors import ValidationError

QR_DELIMITER = "|"
GA_MARKER = "GA"

# Placeholder first segment used by payloads generated before a ticket id existed
PENDING_MARKER = "PENDING"

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+=*$")


def encode_qr(
    ticket_id: uuid.UUID | str,
    order_id: uuid.UUID | str,
    ticket_type_id: uuid.UUID | str,
    seat_id: uuid.UUID | str | None = None,
) -> str:
    parts = [str(ticket_id), str(order_id), str(ticket_type_id), str(seat_id) if seat_id else GA_MARKER]
    return base64.b64encode(QR_DELIMITER.join(parts).encode("utf-8")).decode("ascii")


def decode_qr(value: str) -> str:
    """
    Resolve a scanned value to a ticket id.

    Returns:
        The ticket id from the QR payload, or ``value`` itself when it is
        not a QR payload

    Raises:
        ValidationError: If the payload decodes but has no usable ticket id
    """
    if not _BASE64_RE.match(value):
        return value

    try:
        # Some scanners drop the trailing padding
        padded = value + "=" * (-len(value) % 4)
        decoded = base64.b64decode(padded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return value

    if QR_DELIMITER not in decoded:
        return value

    parts = decoded.split(QR_DELIMITER)
    if len(parts) >= 4 and parts[0] and parts[0] != PENDING_MARKER:
        return parts[0]

    raise ValidationError("Invalid QR code format", details={"segments": len(parts)})


def build_barcode(
    order_id: uuid.UUID | str,
    ticket_type_id: uuid.UUID | str,
    seat_id: uuid.UUID | str | None,
    sequence: int,
) -> str:
    """Deterministic barcode for the n-th ticket of an order item."""
    base = f"{order_id}-{ticket_type_id}"
    if seat_id:
        base = f"{base}-{seat_id}"
    return f"{base}-{sequence}"
