"""
Event creator wizard: section validation and draft helpers.

Each wizard section stores a free-form JSON payload. Validators here
compute the section's error list server-side; the section status is
derived from those errors rather than trusted from the client.
"""

import re
from datetime import datetime, timedelta
from typing import Any

from ticketing.db.validators import as_utc
from ticketing.domain.enums import DraftSectionType, SectionStatus, Visibility

SECTION_ORDER: tuple[DraftSectionType, ...] = (
    DraftSectionType.BASICS,
    DraftSectionType.STORY,
    DraftSectionType.TICKETS,
    DraftSectionType.SCHEDULE,
    DraftSectionType.CHECKOUT,
)

TITLE_MAX_LENGTH = 180
SHORT_DESCRIPTION_MAX_LENGTH = 280
SLUG_MAX_LENGTH = 60

DEFAULT_EVENT_DURATION = timedelta(hours=2)

# UI transfer cutoff choice -> hours before start
TRANSFER_CUTOFF_HOURS = {
    "2h": 2,
    "24h": 24,
    "48h": 48,
    "72h": 72,
    "7d": 168,
    "at_start": 0,
}

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str, fallback: str = "event") -> str:
    """Lower-case, hyphen-separated slug of at most 60 characters."""
    slug = _SLUG_STRIP_RE.sub("-", value.strip().lower()).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug or fallback


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into aware UTC."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def _error(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def _validate_basics(payload: dict[str, Any]) -> list[dict[str, str]]:
    errors = []
    title = payload.get("title")
    if not isinstance(title, str) or len(title.strip()) < 3:
        errors.append(_error("title", "Title must be at least 3 characters"))
    short_description = payload.get("short_description")
    if short_description is not None and not isinstance(short_description, str):
        errors.append(_error("short_description", "Short description must be text"))
    visibility = payload.get("visibility")
    if visibility is not None and visibility not in {v.value for v in Visibility}:
        errors.append(_error("visibility", "Unknown visibility"))
    return errors


def _validate_story(payload: dict[str, Any]) -> list[dict[str, str]]:
    errors = []
    description = payload.get("description")
    if not isinstance(description, str) or not description.strip():
        errors.append(_error("description", "Description is required"))
    transfer_enabled = payload.get("transfer_enabled")
    if transfer_enabled is not None and not isinstance(transfer_enabled, bool):
        errors.append(_error("transfer_enabled", "Must be true or false"))
    cutoff = payload.get("transfer_cutoff")
    if cutoff is not None and cutoff not in TRANSFER_CUTOFF_HOURS:
        errors.append(_error("transfer_cutoff", "Unknown transfer cutoff"))
    return errors


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _validate_tickets(payload: dict[str, Any]) -> list[dict[str, str]]:
    ticket_types = payload.get("ticket_types")
    if not isinstance(ticket_types, list) or not ticket_types:
        return [_error("ticket_types", "Add at least one ticket type")]

    errors = []
    for i, ticket_type in enumerate(ticket_types):
        prefix = f"ticket_types[{i}]"
        if not isinstance(ticket_type, dict):
            errors.append(_error(prefix, "Ticket type must be an object"))
            continue
        name = ticket_type.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(_error(f"{prefix}.name", "Name is required"))
        if not _is_non_negative_int(ticket_type.get("price_cents", 0)):
            errors.append(_error(f"{prefix}.price_cents", "Price must be a non-negative integer"))
        if not _is_non_negative_int(ticket_type.get("fee_cents", 0)):
            errors.append(_error(f"{prefix}.fee_cents", "Fee must be a non-negative integer"))
        quantity = ticket_type.get("quantity")
        if quantity is not None and not _is_non_negative_int(quantity):
            errors.append(_error(f"{prefix}.quantity", "Quantity must be a non-negative integer"))
        per_order = ticket_type.get("per_order_limit")
        if per_order is not None and (not _is_non_negative_int(per_order) or per_order < 1):
            errors.append(_error(f"{prefix}.per_order_limit", "Per-order limit must be at least 1"))
        sales_start = parse_datetime(ticket_type.get("sales_start"))
        sales_end = parse_datetime(ticket_type.get("sales_end"))
        if sales_start and sales_end and sales_end <= sales_start:
            errors.append(_error(f"{prefix}.sales_end", "Sales end must be after sales start"))
    return errors


def _validate_schedule(payload: dict[str, Any]) -> list[dict[str, str]]:
    occurrences = payload.get("occurrences")
    if not isinstance(occurrences, list) or not occurrences:
        return [_error("occurrences", "Add at least one date")]

    errors = []
    for i, occurrence in enumerate(occurrences):
        prefix = f"occurrences[{i}]"
        if not isinstance(occurrence, dict):
            errors.append(_error(prefix, "Occurrence must be an object"))
            continue
        starts_at = parse_datetime(occurrence.get("starts_at"))
        if starts_at is None:
            errors.append(_error(f"{prefix}.starts_at", "Start time is required"))
            continue
        ends_at = occurrence.get("ends_at")
        if ends_at is not None:
            parsed_end = parse_datetime(ends_at)
            if parsed_end is None or parsed_end <= starts_at:
                errors.append(_error(f"{prefix}.ends_at", "End time must be after start time"))
    return errors


def _validate_checkout(payload: dict[str, Any]) -> list[dict[str, str]]:
    errors = []
    contact_email = payload.get("contact_email")
    if not isinstance(contact_email, str) or "@" not in contact_email:
        errors.append(_error("contact_email", "A contact email is required"))
    questions = payload.get("questions", [])
    if not isinstance(questions, list):
        errors.append(_error("questions", "Questions must be a list"))
    else:
        for i, question in enumerate(questions):
            if not isinstance(question, dict) or not str(question.get("label") or "").strip():
                errors.append(_error(f"questions[{i}].label", "Question label is required"))
    return errors


SECTION_VALIDATORS = {
    DraftSectionType.BASICS: _validate_basics,
    DraftSectionType.STORY: _validate_story,
    DraftSectionType.TICKETS: _validate_tickets,
    DraftSectionType.SCHEDULE: _validate_schedule,
    DraftSectionType.CHECKOUT: _validate_checkout,
}


def validate_section(
    section: DraftSectionType, payload: dict[str, Any]
) -> tuple[SectionStatus, list[dict[str, str]]]:
    """
    Returns:
        (status, errors); an empty payload is ``incomplete`` with no errors
    """
    if not payload:
        return SectionStatus.INCOMPLETE, []
    errors = SECTION_VALIDATORS[section](payload)
    return (SectionStatus.INVALID if errors else SectionStatus.VALID), errors


def compute_completion(statuses: list[SectionStatus]) -> int:
    """Percentage of valid sections, rounded to the nearest integer."""
    if not statuses:
        return 0
    valid = sum(1 for s in statuses if s == SectionStatus.VALID)
    return round(valid / len(statuses) * 100)


def schedule_occurrences(payload: dict[str, Any]) -> list[dict[str, datetime | None]]:
    """Occurrences from a schedule payload, sorted by start, unparseable ones dropped."""
    occurrences = []
    for item in payload.get("occurrences") or []:
        if not isinstance(item, dict):
            continue
        starts_at = parse_datetime(item.get("starts_at"))
        if starts_at is None:
            continue
        occurrences.append(
            {
                "starts_at": starts_at,
                "ends_at": parse_datetime(item.get("ends_at")),
                "gate_open_at": parse_datetime(item.get("door_time")),
            }
        )
    return sorted(occurrences, key=lambda o: o["starts_at"])


def transfer_cutoff_hours(story: dict[str, Any]) -> int | None:
    return TRANSFER_CUTOFF_HOURS.get(story.get("transfer_cutoff"))
