"""
Domain enums for the ticketing platform.

Values are what the database stores and what the API returns.
"""

from enum import Enum


class UserRole(str, Enum):
    """Platform-wide role of a user account."""

    ATTENDEE = "attendee"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class OrgMemberRole(str, Enum):
    """Role of a user inside one organization."""

    OWNER = "owner"
    MANAGER = "manager"
    FINANCE = "finance"
    STAFF = "staff"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    LIVE = "live"
    PAUSED = "paused"
    CANCELED = "canceled"
    ENDED = "ended"


class Visibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


class TicketKind(str, Enum):
    """General admission or assigned seating."""

    GA = "GA"
    SEATED = "SEATED"


class TicketTypeStatus(str, Enum):
    ACTIVE = "active"
    APPROVED = "approved"
    PAUSED = "paused"
    HIDDEN = "hidden"


class HoldReason(str, Enum):
    CHECKOUT = "checkout"
    ORGANIZER = "organizer"
    COMP = "comp"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELED = "canceled"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class FeeBeneficiary(str, Enum):
    PLATFORM = "platform"
    ORGANIZER = "organizer"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class TicketStatus(str, Enum):
    ISSUED = "issued"
    CHECKED_IN = "checked_in"
    TRANSFERRED = "transferred"
    VOID = "void"


class DraftStatus(str, Enum):
    DRAFT = "draft"
    READY = "ready"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class DraftSectionType(str, Enum):
    """Event creator wizard sections, in display order."""

    BASICS = "basics"
    STORY = "story"
    TICKETS = "tickets"
    SCHEDULE = "schedule"
    CHECKOUT = "checkout"


class SectionStatus(str, Enum):
    INCOMPLETE = "incomplete"
    VALID = "valid"
    INVALID = "invalid"


class CollaboratorRole(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"


class DisputeStatus(str, Enum):
    OPEN = "open"
    RESPONDED = "responded"
    RESOLVED = "resolved"
    CLOSED = "closed"
    APPEALED = "appealed"


class DisputeResolution(str, Enum):
    FULL_REFUND = "full_refund"
    PARTIAL_REFUND = "partial_refund"
    NO_REFUND = "no_refund"


class DisputeSenderRole(str, Enum):
    BUYER = "buyer"
    ORGANIZER = "organizer"
    PLATFORM = "platform"


class NotificationCategory(str, Enum):
    TRANSACTIONAL = "transactional"
    EVENT = "event"
    MARKETING = "marketing"
    SYSTEM = "system"


class AuditEntityType(str, Enum):
    """Entity kinds recorded in the audit log."""

    EVENT = "EVENT"
    ORDER = "ORDER"
    TICKET = "TICKET"
    TRANSFER = "TRANSFER"
    PAYOUT = "PAYOUT"
    DRAFT = "DRAFT"
    ORG_MEMBER = "ORG_MEMBER"
    DISPUTE = "DISPUTE"
