"""
Pydantic schemas for API request/response validation.

One module per domain area; pagination envelopes live in pagination.py.
"""

from .audit import AuditLogResponse as AuditLogResponse
from .auth import TokenResponse as TokenResponse
from .auth import UserResponse as UserResponse
from .event import EventResponse as EventResponse
from .order import OrderResponse as OrderResponse
from .pagination import CursorDirection as CursorDirection
from .pagination import KeysetPaginatedResponse as KeysetPaginatedResponse
from .pagination import PaginatedResponse as PaginatedResponse
from .ticket import TicketResponse as TicketResponse
