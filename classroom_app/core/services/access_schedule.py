"""Classification of shared lessons and quizzes against their access window."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from classroom_app.core.models import AccessGrant, ensure_utc


class WindowState(str, Enum):
    UPCOMING = "upcoming"
    OPEN = "open"
    CLOSED = "closed"


class ItemStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"


def window_state(now: datetime, available_from: datetime, available_until: datetime) -> WindowState:
    """Place ``now`` relative to the closed interval [from, until]."""
    now = ensure_utc(now)
    if now > ensure_utc(available_until):
        return WindowState.CLOSED
    if now < ensure_utc(available_from):
        return WindowState.UPCOMING
    return WindowState.OPEN


def is_overdue(now: datetime, grant: AccessGrant) -> bool:
    return window_state(now, grant.available_from, grant.available_until) is WindowState.CLOSED


def item_status(now: datetime, grant: AccessGrant, completed: bool) -> ItemStatus:
    """Status of one schedulable item; completion wins over the window."""
    if completed:
        return ItemStatus.COMPLETED
    state = window_state(now, grant.available_from, grant.available_until)
    if state is WindowState.CLOSED:
        return ItemStatus.OVERDUE
    if state is WindowState.UPCOMING:
        return ItemStatus.UPCOMING
    return ItemStatus.ACTIVE
