"""State machine for family member invitations."""

from datetime import datetime, timedelta
from enum import Enum

from family_access.errors import InvalidTransition


class InviteStatus(Enum):
    """Lifecycle states of a family member invitation."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


# Every state except PENDING is terminal
TRANSITIONS = {
    InviteStatus.PENDING: {InviteStatus.ACCEPTED, InviteStatus.REJECTED, InviteStatus.EXPIRED},
    InviteStatus.ACCEPTED: set(),
    InviteStatus.REJECTED: set(),
    InviteStatus.EXPIRED: set(),
}


def can_transition(current: InviteStatus, target: InviteStatus) -> bool:
    """Check whether an invitation may move from current to target."""
    return target in TRANSITIONS[current]


def ensure_transition(current: InviteStatus, target: InviteStatus) -> None:
    """Raise InvalidTransition unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Invitation cannot move from {current.value} to {target.value}"
        )


def is_terminal(status: InviteStatus) -> bool:
    return not TRANSITIONS[status]


def expiry_cutoff(now: datetime, expiry_days: int) -> datetime:
    """Invitations sent before this instant are stale."""
    return now - timedelta(days=expiry_days)


def is_expired(invited_at: datetime, now: datetime, expiry_days: int) -> bool:
    """Check if a pending invitation has outlived the expiry window."""
    return invited_at < expiry_cutoff(now, expiry_days)
