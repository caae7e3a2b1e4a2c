"""
Rotation decision and expiry helpers.

The functions here are pure: they take the current time explicitly and
touch neither the filesystem nor the network.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union


class RotationAction(Enum):
    """What to do with the remote certificate."""
    NO_OP = "no-op"
    CREATE_FRESH = "create-fresh"
    REPLACE = "replace"


@dataclass(frozen=True)
class RotationDecision:
    """Outcome of comparing the remote record against the renewal window."""
    action: RotationAction
    existing_id: Optional[str] = None

    @classmethod
    def no_op(cls) -> "RotationDecision":
        return cls(RotationAction.NO_OP)

    @classmethod
    def create_fresh(cls) -> "RotationDecision":
        return cls(RotationAction.CREATE_FRESH)

    @classmethod
    def replace(cls, existing_id: str) -> "RotationDecision":
        return cls(RotationAction.REPLACE, existing_id)

    @property
    def needs_rotation(self) -> bool:
        return self.action is not RotationAction.NO_OP

    def __str__(self) -> str:
        if self.action is RotationAction.REPLACE:
            return f"Replace({self.existing_id})"
        if self.action is RotationAction.CREATE_FRESH:
            return "CreateFresh"
        return "NoOp"


def normalize_domain(name: str) -> str:
    """
    Canonical form of a host name for comparisons and resource names.

    Surrounding whitespace and a trailing root dot are dropped and the
    name is lowercased: ``" Example.ORG. "`` becomes ``"example.org"``.
    """
    return name.strip().rstrip(".").lower()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expiring_soon(
    expires_on: Optional[datetime],
    renewal_window: timedelta,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check if a certificate expires within the renewal window.

    The check is strict: a certificate whose expiry falls exactly at
    ``now + renewal_window`` is not expiring soon.

    Args:
        expires_on: Certificate expiration datetime
        renewal_window: Look-ahead interval
        now: Reference time (defaults to the current UTC time)

    Returns:
        True if expired or expiring within the window. An unknown
        expiry counts as expiring.
    """
    if expires_on is None:
        return True

    if now is None:
        now = datetime.now(timezone.utc)

    return _as_utc(now) + renewal_window > _as_utc(expires_on)


def decide(
    now: datetime,
    renewal_window: timedelta,
    record_id: Optional[str],
    record_not_after: Optional[datetime],
) -> RotationDecision:
    """
    Decide whether the remote certificate has to be rotated.

    Rules:
    1. No remote record: upload a fresh certificate
    2. Remote record expiring within the window: replace it
    3. Otherwise: leave it alone

    Args:
        now: Reference time
        renewal_window: Look-ahead interval
        record_id: Id of the remote record for the domain, if any
        record_not_after: Expiry of that record

    Returns:
        RotationDecision
    """
    if not record_id:
        return RotationDecision.create_fresh()

    if is_expiring_soon(record_not_after, renewal_window, now=now):
        return RotationDecision.replace(record_id)

    return RotationDecision.no_op()


def format_days_remaining(
    expires_on: Optional[datetime],
    now: Optional[datetime] = None,
) -> Union[int, str]:
    """
    Calculate days remaining until expiration.

    Returns:
        Number of days remaining (negative if expired), or "unknown"
    """
    if expires_on is None:
        return "unknown"

    if now is None:
        now = datetime.now(timezone.utc)

    return (_as_utc(expires_on) - _as_utc(now)).days


def format_expiration_status(
    expires_on: Optional[datetime],
    renewal_window: timedelta,
    now: Optional[datetime] = None,
) -> str:
    """
    Format a human-readable expiration status.

    Args:
        expires_on: Certificate expiration datetime
        renewal_window: Window for the "expiring" status
        now: Reference time (defaults to the current UTC time)

    Returns:
        Formatted status string
    """
    days = format_days_remaining(expires_on, now=now)

    if isinstance(days, str):
        return "Unknown expiration"

    if days < 0:
        return f"EXPIRED ({abs(days)} days ago)"
    elif days == 0:
        return "EXPIRES TODAY"
    elif is_expiring_soon(expires_on, renewal_window, now=now):
        return f"EXPIRING in {days} day{'s' if days != 1 else ''}"
    else:
        return f"Valid ({days} days remaining)"
