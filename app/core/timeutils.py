"""
Wall-clock helpers.

All punch timestamps are stored as naive datetimes in the organization's
timezone (settings.timezone) so that a record's calendar date matches the
date the employee sees.
"""
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings


def org_zone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def local_now() -> datetime:
    """Current naive wall-clock time in the organization's timezone."""
    return datetime.now(org_zone()).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_local_naive(value: datetime) -> datetime:
    """Aware datetimes are converted to org time; naive ones are taken as already local."""
    if value.tzinfo is None:
        return value
    return value.astimezone(org_zone()).replace(tzinfo=None)
