"""
Period Keys

Canonical bucket strings for counters and rollups:

- daily:   2026-02-01
- weekly:  2026-W05 (ISO year and ISO week)
- monthly: 2026-02
"""

from datetime import date, datetime, timedelta, timezone

from analytics_store.store.categories import PeriodType


def period_key(moment: datetime, period_type: PeriodType) -> str:
    """
    Derive the period string for a wall-clock time.

    Args:
        moment: Local wall-clock time
        period_type: Bucket size

    Returns:
        Canonical period key
    """
    period_type = PeriodType(period_type)
    if period_type == PeriodType.DAILY:
        return moment.strftime("%Y-%m-%d")
    if period_type == PeriodType.MONTHLY:
        return moment.strftime("%Y-%m")
    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def period_start(day: date, period_type: PeriodType) -> date:
    """First calendar day of the period containing ``day``"""
    period_type = PeriodType(period_type)
    if period_type == PeriodType.DAILY:
        return day
    if period_type == PeriodType.MONTHLY:
        return day.replace(day=1)
    return day - timedelta(days=day.weekday())


def local_midnight_utc(local_now: datetime) -> datetime:
    """Local midnight of ``local_now``'s day as a naive UTC datetime"""
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def utc_now() -> datetime:
    """Current time as naive UTC, the form stored documents carry"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
