from datetime import datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from billing_collector.models import TimeRange

# billing days follow the provider's invoicing calendar
REFERENCE_TIMEZONE = ZoneInfo("Europe/Zurich")


class BillingWindow(Enum):
    DAILY = timedelta(days=1)
    HOURLY = timedelta(hours=1)


def local_day_start(reference: "datetime", days_back: "int" = 0) -> "datetime":
    """
    returns local midnight of the reference day (minus days_back)
    in the reference timezone.
    """
    local = reference.astimezone(REFERENCE_TIMEZONE)
    day = local.date() - timedelta(days=days_back)
    return datetime.combine(day, time(0), tzinfo=REFERENCE_TIMEZONE)


def billing_window(reference: "datetime", window: "BillingWindow") -> "TimeRange":
    """
    computes the UTC time range a run at the reference instant bills.

    DAILY bills the previous local day, HOURLY bills the local hour
    the reference falls in. The end is always exactly one window
    length after the start, also across DST changes.
    """
    if reference.tzinfo is None:
        raise ValueError("reference instant must be timezone aware")

    if window is BillingWindow.DAILY:
        start = local_day_start(reference, days_back=1)
    else:
        local = reference.astimezone(REFERENCE_TIMEZONE)
        start = local.replace(minute=0, second=0, microsecond=0)

    start_utc = start.astimezone(timezone.utc)
    return TimeRange(start=start_utc, end=start_utc + window.value)
