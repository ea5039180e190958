import datetime
from zoneinfo import ZoneInfo

from .config import settings


def utcnow() -> datetime.datetime:
    """Current time as naive UTC, the form every timestamp column stores."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def as_utc_naive(moment: datetime.datetime) -> datetime.datetime:
    # Naive input is taken to be UTC already
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(datetime.timezone.utc).replace(tzinfo=None)


def local_time(now: datetime.datetime | None = None) -> datetime.datetime:
    moment = as_utc_naive(now or utcnow()).replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(ZoneInfo(settings.TIMEZONE))


def local_today(now: datetime.datetime | None = None) -> datetime.date:
    """The calendar date at `now` in the configured business timezone."""
    return local_time(now).date()


def local_date_of(moment: datetime.datetime) -> datetime.date:
    return local_today(moment)


def local_day_bounds(first: datetime.date,
                     last: datetime.date | None = None) -> tuple[datetime.datetime, datetime.datetime]:
    """[start, end) in naive UTC covering the local calendar days first..last inclusive."""
    zone = ZoneInfo(settings.TIMEZONE)
    start = datetime.datetime.combine(first, datetime.time(), tzinfo=zone)
    end = datetime.datetime.combine((last or first) + datetime.timedelta(days=1), datetime.time(), tzinfo=zone)
    return as_utc_naive(start), as_utc_naive(end)
