import calendar
from datetime import date, timedelta


def week_window(day: date) -> tuple[date, date]:
    """Sunday through Saturday of the week containing ``day``, inclusive."""
    # date.weekday(): Monday == 0 ... Sunday == 6
    days_since_sunday = (day.weekday() + 1) % 7
    start = day - timedelta(days=days_since_sunday)
    return start, start + timedelta(days=6)


def month_window(day: date) -> tuple[date, date]:
    """First through last calendar day of the month containing ``day``."""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last_day)
