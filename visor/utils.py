from datetime import datetime, date, timezone
from dateutil import parser as date_parser

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def coerce_float(val, default: float = 0.0) -> float:
    # Monetary values arrive as decimal strings.
    if val is None or val == "":
        return default
    try:
        return float(val)
    except (TypeError, ValueError):
        return default

def parse_datetime(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

def parse_date(value) -> date | None:
    dt = parse_datetime(value)
    return dt.date() if dt else None

def format_time_ago(when, now: datetime | None = None) -> str:
    dt = parse_datetime(when)
    if dt is None:
        return ""
    now = now or now_utc()
    seconds = int((now - dt).total_seconds())
    if seconds < 60:
        return "<1 minute ago"
    if seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    if seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    days = seconds // 86400
    return f"{days} day{'s' if days > 1 else ''} ago"


class Listeners:
    """Synchronous change callbacks; ``subscribe`` returns the unsubscribe function."""

    def __init__(self):
        self._callbacks = []

    def subscribe(self, callback):
        self._callbacks.append(callback)

        def _unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def notify(self, *args):
        for callback in list(self._callbacks):
            callback(*args)
