from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today(now: datetime | None = None) -> date:
    """Calendar date in UTC; naive datetimes are treated as UTC."""
    now = now or utc_now()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(timezone.utc).date()


def parse_utc_date(value: str | date | None) -> date | None:
    """Parse a stored date or timestamp into its UTC calendar date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return utc_today(value)
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return utc_today(datetime.fromisoformat(text))
