from datetime import datetime, timezone


def to_utc_naive(dt: datetime) -> datetime:
    """
    DB guarda DateTime naive.
    Regla: lo guardamos como UTC naive.
    - Si dt es naive: asumimos que YA está en UTC.
    - Si dt tiene tz: convertimos a UTC y quitamos tzinfo.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
