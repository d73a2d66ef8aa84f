from datetime import UTC, datetime, timedelta


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def epoch_to_iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=UTC).isoformat()


def next_utc_midnight(now: float) -> float:
    """Epoch seconds of the first UTC midnight strictly after `now`."""
    today = datetime.fromtimestamp(now, tz=UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    return (today + timedelta(days=1)).timestamp()
