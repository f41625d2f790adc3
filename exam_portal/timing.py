from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def seconds_between(earlier: datetime, later: datetime) -> int:
    """Whole seconds from `earlier` to `later`, floored at zero."""
    return max(0, int((later - earlier).total_seconds()))


def format_countdown(seconds: int) -> str:
    days, rest = divmod(max(0, seconds), 24 * 3600)
    hours, rest = divmod(rest, 3600)
    mins, secs = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h {mins}m {secs}s"
    if hours > 0:
        return f"{hours}h {mins}m {secs}s"
    return f"{mins}m {secs}s"


def format_clock(seconds: int) -> str:
    mins, secs = divmod(max(0, seconds), 60)
    return f"{mins:02d}:{secs:02d}"
