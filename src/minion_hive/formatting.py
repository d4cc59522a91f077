from datetime import datetime, timedelta

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def human_size(num_bytes: float) -> str:
    """Human-readable byte count, e.g. 1536 -> '1.5KB'."""
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f}{SIZE_UNITS[unit]}"


def human_age(since: datetime, now: datetime) -> str:
    """Age as '3d 4h' or '5h'."""
    age = max(now - since, timedelta(0))
    days = age.days
    hours = age.seconds // 3600
    return f"{days}d {hours}h" if days > 0 else f"{hours}h"
