from datetime import datetime

from craftshop.config import settings


def money(v: float) -> str:
    return f"{settings.currency}{float(v):.{settings.decimals}f}"


def format_date(value: str | None) -> str:
    # "March 5, 2025, 02:30 PM"
    if not value:
        return ""
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    return f"{dt.strftime('%B')} {dt.day}, {dt.year}, {dt.strftime('%I:%M %p')}"
