from datetime import datetime

DATE_UNAVAILABLE = "Date unavailable"
LEGACY_TIME_SEPARATOR = "בשעה"


def split_display_timestamp(value: object) -> tuple[str, str]:
    """Split a stored timestamp into display date and time parts."""
    if value is None or value == "" or value == 0:
        return DATE_UNAVAILABLE, ""

    if isinstance(value, str):
        if LEGACY_TIME_SEPARATOR in value:
            date_part, _, time_part = value.partition(LEGACY_TIME_SEPARATOR)
            return date_part.strip(), time_part.strip()
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return value, ""
        return parsed.strftime("%d %B %Y"), parsed.strftime("%H:%M")

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DATE_UNAVAILABLE, ""

    try:
        moment = datetime.fromtimestamp(value / 1000)
    except (OverflowError, OSError, ValueError):
        return DATE_UNAVAILABLE, ""
    return moment.strftime("%d %B %Y"), moment.strftime("%H:%M")


def sort_key(value: object) -> tuple[int, float]:
    """Numeric timestamps first by value; legacy strings after them."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return 1, float(value)
    if isinstance(value, str):
        try:
            return 1, datetime.fromisoformat(value).timestamp() * 1000
        except ValueError:
            return 0, 0.0
    return 0, 0.0
