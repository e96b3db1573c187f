"""Human-readable formatting helpers for log fields and progress details."""


def format_duration(ms: float) -> str:
    """Format a duration in milliseconds.

    Examples:
        450 -> "450ms"
        13000 -> "13s"
        125000 -> "2m 5s"
        180000 -> "3m"
    """
    if ms < 1000:
        return f"{int(ms)}ms"
    seconds = int(ms // 1000)
    if seconds < 60:
        return f"{seconds}s"
    minutes, rem = divmod(seconds, 60)
    return f"{minutes}m {rem}s" if rem else f"{minutes}m"


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Cut ``text`` to ``limit`` characters, appending ``suffix`` when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix
