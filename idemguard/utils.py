def ensure_int(value: object, default: int | None = 0) -> int | None:
    """Convert a value to int, with a default fallback."""
    if isinstance(value, bool):
        return default
    try:
        return int(value) if isinstance(value, (int, float, str, bytes)) else default
    except (TypeError, ValueError):
        return default


def to_millis(seconds: float) -> int:
    """Convert epoch seconds to epoch milliseconds."""
    return int(seconds * 1000)


def env_flag(value: str | None) -> bool:
    """Interpret an environment variable as a boolean flag."""
    if value is None:
        return False
    return value.strip().lower() in ("1", "true", "yes", "on")
