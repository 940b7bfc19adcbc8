import time


def now_ms() -> int:
    return int(time.time() * 1000)


def elapsed_ms(start_ms: int, now: int = None) -> int:
    """Clamped to >= 0 so clock steps never yield negative ages."""
    try:
        end = int(now if now is not None else now_ms())
        return max(0, end - int(start_ms or 0))
    except (TypeError, ValueError):
        return 0
