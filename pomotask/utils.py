from typing import List


def format_clock(seconds: int) -> str:
    """Render a countdown as mm:ss (minutes are not wrapped at 60)."""
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    return f"{mins:02d}:{secs:02d}"


def progress_percent(remaining_sec: int, length_sec: int) -> float:
    """How far through the current phase the countdown is, 0-100."""
    if length_sec <= 0:
        return 0.0
    done = length_sec - remaining_sec
    return round(max(0.0, min(100.0, done * 100.0 / length_sec)), 2)


def split_origins(raw: str) -> List[str]:
    """Parse an ALLOWED_ORIGINS style value ("*" or a comma separated list)."""
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]
