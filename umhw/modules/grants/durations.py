"""
Grant durations.

Callers pick from a fixed menu: either an hour preset or a relative string
such as ``"7d"``. Anything else is rejected, so every grant has a bounded
lifetime and a display label that matches what the user picked.
"""
from datetime import datetime, timedelta

from umhw.core.errors import InvalidDuration

# hours -> canonical label
PRESET_LABELS: dict[float, str] = {
    0.5: "30 Minutes",
    1: "1 Hour",
    24: "24 Hours (1 Day)",
    48: "48 Hours (2 Days)",
    72: "72 Hours (3 Days)",
    168: "1 Week",
    336: "2 Weeks",
    720: "30 Days",
}

RELATIVE_DURATIONS: dict[str, float] = {
    "1h": 1,
    "1d": 24,
    "7d": 168,
    "30d": 720,
}

DEFAULT_REQUEST_HOURS = 48
DEFAULT_QR_HOURS = 24
DEFAULT_SHARE_DURATION = "7d"

Duration = float | int | str


def parse_duration(value: Duration) -> float:
    """Map a preset hour count or relative string to hours, or raise InvalidDuration."""
    if isinstance(value, bool):
        raise InvalidDuration(f"Invalid duration: {value!r}")
    if isinstance(value, str):
        key = value.strip().lower()
        if key in RELATIVE_DURATIONS:
            return float(RELATIVE_DURATIONS[key])
        raise InvalidDuration(
            f"Invalid duration {value!r}; expected one of {', '.join(RELATIVE_DURATIONS)}"
        )
    if isinstance(value, (int, float)) and value in PRESET_LABELS:
        return float(value)
    raise InvalidDuration(
        f"Invalid duration {value!r}; expected one of {', '.join(_fmt(h) for h in PRESET_LABELS)} hours"
    )


def compute_expiry(reference: datetime, duration: Duration) -> datetime:
    return reference + timedelta(hours=parse_duration(duration))


def duration_label(hours: float | int | None) -> str:
    if hours is None:
        return ""
    if hours in PRESET_LABELS:
        return PRESET_LABELS[hours]
    return f"{_fmt(hours)} Hours"


def _fmt(hours: float | int) -> str:
    return str(int(hours)) if float(hours).is_integer() else str(hours)
