"""Free-text answer parsers for the guided medicine wizard.

All functions are pure: the result depends on the answer string alone.
"""

import re

from ebaston.intents import WEEKDAY_CODES
from ebaston.text import tokenize, turkish_lower

ALL_DAYS = list(WEEKDAY_CODES)
DEFAULT_TIMES = ["08:00"]

EVERY_DAY_PHRASES = ["her gün", "hergün", "günlük", "her gun"]
WEEKDAY_PHRASES = ["hafta içi", "iş günü", "iş günleri"]
WEEKEND_PHRASES = ["hafta sonu", "haftasonu"]

# Longest key first so "pazartesi" never reads as "pazar", "cumartesi" as "cuma"
DAY_NAMES = sorted(
    {
        "pazartesi": "Pzt",
        "salı": "Sal",
        "sali": "Sal",
        "çarşamba": "Çar",
        "carsamba": "Çar",
        "perşembe": "Per",
        "persembe": "Per",
        "cuma": "Cum",
        "cumartesi": "Cmt",
        "pazar": "Paz",
    }.items(),
    key=lambda kv: len(kv[0]),
    reverse=True,
)

# Checked in this order; output keeps it
MEAL_TIMES = [
    (["sabah"], "08:00"),
    (["öğle", "öğlen"], "12:00"),
    (["ikindi"], "15:00"),
    (["akşam"], "20:00"),
    (["gece"], "22:00"),
]

_UNITS = {
    "bir": 1, "iki": 2, "üç": 3, "dört": 4, "beş": 5,
    "altı": 6, "yedi": 7, "sekiz": 8, "dokuz": 9,
}
_TENS = {"on": 10, "yirmi": 20}

_CLOCK_RE = re.compile(r"\b([01]?\d|2[0-3])[:.]([0-5]\d)\b")
_HOUR_RE = re.compile(r"\b(\d{1,2})\b")

SKIP_WORDS = ["hayır", "geç", "yok", "boş", "atla", "pas"]


def parse_days(text: str) -> list[str]:
    """Weekday codes mentioned in the answer; all seven when nothing is recognised."""
    lower = turkish_lower(text)
    if not lower:
        return list(ALL_DAYS)
    if any(p in lower for p in EVERY_DAY_PHRASES):
        return list(ALL_DAYS)
    if any(p in lower for p in WEEKDAY_PHRASES):
        return ALL_DAYS[:5]
    if any(p in lower for p in WEEKEND_PHRASES):
        return ALL_DAYS[5:]

    found: list[str] = []
    for token in tokenize(lower):
        for name, code in DAY_NAMES:
            if token.startswith(name):
                if code not in found:
                    found.append(code)
                break
    return found or list(ALL_DAYS)


def _spoken_hours(tokens: list[str]) -> list[int]:
    """Hours 1-23 written as Turkish number words ("on bir" -> 11)."""
    hours = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in _TENS:
            value = _TENS[token]
            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if nxt in _UNITS and value + _UNITS[nxt] <= 23:
                value += _UNITS[nxt]
                i += 1
            hours.append(value)
        elif token in _UNITS:
            hours.append(_UNITS[token])
        i += 1
    return hours


def parse_times(text: str) -> list[str]:
    """Clock times ("HH:MM") from meal words, spoken hours and digits; ["08:00"] if none."""
    lower = turkish_lower(text)
    if not lower:
        return list(DEFAULT_TIMES)

    times: list[str] = []

    def add(value: str):
        if value not in times:
            times.append(value)

    for keywords, value in MEAL_TIMES:
        if any(k in lower for k in keywords):
            add(value)

    for hour in _spoken_hours(tokenize(lower)):
        add(f"{hour:02d}:00")

    for hour, minute in _CLOCK_RE.findall(lower):
        add(f"{int(hour):02d}:{minute}")
    rest = _CLOCK_RE.sub(" ", lower)

    for match in _HOUR_RE.findall(rest):
        hour = int(match)
        if 0 <= hour <= 23:
            add(f"{hour:02d}:00")

    return times or list(DEFAULT_TIMES)


def is_skip_answer(text: str) -> bool:
    """True when a note answer means "no note"."""
    lower = turkish_lower(text)
    return any(word in lower for word in SKIP_WORDS)
