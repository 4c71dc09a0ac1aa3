"""Structured intents: one variant per action kind.

Provider JSON is validated here, at the parse boundary. A payload without the
fields its action requires becomes ``Unknown`` before it reaches the dispatcher.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

SOURCE_LOCAL = "local"
SOURCE_FALLBACK = "fallback"

# Fixed order: the local matcher checks screens in this order.
SCREENS = (
    "Ana Sayfa",
    "İlaçlarım",
    "Sağlığım",
    "Ailem",
    "Planlarım",
    "İstatistik",
    "AI Asistan",
    "Profil",
)

WEEKDAY_CODES = ("Pzt", "Sal", "Çar", "Per", "Cum", "Cmt", "Paz")

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value) -> "Confidence":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.LOW


@dataclass(frozen=True)
class KnownMedicine:
    id: int
    name: str
    dose: str = ""
    days: tuple[str, ...] = ()


@dataclass(frozen=True)
class FamilyMember:
    id: int
    name: str
    phone: str | None = None


@dataclass(frozen=True, kw_only=True)
class Intent:
    """Common fields of every resolved intent."""

    action = "unknown"

    confidence: Confidence = Confidence.LOW
    source: str = SOURCE_FALLBACK
    confirm_message: str = ""

    @property
    def is_low(self) -> bool:
        return self.confidence is Confidence.LOW


@dataclass(frozen=True, kw_only=True)
class Navigate(Intent):
    action = "navigate"
    target: str


@dataclass(frozen=True, kw_only=True)
class MarkMedicine(Intent):
    action = "markMedicine"
    medicine_name: str


@dataclass(frozen=True, kw_only=True)
class CallFamily(Intent):
    action = "callFamily"
    member_name: str
    phone: str | None = None


@dataclass(frozen=True, kw_only=True)
class AddMedicine(Intent):
    action = "addMedicine"
    medicine_name: str
    dose: str = ""
    days: tuple[str, ...] | None = None
    times: tuple[str, ...] | None = None
    note: str = ""


@dataclass(frozen=True, kw_only=True)
class AddPlan(Intent):
    action = "addPlan"
    title: str
    date: str | None = None
    time: str | None = None
    note: str = ""


@dataclass(frozen=True, kw_only=True)
class Unknown(Intent):
    action = "unknown"


def fallback_intent() -> Unknown:
    """The degraded result for provider errors and unparseable completions."""
    return Unknown(confidence=Confidence.LOW, source=SOURCE_FALLBACK)


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _codes(value) -> tuple[str, ...] | None:
    if not isinstance(value, list):
        return None
    kept = []
    for item in value:
        if item in WEEKDAY_CODES and item not in kept:
            kept.append(item)
    return tuple(kept) or None


def _clock_times(value) -> tuple[str, ...] | None:
    if not isinstance(value, list):
        return None
    kept = []
    for item in value:
        item = str(item).strip()
        if _TIME_RE.match(item) and item not in kept:
            kept.append(item)
    return tuple(kept) or None


def intent_from_payload(payload: dict, source: str) -> Intent:
    """Build an intent from a provider's JSON object.

    Unsupported actions and actions missing a required field become
    ``Unknown``, keeping the reported confidence and source for logging.
    """
    if not isinstance(payload, dict):
        return fallback_intent()

    common = {
        "confidence": Confidence.parse(payload.get("confidence")),
        "source": source,
        "confirm_message": _text(payload, "confirmMessage"),
    }
    action = payload.get("action")

    if action == "navigate" and _text(payload, "target"):
        return Navigate(target=_text(payload, "target"), **common)

    if action == "markMedicine" and _text(payload, "medicineName"):
        return MarkMedicine(medicine_name=_text(payload, "medicineName"), **common)

    if action == "callFamily" and _text(payload, "memberName"):
        return CallFamily(
            member_name=_text(payload, "memberName"),
            phone=_text(payload, "phone") or None,
            **common,
        )

    if action == "addMedicine" and _text(payload, "medicineName"):
        return AddMedicine(
            medicine_name=_text(payload, "medicineName"),
            dose=_text(payload, "dose"),
            days=_codes(payload.get("days")),
            times=_clock_times(payload.get("times")),
            note=_text(payload, "note"),
            **common,
        )

    if action == "addPlan" and _text(payload, "title"):
        date = _text(payload, "date")
        time = _text(payload, "time")
        return AddPlan(
            title=_text(payload, "title"),
            date=date if _DATE_RE.match(date) else None,
            time=time if _TIME_RE.match(time) else None,
            note=_text(payload, "note"),
            **common,
        )

    return Unknown(confidence=common["confidence"], source=source)
