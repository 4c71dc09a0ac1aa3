"""Local intent matcher - keyword containment against fixed phrase lists.

Strategy: substring checks (0ms, no I/O) for the three commands that can be
recognised without a model: navigation, "I took my medicine" and "call X".
Anything else returns None and the caller decides whether to ask the remote
resolver.
"""

from ebaston.intents import (
    SOURCE_LOCAL,
    CallFamily,
    Confidence,
    FamilyMember,
    Intent,
    KnownMedicine,
    MarkMedicine,
    Navigate,
    SCREENS,
)
from ebaston.logging_config import get_logger
from ebaston.text import turkish_lower

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Keyword sets -- screens are checked in SCREENS order, first hit wins
# ---------------------------------------------------------------------------

SCREEN_KEYWORDS: dict[str, list[str]] = {
    "Ana Sayfa": ["ana sayfa", "anasayfa", "ana ekran", "eve git", "eve dön", "başa dön"],
    "İlaçlarım": ["ilaçlarım", "ilaçlarıma", "ilaç sayfası", "ilaç ekranı"],
    "Sağlığım": ["sağlığım", "sağlığıma", "sağlık sayfası"],
    "Ailem": ["ailem", "aileme", "aile sayfası"],
    "Planlarım": ["planlarım", "planlarıma", "plan sayfası", "takvim"],
    "İstatistik": ["istatistik", "istatistikler", "grafik", "rapor"],
    "AI Asistan": ["ai asistan", "yapay zeka", "sohbet", "chat"],
    "Profil": ["profilim", "profilime", "profil sayfası", "ayarlar"],
}

NAV_VERBS = ["git", "aç", "gidelim", "gir", "geç", "göster", "bak", "götür", "dön"]

TAKEN_TRIGGERS = ["aldım", "içtim", "kullandım", "alındı", "tamam", "içildi"]

CALL_TRIGGERS = ["ara", "araa", "arıyorum", "çağır", "telefon et", "bağlan"]


def _contains_any(lower: str, phrases: list[str]) -> str | None:
    for phrase in phrases:
        if phrase in lower:
            return phrase
    return None


def match_navigation(text: str) -> Navigate | None:
    """Screen keyword -> Navigate; high confidence only with a navigation verb."""
    lower = turkish_lower(text)
    has_verb = _contains_any(lower, NAV_VERBS) is not None
    for screen in SCREENS:
        keyword = _contains_any(lower, SCREEN_KEYWORDS[screen])
        if keyword:
            log.debug("Local navigate: %s (matched '%s', verb=%s)", screen, keyword, has_verb)
            return Navigate(
                target=screen,
                confidence=Confidence.HIGH if has_verb else Confidence.MEDIUM,
                source=SOURCE_LOCAL,
            )
    return None


def match_mark_medicine(text: str, medicines: list[KnownMedicine]) -> MarkMedicine | None:
    """Taken trigger + a known medicine name contained in the text."""
    lower = turkish_lower(text)
    if not _contains_any(lower, TAKEN_TRIGGERS):
        return None
    for med in medicines or ():
        if med.name and turkish_lower(med.name) in lower:
            log.debug("Local markMedicine: %s", med.name)
            return MarkMedicine(
                medicine_name=med.name, confidence=Confidence.HIGH, source=SOURCE_LOCAL,
            )
    return None


def match_call(text: str, members: list[FamilyMember]) -> CallFamily | None:
    """Call trigger + a known family member name contained in the text."""
    lower = turkish_lower(text)
    if not _contains_any(lower, CALL_TRIGGERS):
        return None
    for member in members or ():
        if member.name and turkish_lower(member.name) in lower:
            log.debug("Local callFamily: %s", member.name)
            return CallFamily(
                member_name=member.name,
                phone=member.phone,
                confidence=Confidence.HIGH,
                source=SOURCE_LOCAL,
            )
    return None


def match_locally(
    text: str,
    medicines: list[KnownMedicine] | None = None,
    members: list[FamilyMember] | None = None,
) -> Intent | None:
    """First local match in order navigation, medicine-taken, call; else None."""
    return (
        match_navigation(text)
        or match_mark_medicine(text, medicines or [])
        or match_call(text, members or [])
    )
