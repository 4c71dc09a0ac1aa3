"""Instruction prompts for the remote intent resolver and name correction."""

from datetime import date, timedelta

from ebaston.intents import SCREENS, FamilyMember, KnownMedicine

COMMAND_PROMPT_TEMPLATE = """\
Sen bir Türkçe sesli komut işleyicisisin. Kullanıcının ne yapmak istediğini analiz et.

Mevcut ilaçlar: {medicines}
Aile üyeleri: {members}

Desteklenen aksiyonlar:
- navigate: Ekrana git. target = ekran adı ({screens})
- markMedicine: İlaç alındı işaretle. medicineName = ilaç adı
- callFamily: Aile üyesini ara. memberName = kişi adı, phone = telefon numarası
- addMedicine: Yeni ilaç ekle. medicineName, dose, days (dizi: Pzt, Sal, Çar, Per, Cum, Cmt, Paz), times (dizi, HH:MM), note
- addPlan: Plan/randevu ekle. title, date (YYYY-MM-DD), time (HH:MM), note
- unknown: Anlaşılamadı

Her yanıtta confidence alanı ver: high, medium veya low. Emin değilsen action="unknown" ver.

Bugünün tarihi: {today}
Yarın: {tomorrow}

SADECE JSON döndür. Markdown kullanma. Örnek:
{{"action": "navigate", "target": "İlaçlarım", "confidence": "high", "confirmMessage": "İlaçlarım açılıyor"}}
{{"action": "markMedicine", "medicineName": "Aspirin", "confidence": "high", "confirmMessage": "Aspirin alındı olarak işaretleyeyim mi?"}}
{{"action": "callFamily", "memberName": "Ayşe", "phone": "05321234567", "confidence": "high", "confirmMessage": "Ayşe'yi arıyorum"}}
{{"action": "addPlan", "title": "Doktor Randevusu", "date": "{tomorrow}", "time": "15:00", "note": "", "confidence": "high", "confirmMessage": "Yarın saat 15:00'e Doktor Randevusu ekleyeyim mi?"}}
{{"action": "addMedicine", "medicineName": "Aspirin", "dose": "500mg", "days": ["Pzt","Sal","Çar","Per","Cum","Cmt","Paz"], "times": ["08:00","20:00"], "confidence": "high", "confirmMessage": "Aspirin 500mg, her gün sabah-akşam ekleyeyim mi?"}}"""

MEDICINE_NAME_PROMPT = """\
Sen bir Türk eczacısın. Kullanıcının söylediği ilaç adını düzelt.
Türkiye'de yaygın ilaçlar: Metformin, Coraspin, Aspirin, Majezik, Neopril, Diovan, Coversyl, Beloc, Concor, Lipitor, Crestor, Glucophage, Norvasc, Lasix vb.
SADECE JSON döndür, başka hiçbir şey yazma. Markdown kullanma."""


def _medicine_list(medicines: list[KnownMedicine]) -> str:
    return ", ".join(m.name for m in medicines) or "yok"


def _member_list(members: list[FamilyMember]) -> str:
    return ", ".join(f"{m.name} ({m.phone or 'telefon yok'})" for m in members) or "yok"


def build_command_prompt(
    medicines: list[KnownMedicine],
    members: list[FamilyMember],
    today: date,
) -> str:
    """System prompt with the user's entities and dates for relative phrases."""
    return COMMAND_PROMPT_TEMPLATE.format(
        medicines=_medicine_list(medicines),
        members=_member_list(members),
        screens=", ".join(SCREENS),
        today=today.isoformat(),
        tomorrow=(today + timedelta(days=1)).isoformat(),
    )


def build_command_message(text: str) -> str:
    return f'Kullanıcı dedi: "{text}"'


def build_medicine_name_message(spoken: str) -> str:
    return (
        f'"{spoken}" - Bu ilaç adını düzelt:\n'
        '{"isValid": true, "correctedName": "İlaç İsmi", "confidence": "high", '
        '"suggestion": "Şunu mu demek istediniz?"}'
    )
