"""Global voice assistant: one utterance in, one action (or a confirmation) out.

Resolution order per utterance, first hit wins:
  1. local navigation with a navigation verb
  2. local "took my medicine"
  3. local "call <family member>"
  4. remote resolver result, validated per action
  5. unknown-command reply

Adding a medicine or a plan never commits directly: it waits in
AWAITING_CONFIRMATION until confirm() or cancel().
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ebaston.database import DatabaseManager
from ebaston.intents import (
    SCREENS,
    AddMedicine,
    AddPlan,
    CallFamily,
    Confidence,
    FamilyMember,
    Intent,
    KnownMedicine,
    MarkMedicine,
    Navigate,
)
from ebaston.logging_config import get_logger
from ebaston.notifications import ReminderScheduler
from ebaston.orchestrator import match_call, match_mark_medicine, match_navigation
from ebaston.parsers import ALL_DAYS, DEFAULT_TIMES
from ebaston.resolver import RemoteIntentResolver
from ebaston.session import SessionToken, VoiceModuleCoordinator
from ebaston.speech import (
    NO_SPEECH,
    PERMISSION_DENIED,
    CaptureError,
    CaptureOutcome,
    Final,
    ListeningTask,
    Recognizer,
    Speaker,
)
from ebaston.text import turkish_lower

log = get_logger(__name__)

DEFAULT_AUTO_CLOSE = {
    "navigate": 1.5,
    "marked": 2.0,
    "call": 1.5,
    "added": 2.0,
    "cancelled": 1.5,
    "unknown": 3.0,
}

DEFAULT_PLAN_TIME = "09:00"

UNKNOWN_REPLY = "Komutu anlayamadım."
UNKNOWN_SPOKEN = (
    "Komutu anlayamadım. Şu komutları deneyebilirsiniz: "
    "İlacı aldım, Birini ara, İlaç ekle veya Plan ekle."
)

# "hayır, ekleme" contains "ekle": refusals are checked first
_NO_WORDS = ["hayır", "iptal", "vazgeç", "istemiyorum", "ekleme"]
_YES_WORDS = ["evet", "onayla", "onaylıyorum", "tamam", "ekle", "olur"]


class AssistantState(str, Enum):
    CLOSED = "closed"
    IDLE = "idle"
    LISTENING = "listening"
    RESOLVING = "resolving"
    EXECUTING = "executing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class AssistantBusyError(RuntimeError):
    """Raised when a second utterance arrives while one is still being handled."""


class Navigator(Protocol):
    def navigate(self, screen: str) -> None: ...


class UrlOpener(Protocol):
    def can_open(self, uri: str) -> bool: ...

    def open(self, uri: str) -> None: ...


@dataclass(frozen=True)
class PendingAction:
    message: str
    intent: AddMedicine | AddPlan

    @property
    def action_type(self) -> str:
        return self.intent.action


def resolve_screen(target: str) -> str | None:
    """Map a provider-reported target onto the fixed screen set."""
    if target in SCREENS:
        return target
    lowered = turkish_lower(target)
    for screen in SCREENS:
        name = turkish_lower(screen)
        if name == lowered or name in lowered or (lowered and lowered in name):
            return screen
    return None


def find_medicine(medicines: list[KnownMedicine], name: str) -> KnownMedicine | None:
    """Exact name first, then a known name contained in the spoken one."""
    spoken = turkish_lower(name)
    for med in medicines:
        if turkish_lower(med.name) == spoken:
            return med
    for med in medicines:
        if med.name and turkish_lower(med.name) in spoken:
            return med
    return None


def find_member(members: list[FamilyMember], name: str) -> FamilyMember | None:
    spoken = turkish_lower(name)
    for member in members:
        if turkish_lower(member.name) == spoken:
            return member
    for member in members:
        if member.name and turkish_lower(member.name) in spoken:
            return member
    return None


def _confirm_question(message: str) -> str:
    if message.endswith(("?", ".", "!")):
        return f"{message} Onaylıyor musunuz?"
    return f"{message}. Onaylıyor musunuz?"


class GlobalVoiceAssistant:
    """The always-available voice command panel."""

    OWNER = "global"

    def __init__(
        self,
        db: DatabaseManager,
        resolver: RemoteIntentResolver,
        speaker: Speaker,
        recognizer: Recognizer,
        coordinator: VoiceModuleCoordinator,
        navigator: Navigator,
        url_opener: UrlOpener,
        scheduler: ReminderScheduler | None = None,
        user_id: str = "local",
        config: dict | None = None,
        on_close: Callable[[], None] | None = None,
        today: Callable[[], date] = date.today,
    ):
        config = config or {}
        assistant_cfg = config.get("assistant", {})
        self.db = db
        self.resolver = resolver
        self.speaker = speaker
        self.recognizer = recognizer
        self.coordinator = coordinator
        self.navigator = navigator
        self.url_opener = url_opener
        self.scheduler = scheduler
        self.user_id = user_id
        self.locale = config.get("locale", "tr-TR")
        self.speech_rate = assistant_cfg.get("speech_rate", 0.9)
        self.listen_timeout = assistant_cfg.get("listen_timeout")
        self.auto_close = {**DEFAULT_AUTO_CLOSE, **assistant_cfg.get("auto_close", {})}
        self.on_close = on_close
        self._today = today

        self._token: SessionToken | None = None
        self._listening: ListeningTask | None = None
        self._close_handle: asyncio.TimerHandle | None = None
        self._busy = False
        self._reset_session()

    def _reset_session(self):
        self.state = AssistantState.CLOSED
        self.transcript = ""
        self.partial_text = ""
        self.response = ""
        self.error = ""
        self.pending: PendingAction | None = None
        self.medicines: list[KnownMedicine] = []
        self.members: list[FamilyMember] = []

    @property
    def is_open(self) -> bool:
        return self._token is not None and self._token.active

    @property
    def closing(self) -> bool:
        """An auto-close is scheduled."""
        return self._close_handle is not None

    def _require_open(self):
        if not self.is_open:
            raise RuntimeError("Voice assistant is not open")

    # -- Lifecycle --

    async def open(self):
        """Take the voice session and load the known-entity snapshot once."""
        if self.is_open:
            return
        self._token = self.coordinator.acquire(self.OWNER)
        self.state = AssistantState.IDLE
        try:
            self.medicines = self.db.fetch_medicines(self.user_id)
            self.members = self.db.fetch_family_members(self.user_id)
        except SQLAlchemyError as e:
            log.error("Loading user data failed: %s", e)
            self.error = "Kullanıcı verileri yüklenemedi."
        log.info(
            "Assistant opened: %d medicines, %d family members",
            len(self.medicines), len(self.members),
        )

    def close(self):
        """Stop speech in and out, drop the session and reset every field."""
        self._cancel_scheduled_close()
        if self._listening is not None:
            self._listening.cancel()
            self._listening = None
        self.recognizer.stop()
        self.speaker.stop()
        was_open = self._token is not None
        if self._token is not None:
            self._token.release()
            self._token = None
        self._busy = False
        self._reset_session()
        if was_open:
            log.info("Assistant closed")
            if self.on_close:
                self.on_close()

    # -- Listening --

    def _on_partial(self, text: str):
        self.partial_text = text

    async def listen(self) -> CaptureOutcome:
        """Run one listening turn and handle its final transcript."""
        self._require_open()
        if self._busy or self.state not in (AssistantState.IDLE, AssistantState.AWAITING_CONFIRMATION):
            raise AssistantBusyError(f"Cannot listen while {self.state.value}")

        token = self._token
        self._cancel_scheduled_close()
        resume_state = self.state
        self.transcript = self.partial_text = self.response = self.error = ""
        self.state = AssistantState.LISTENING
        self._listening = ListeningTask(
            self.recognizer, self.locale, self.listen_timeout, on_partial=self._on_partial,
        )
        outcome = await self._listening.result()
        self._listening = None
        if not token.active:
            return outcome

        self.state = resume_state
        self.partial_text = ""
        if isinstance(outcome, Final):
            if outcome.text.strip():
                await self.handle_command(outcome.text.strip())
            else:
                await self._fail("Konuşma algılanamadı, tekrar deneyin.")
        elif isinstance(outcome, CaptureError):
            await self._fail(self._capture_error_message(outcome))
        return outcome

    def stop_listening(self):
        if self._listening is not None:
            self._listening.cancel()

    @staticmethod
    def _capture_error_message(outcome: CaptureError) -> str:
        if outcome.kind == NO_SPEECH:
            return "Ses algılanamadı, tekrar deneyin."
        if outcome.kind == PERMISSION_DENIED:
            return "Mikrofon izni verilmedi."
        return f"Hata: {outcome.detail or outcome.kind}"

    # -- Dispatch --

    async def handle_command(self, text: str):
        """Resolve one utterance and act on it. Not reentrant."""
        self._require_open()
        if self._busy:
            raise AssistantBusyError("A command is already being processed")
        self._cancel_scheduled_close()
        self._busy = True
        self.transcript = text
        try:
            if self.state is AssistantState.AWAITING_CONFIRMATION:
                await self._answer_confirmation(text)
            else:
                self.state = AssistantState.RESOLVING
                await self._dispatch(text)
        finally:
            self._busy = False
            if self.is_open and self.state in (AssistantState.RESOLVING, AssistantState.EXECUTING):
                self.state = AssistantState.IDLE

    async def _dispatch(self, text: str):
        nav = match_navigation(text)
        if nav is not None and nav.confidence is Confidence.HIGH:
            await self._do_navigate(nav.target)
            return

        med = match_mark_medicine(text, self.medicines)
        if med is not None:
            await self._do_mark_medicine(med.medicine_name)
            return

        call = match_call(text, self.members)
        if call is not None:
            await self._do_call(call.member_name, call.phone)
            return

        token = self._token
        intent = await self.resolver.resolve(text, self.medicines, self.members, self._today())
        if not token.active:
            log.info("Assistant closed while resolving, dropping %s", intent.action)
            return

        if not await self._apply(intent, nav):
            log.info("Unhandled intent %s (%s)", intent.action, intent.confidence.value)
            await self._do_unknown()

    async def _apply(self, intent: Intent, nav: Navigate | None) -> bool:
        if isinstance(intent, Navigate):
            if intent.is_low:
                return False
            screen = resolve_screen(intent.target) or (nav.target if nav else None)
            if screen is None:
                return False
            await self._do_navigate(screen)
            return True

        if isinstance(intent, MarkMedicine):
            await self._do_mark_medicine(intent.medicine_name)
            return True

        if isinstance(intent, CallFamily):
            await self._do_call(intent.member_name, intent.phone)
            return True

        if isinstance(intent, AddMedicine) and not intent.is_low:
            await self._show_confirm(
                intent.confirm_message or f"{intent.medicine_name} ekleyeyim mi?", intent,
            )
            return True

        if isinstance(intent, AddPlan) and not intent.is_low:
            await self._show_confirm(
                intent.confirm_message or f"{intent.title} ekleyeyim mi?", intent,
            )
            return True

        return False

    # -- Feedback --

    async def _speak(self, text: str):
        await self.speaker.speak(text, rate=self.speech_rate)

    async def _finish(self, display: str, spoken: str, close_key: str):
        """Success path: one on-screen line, one utterance, then auto-close."""
        token = self._token
        self.response = display
        self.error = ""
        await self._speak(spoken)
        if token is not None and token.active:
            self._schedule_close(close_key)

    async def _fail(self, message: str):
        """Error path: stays open so the user can retry or close."""
        self.response = ""
        self.error = message
        await self._speak(message)

    async def _do_unknown(self):
        self.state = AssistantState.IDLE
        await self._finish(UNKNOWN_REPLY, UNKNOWN_SPOKEN, "unknown")

    def _schedule_close(self, key: str):
        self._cancel_scheduled_close()
        delay = self.auto_close.get(key, 2.0)
        token = self._token
        self._close_handle = asyncio.get_running_loop().call_later(
            delay, self._auto_close, token,
        )

    def _auto_close(self, token: SessionToken):
        self._close_handle = None
        if token.active and token is self._token and not self._busy:
            self.close()

    def _cancel_scheduled_close(self):
        if self._close_handle is not None:
            self._close_handle.cancel()
            self._close_handle = None

    # -- Actions --

    async def _do_navigate(self, screen: str):
        self.state = AssistantState.EXECUTING
        try:
            self.navigator.navigate(screen)
        except Exception as e:
            log.error("Navigation to %s failed: %s", screen, e)
            await self._fail(f"{screen} açılamadı.")
            return
        message = f"{screen} açılıyor"
        await self._finish(message, message, "navigate")

    async def _do_mark_medicine(self, medicine_name: str):
        self.state = AssistantState.EXECUTING
        med = find_medicine(self.medicines, medicine_name)
        if med is None:
            await self._fail(f"{medicine_name} ilaçlarınızda bulunamadı.")
            return
        try:
            self.db.mark_medicine_taken(self.user_id, med.id, self._today())
        except SQLAlchemyError as e:
            log.error("Marking %s taken failed: %s", med.name, e)
            await self._fail("İşaretleme sırasında hata oluştu.")
            return
        await self._finish(
            f"{med.name} alındı olarak işaretlendi ✓",
            f"{med.name} alındı olarak işaretlendi.",
            "marked",
        )

    async def _do_call(self, member_name: str, phone: str | None):
        self.state = AssistantState.EXECUTING
        member = find_member(self.members, member_name)
        if member is not None:
            member_name, phone = member.name, member.phone
        if not phone:
            await self._fail(f"{member_name}'in telefon numarası kayıtlı değil.")
            return

        token = self._token
        self.response = f"{member_name} aranıyor..."
        await self._speak(f"{member_name} arıyorum.")
        if not token.active:
            return

        uri = "tel:" + re.sub(r"\s", "", phone)
        try:
            can_open = self.url_opener.can_open(uri)
            if can_open:
                self.url_opener.open(uri)
        except Exception as e:
            log.error("Opening %s failed: %s", uri, e)
            await self._fail("Arama başlatılamadı.")
            return
        if not can_open:
            await self._fail("Telefon uygulaması açılamadı.")
            return
        log.info("Calling %s", member_name)
        self._schedule_close("call")

    async def _show_confirm(self, message: str, intent: AddMedicine | AddPlan):
        self.pending = PendingAction(message=message, intent=intent)
        self.state = AssistantState.AWAITING_CONFIRMATION
        self.response = message
        self.error = ""
        await self._speak(_confirm_question(message))

    async def _answer_confirmation(self, text: str):
        lower = turkish_lower(text)
        if any(w in lower for w in _NO_WORDS):
            await self._cancel()
        elif any(w in lower for w in _YES_WORDS):
            await self._confirm()
        else:
            self.response = self.pending.message
            await self._speak("Lütfen evet ya da hayır deyin.")

    async def confirm(self) -> bool:
        """Commit the pending medicine or plan. False when nothing is pending."""
        self._require_open()
        if self._busy:
            raise AssistantBusyError("A command is already being processed")
        self._busy = True
        try:
            return await self._confirm()
        finally:
            self._busy = False
            if self.is_open and self.state is AssistantState.EXECUTING:
                self.state = AssistantState.IDLE

    async def cancel(self) -> bool:
        """Drop the pending action. False when nothing is pending."""
        self._require_open()
        if self._busy:
            raise AssistantBusyError("A command is already being processed")
        self._busy = True
        try:
            return await self._cancel()
        finally:
            self._busy = False

    async def _confirm(self) -> bool:
        pending = self.pending
        if pending is None:
            return False
        self.pending = None
        self.state = AssistantState.EXECUTING
        self.response = "İşlem yapılıyor..."
        if isinstance(pending.intent, AddMedicine):
            await self._do_add_medicine(pending.intent)
        else:
            await self._do_add_plan(pending.intent)
        return True

    async def _cancel(self) -> bool:
        if self.pending is None:
            return False
        self.pending = None
        self.state = AssistantState.IDLE
        await self._finish("İptal edildi.", "İptal edildi.", "cancelled")
        return True

    async def _do_add_medicine(self, intent: AddMedicine):
        try:
            saved = self.db.insert_medicine(
                self.user_id,
                name=intent.medicine_name,
                dose=intent.dose,
                days=list(intent.days or ALL_DAYS),
                times=list(intent.times or DEFAULT_TIMES),
                note=intent.note,
            )
        except SQLAlchemyError as e:
            log.error("Adding medicine %s failed: %s", intent.medicine_name, e)
            await self._fail("İlaç eklenirken hata oluştu.")
            return
        if self.scheduler is not None:
            self._schedule_reminders(self.scheduler.schedule_medicine, saved)
        message = f"{intent.medicine_name} ilaçlarınıza eklendi."
        await self._finish(message, message, "added")

    async def _do_add_plan(self, intent: AddPlan):
        try:
            saved = self.db.insert_plan(
                self.user_id,
                title=intent.title,
                plan_date=intent.date or self._today().isoformat(),
                plan_time=intent.time or DEFAULT_PLAN_TIME,
                note=intent.note,
            )
        except SQLAlchemyError as e:
            log.error("Adding plan %s failed: %s", intent.title, e)
            await self._fail("Plan eklenirken hata oluştu.")
            return
        if self.scheduler is not None:
            self._schedule_reminders(self.scheduler.schedule_plan, saved)
        message = f"{intent.title} planlarınıza eklendi."
        await self._finish(message, message, "added")

    @staticmethod
    def _schedule_reminders(schedule, record: dict):
        try:
            schedule(record)
        except (SQLAlchemyError, ValueError) as e:
            log.warning("Reminder scheduling failed for %s: %s", record.get("id"), e)
