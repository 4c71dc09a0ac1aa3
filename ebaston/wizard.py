"""Five-question voice wizard that adds one medicine.

Each step is ask, listen, acknowledge. The name answer goes through a
best-effort remote correction, the note answer may be skipped, and the
days and times answers are turned into structured values only at save.
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from ebaston.database import DatabaseManager
from ebaston.intents import Confidence
from ebaston.logging_config import get_logger
from ebaston.notifications import ReminderScheduler
from ebaston.parsers import is_skip_answer, parse_days, parse_times
from ebaston.providers import CompletionError
from ebaston.resolver import NameCorrection, RemoteIntentResolver
from ebaston.session import SessionToken, VoiceModuleCoordinator
from ebaston.speech import (
    NO_SPEECH,
    PERMISSION_DENIED,
    CaptureError,
    CaptureOutcome,
    Cancelled,
    ListeningTask,
    Recognizer,
    Speaker,
)

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class WizardStep:
    key: str
    question: str


STEPS = (
    WizardStep("name", "İlacın adı nedir?"),
    WizardStep("dose", "Dozu nedir? Örneğin beş yüz miligram."),
    WizardStep("days", "Hangi günler alacaksınız? Örneğin her gün, ya da Pazartesi Çarşamba Cuma."),
    WizardStep("times", "Hangi saatlerde alacaksınız? Örneğin sabah sekiz, akşam sekiz."),
    WizardStep("note", 'Bu ilaç ne için? Geçmek için "hayır" deyin.'),
)

MED_COLORS = ["#E07B4F", "#4A9B8E", "#6B5B8E", "#F0A500", "#E05050", "#4361EE"]
ICONS = ["💊", "🔵", "🟡", "🟢", "❤️", "🔶"]

GREETING = "Merhaba! Size birkaç soru soracağım."


class WizardState(str, Enum):
    NOT_STARTED = "not_started"
    ASKING = "asking"
    LISTENING = "listening"
    PROCESSING = "processing"
    SAVING = "saving"
    SAVE_FAILED = "save_failed"
    DONE = "done"


async def best_effort(awaitable: Awaitable[T], fallback: T, timeout: float | None = None) -> T:
    """Await an enrichment call, returning ``fallback`` if it fails or times out."""
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        log.warning("Best-effort call timed out after %ss", timeout)
    except CompletionError as e:
        log.warning("Best-effort call failed: %s", e)
    return fallback


class VoiceMedicineWizard:
    OWNER = "medicine"

    def __init__(
        self,
        db: DatabaseManager,
        resolver: RemoteIntentResolver,
        speaker: Speaker,
        recognizer: Recognizer,
        coordinator: VoiceModuleCoordinator,
        scheduler: ReminderScheduler | None = None,
        user_id: str = "local",
        config: dict | None = None,
        rng: random.Random | None = None,
        on_saved: Callable[[dict], None] | None = None,
        on_close: Callable[[], None] | None = None,
    ):
        config = config or {}
        wizard_cfg = config.get("wizard", {})
        self.db = db
        self.resolver = resolver
        self.speaker = speaker
        self.recognizer = recognizer
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.user_id = user_id
        self.locale = config.get("locale", "tr-TR")
        self.speech_rate = wizard_cfg.get("speech_rate", 0.85)
        self.listen_timeout = wizard_cfg.get("listen_timeout")
        self.name_correction_timeout = wizard_cfg.get("name_correction_timeout", 8)
        self.rng = rng or random.Random()
        self.on_saved = on_saved
        self.on_close = on_close

        self._token: SessionToken | None = None
        self._listening: ListeningTask | None = None
        self._reset_session()

    def _reset_session(self):
        self.state = WizardState.NOT_STARTED
        self.step_index = 0
        self.answers: dict[str, str] = {}
        self.transcript = ""
        self.partial_text = ""
        self.message = ""
        self.error = ""

    @property
    def is_open(self) -> bool:
        return self._token is not None and self._token.active

    @property
    def current_step(self) -> WizardStep:
        return STEPS[self.step_index]

    @property
    def progress(self) -> str:
        return f"Adım {self.step_index + 1} / {len(STEPS)}"

    async def _say(self, text: str):
        self.message = text
        await self.speaker.speak(text, rate=self.speech_rate)

    # -- Lifecycle --

    async def start(self):
        """Greet and walk through the steps until one needs the user again."""
        if self.is_open:
            return
        self._token = self.coordinator.acquire(self.OWNER)
        token = self._token
        log.info("Medicine wizard started")
        await self._say(GREETING)
        if token.active:
            await self._run()

    async def retry(self):
        """Re-ask the current step, or re-attempt a failed save."""
        if not self.is_open:
            raise RuntimeError("Medicine wizard is not open")
        self.error = ""
        if self.state is WizardState.SAVE_FAILED:
            await self.save()
        else:
            await self._run()

    def close(self):
        """Abandon the wizard: nothing is written and every field resets."""
        if self._listening is not None:
            self._listening.cancel()
            self._listening = None
        self.recognizer.stop()
        self.speaker.stop()
        was_open = self._token is not None
        if self._token is not None:
            self._token.release()
            self._token = None
        self._reset_session()
        if was_open:
            log.info("Medicine wizard closed")
            if self.on_close:
                self.on_close()

    # -- Steps --

    async def _run(self):
        token = self._token
        while token.active and len(self.answers) < len(STEPS):
            outcome = await self._ask_and_listen()
            if not token.active:
                return
            if isinstance(outcome, Cancelled):
                self.state = WizardState.ASKING
                return
            if isinstance(outcome, CaptureError):
                await self._report_capture_error(outcome)
                return
            if not await self.handle_answer(outcome.text):
                return

    async def _ask_and_listen(self) -> CaptureOutcome:
        token = self._token
        self.state = WizardState.ASKING
        self.transcript = self.partial_text = ""
        await self._say(self.current_step.question)
        if not token.active:
            return Cancelled()

        self.state = WizardState.LISTENING
        self._listening = ListeningTask(
            self.recognizer, self.locale, self.listen_timeout, on_partial=self._on_partial,
        )
        outcome = await self._listening.result()
        self._listening = None
        return outcome

    def _on_partial(self, text: str):
        self.partial_text = text

    def stop_listening(self):
        if self._listening is not None:
            self._listening.cancel()

    async def _report_capture_error(self, outcome: CaptureError):
        self.state = WizardState.ASKING
        if outcome.kind == NO_SPEECH:
            self.error = "Ses algılanamadı, tekrar deneyin."
        elif outcome.kind == PERMISSION_DENIED:
            self.error = "Mikrofon izni verilmedi."
        else:
            self.error = f"Hata: {outcome.detail or outcome.kind}"
        await self._say(self.error)

    async def handle_answer(self, text: str) -> bool:
        """Record the answer for the current step. False stops the walk."""
        if not self.is_open:
            raise RuntimeError("Medicine wizard is not open")
        token = self._token
        step = self.current_step
        text = text.strip()
        self.state = WizardState.PROCESSING
        self.transcript = text
        self.error = ""

        if step.key == "note" and (not text or is_skip_answer(text)):
            value, ack = "", "Tamam, not eklenmedi."
        elif not text:
            self.state = WizardState.ASKING
            self.error = "Anlaşılamadı, lütfen tekrar deneyin."
            await self._say(self.error)
            return False
        elif step.key == "name":
            value, ack = await self._correct_name(text), "Anladım."
        else:
            value, ack = text, "Anladım."

        if not token.active:
            return False
        self.answers[step.key] = value
        await self._say(ack)
        if not token.active:
            return False

        if self.step_index < len(STEPS) - 1:
            self.step_index += 1
            return True
        return await self.save()

    async def _correct_name(self, spoken: str) -> str:
        correction: NameCorrection | None = await best_effort(
            self.resolver.correct_medicine_name(spoken),
            fallback=None,
            timeout=self.name_correction_timeout,
        )
        if (
            correction is None
            or not correction.is_valid
            or not correction.corrected_name
            or correction.confidence is Confidence.LOW
        ):
            return spoken
        name = correction.corrected_name
        if name != spoken and self.is_open:
            log.info("Medicine name corrected: %r -> %r", spoken, name)
            await self._say(f"{name} olarak kaydettim.")
        return name

    # -- Save --

    async def save(self) -> bool:
        """Write the collected answers as one medicine, then close."""
        if not self.is_open:
            raise RuntimeError("Medicine wizard is not open")
        token = self._token
        self.state = WizardState.SAVING
        self.error = ""
        await self._say("İlacınız kaydediliyor.")
        if not token.active:
            return False

        name = self.answers.get("name") or "İlaç"
        try:
            saved = self.db.insert_medicine(
                self.user_id,
                name=name,
                dose=self.answers.get("dose", ""),
                days=parse_days(self.answers.get("days", "")),
                times=parse_times(self.answers.get("times", "")),
                note=self.answers.get("note", ""),
                color=self.rng.choice(MED_COLORS),
                icon=self.rng.choice(ICONS),
            )
        except SQLAlchemyError as e:
            log.error("Saving medicine %s failed: %s", name, e)
            self.state = WizardState.SAVE_FAILED
            self.error = "Kayıt sırasında hata oluştu."
            await self._say(self.error)
            return False

        if self.scheduler is not None:
            try:
                self.scheduler.schedule_medicine(saved)
            except (SQLAlchemyError, ValueError) as e:
                log.warning("Reminder scheduling failed for %s: %s", name, e)

        self.state = WizardState.DONE
        await self._say(f"{name} başarıyla kaydedildi!")
        if self.on_saved:
            self.on_saved(saved)
        self.close()
        return True
