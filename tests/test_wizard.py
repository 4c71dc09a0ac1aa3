"""Tests for the guided voice medicine wizard."""

import asyncio
import random

import pytest
from sqlalchemy.exc import SQLAlchemyError

from ebaston.intents import Confidence
from ebaston.providers import CompletionError
from ebaston.resolver import NameCorrection, RemoteIntentResolver
from ebaston.session import VoiceModuleBusyError, VoiceModuleCoordinator
from ebaston.speech import NO_SPEECH, CaptureError
from ebaston.wizard import (
    GREETING,
    MED_COLORS,
    ICONS,
    STEPS,
    VoiceMedicineWizard,
    WizardState,
    best_effort,
)
from tests.fakes import FakeProvider, FakeRecognizer

CORRECTION = '{"isValid": true, "correctedName": "Coraspin", "confidence": "high"}'
ANSWERS = ["kora spin", "yüz miligram", "hafta içi", "sabah akşam", "hayır"]


def _wizard(db, speaker, answers, *replies, resolver=None, coordinator=None, **config):
    saved = []
    wizard = VoiceMedicineWizard(
        db=db,
        resolver=resolver or RemoteIntentResolver(FakeProvider(*replies)),
        speaker=speaker,
        recognizer=FakeRecognizer(answers),
        coordinator=coordinator or VoiceModuleCoordinator(),
        user_id="u1",
        config={"wizard": config},
        rng=random.Random(7),
        on_saved=saved.append,
    )
    return wizard, saved


def test_full_walk_saves_one_medicine(tmp_db, speaker):
    wizard, saved = _wizard(tmp_db, speaker, list(ANSWERS), CORRECTION)
    asyncio.run(wizard.start())

    meds = tmp_db.list_medicines("u1")
    assert len(meds) == 1
    med = meds[0]
    assert med["name"] == "Coraspin"
    assert med["dose"] == "yüz miligram"
    assert med["days"] == ["Pzt", "Sal", "Çar", "Per", "Cum"]
    assert med["times"] == ["08:00", "20:00"]
    assert med["note"] == ""
    assert med["color"] in MED_COLORS
    assert med["icon"] in ICONS
    assert saved == [med]

    assert speaker.spoken[:4] == [GREETING, STEPS[0].question, "Coraspin olarak kaydettim.", "Anladım."]
    assert "Tamam, not eklenmedi." in speaker.spoken
    assert speaker.spoken[-2:] == ["İlacınız kaydediliyor.", "Coraspin başarıyla kaydedildi!"]
    assert not wizard.is_open
    assert wizard.state is WizardState.NOT_STARTED
    assert wizard.answers == {}


def test_questions_are_never_spoken_out_of_order(tmp_db, speaker):
    wizard, _ = _wizard(tmp_db, speaker, list(ANSWERS), CORRECTION)
    asyncio.run(wizard.start())
    questions = [s for s in speaker.spoken if s in {step.question for step in STEPS}]
    assert questions == [step.question for step in STEPS]


def test_note_is_kept(tmp_db, speaker):
    answers = ANSWERS[:4] + ["tansiyon için"]
    wizard, _ = _wizard(tmp_db, speaker, answers, CORRECTION)
    asyncio.run(wizard.start())
    assert tmp_db.list_medicines("u1")[0]["note"] == "tansiyon için"


def test_name_correction_failure_keeps_spoken_name(tmp_db, speaker):
    wizard, _ = _wizard(tmp_db, speaker, list(ANSWERS), CompletionError("down"))
    asyncio.run(wizard.start())
    assert tmp_db.list_medicines("u1")[0]["name"] == "kora spin"
    assert not any("olarak kaydettim" in s for s in speaker.spoken)


def test_low_confidence_correction_is_ignored(tmp_db, speaker):
    reply = '{"isValid": true, "correctedName": "Coraspin", "confidence": "low"}'
    wizard, _ = _wizard(tmp_db, speaker, list(ANSWERS), reply)
    asyncio.run(wizard.start())
    assert tmp_db.list_medicines("u1")[0]["name"] == "kora spin"


def test_name_correction_timeout_keeps_spoken_name(tmp_db, speaker):
    class SlowResolver:
        async def correct_medicine_name(self, spoken):
            await asyncio.sleep(1)
            return NameCorrection(True, "Coraspin", Confidence.HIGH)

    wizard, _ = _wizard(
        tmp_db, speaker, list(ANSWERS), resolver=SlowResolver(), name_correction_timeout=0.01,
    )
    asyncio.run(wizard.start())
    assert tmp_db.list_medicines("u1")[0]["name"] == "kora spin"


def test_empty_answer_does_not_advance(tmp_db, speaker):
    wizard, _ = _wizard(tmp_db, speaker, [""], CORRECTION)

    async def run():
        await wizard.start()
        assert wizard.step_index == 0
        assert wizard.answers == {}
        assert wizard.error == "Anlaşılamadı, lütfen tekrar deneyin."
        assert wizard.is_open
        wizard.recognizer.outcomes.extend(ANSWERS)
        await wizard.retry()

    asyncio.run(run())
    assert tmp_db.list_medicines("u1")[0]["name"] == "Coraspin"


def test_capture_error_then_retry(tmp_db, speaker):
    wizard, _ = _wizard(tmp_db, speaker, ["kora spin", CaptureError(NO_SPEECH)], CORRECTION)

    async def run():
        await wizard.start()
        assert wizard.step_index == 1
        assert wizard.error == "Ses algılanamadı, tekrar deneyin."
        wizard.recognizer.outcomes.extend(ANSWERS[1:])
        await wizard.retry()

    asyncio.run(run())
    assert len(tmp_db.list_medicines("u1")) == 1


def test_failed_save_stays_open_for_retry(tmp_db, speaker, monkeypatch):
    insert = tmp_db.insert_medicine

    def broken(*args, **kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(tmp_db, "insert_medicine", broken)
    wizard, saved = _wizard(tmp_db, speaker, list(ANSWERS), CORRECTION)

    async def run():
        await wizard.start()
        assert wizard.state is WizardState.SAVE_FAILED
        assert wizard.is_open
        assert wizard.answers["name"] == "Coraspin"
        assert speaker.spoken[-1] == "Kayıt sırasında hata oluştu."
        monkeypatch.setattr(tmp_db, "insert_medicine", insert)
        await wizard.retry()

    asyncio.run(run())
    assert [m["name"] for m in tmp_db.list_medicines("u1")] == ["Coraspin"]
    assert len(saved) == 1


def test_close_mid_walk_writes_nothing(tmp_db, speaker):
    coordinator = VoiceModuleCoordinator()
    wizard, _ = _wizard(tmp_db, speaker, ANSWERS[:2], CORRECTION, coordinator=coordinator)

    async def run():
        task = asyncio.ensure_future(wizard.start())
        while wizard.step_index < 2:
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.01)
        wizard.close()
        await task

    asyncio.run(run())
    assert tmp_db.list_medicines("u1") == []
    assert wizard.answers == {}
    assert wizard.step_index == 0
    assert coordinator.active_owner is None


def test_wizard_refused_while_assistant_active(tmp_db, speaker):
    coordinator = VoiceModuleCoordinator()
    coordinator.acquire("global")
    wizard, _ = _wizard(tmp_db, speaker, [], coordinator=coordinator)
    with pytest.raises(VoiceModuleBusyError):
        asyncio.run(wizard.start())


def test_stop_listening_keeps_the_step(tmp_db, speaker):
    wizard, _ = _wizard(tmp_db, speaker, [], CORRECTION)

    async def run():
        task = asyncio.ensure_future(wizard.start())
        while wizard.state is not WizardState.LISTENING:
            await asyncio.sleep(0.001)
        wizard.stop_listening()
        await task
        assert wizard.state is WizardState.ASKING
        assert wizard.step_index == 0
        assert wizard.answers == {}
        assert wizard.is_open
        wizard.recognizer.outcomes.extend(ANSWERS)
        await wizard.retry()

    asyncio.run(run())
    assert wizard.recognizer.stopped >= 1
    assert tmp_db.list_medicines("u1")[0]["name"] == "Coraspin"


# -- best_effort --

def test_best_effort_returns_result():
    async def ok():
        return "Coraspin"

    assert asyncio.run(best_effort(ok(), "fallback", timeout=1)) == "Coraspin"


def test_best_effort_on_error():
    async def fails():
        raise CompletionError("429")

    assert asyncio.run(best_effort(fails(), "fallback")) == "fallback"


def test_best_effort_on_timeout():
    async def slow():
        await asyncio.sleep(1)

    assert asyncio.run(best_effort(slow(), "fallback", timeout=0.01)) == "fallback"


def test_every_day_morning_evening_no_note(tmp_db, speaker):
    answers = ["Coraspin", "500 mg", "her gün", "sabah akşam", "hayır"]
    wizard, _ = _wizard(tmp_db, speaker, answers, CORRECTION)
    asyncio.run(wizard.start())
    med = tmp_db.list_medicines("u1")[0]
    assert med["name"] == "Coraspin"
    assert med["dose"] == "500 mg"
    assert med["days"] == ["Pzt", "Sal", "Çar", "Per", "Cum", "Cmt", "Paz"]
    assert med["times"] == ["08:00", "20:00"]
    assert med["note"] == ""
    assert "Coraspin olarak kaydettim." not in speaker.spoken
