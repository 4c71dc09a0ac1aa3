"""Tests for listening turns and the console collaborators."""

import asyncio
from unittest.mock import MagicMock

from ebaston.speech import (
    NO_SPEECH,
    Cancelled,
    CaptureError,
    ConsoleRecognizer,
    ConsoleSpeaker,
    Final,
    ListeningTask,
)
from tests.fakes import FakeRecognizer


def test_listening_task_final_and_partial():
    partials = []

    async def run():
        task = ListeningTask(FakeRecognizer(["ilaçlarıma git"]), "tr-TR", on_partial=partials.append)
        return await task.result()

    assert asyncio.run(run()) == Final("ilaçlarıma git")
    assert partials == ["ilaçlar"]


def test_listening_task_cancel_yields_cancelled():
    recognizer = FakeRecognizer()

    async def run():
        task = ListeningTask(recognizer, "tr-TR")
        asyncio.get_running_loop().call_later(0.01, task.cancel)
        return await task.result()

    assert asyncio.run(run()) == Cancelled()
    assert recognizer.stopped == 1


def test_listening_task_timeout_is_no_speech():
    async def run():
        return await ListeningTask(FakeRecognizer(), "tr-TR", timeout=0.01).result()

    outcome = asyncio.run(run())
    assert isinstance(outcome, CaptureError)
    assert outcome.kind == NO_SPEECH


def test_console_recognizer_line_is_final():
    console = MagicMock()
    console.input.return_value = "  Ayşe'yi ara "
    assert asyncio.run(ConsoleRecognizer(console).capture("tr-TR")) == Final("Ayşe'yi ara")


def test_console_recognizer_empty_line_is_no_speech():
    console = MagicMock()
    console.input.return_value = ""
    assert asyncio.run(ConsoleRecognizer(console).capture("tr-TR")) == CaptureError(NO_SPEECH)


def test_console_recognizer_eof_is_cancelled():
    console = MagicMock()
    console.input.side_effect = EOFError
    recognizer = ConsoleRecognizer(console)
    assert asyncio.run(recognizer.capture("tr-TR")) == Cancelled()
    assert recognizer.eof


def test_console_speaker_prints():
    console = MagicMock()
    asyncio.run(ConsoleSpeaker(console).speak("Merhaba"))
    assert "Merhaba" in console.print.call_args[0][0]
