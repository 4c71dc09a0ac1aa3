"""Speech capture and output collaborators.

A capture is one listening turn that ends in exactly one terminal outcome:
Final(text), CaptureError(kind) or Cancelled. Partial transcripts are
reported through an optional callback and never end the turn.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Protocol, Union

from rich.console import Console

from ebaston.logging_config import get_logger

log = get_logger(__name__)

NO_SPEECH = "no_speech"
PERMISSION_DENIED = "permission_denied"
RECOGNIZER = "recognizer"


@dataclass(frozen=True)
class Final:
    text: str


@dataclass(frozen=True)
class CaptureError:
    kind: str
    detail: str = ""


@dataclass(frozen=True)
class Cancelled:
    pass


CaptureOutcome = Union[Final, CaptureError, Cancelled]


class Recognizer(Protocol):
    async def capture(
        self,
        locale: str,
        interim_results: bool = True,
        on_partial: Callable[[str], None] | None = None,
    ) -> CaptureOutcome: ...

    def stop(self) -> None: ...


class Speaker(Protocol):
    async def speak(self, text: str, rate: float = 0.9) -> None:
        """Return once the utterance is done, has failed or was stopped."""

    def stop(self) -> None: ...


class ListeningTask:
    """One cancellable capture running as an asyncio task.

    ``result()`` always resolves to a terminal outcome: cancelling yields
    Cancelled, hitting the optional timeout yields CaptureError(no_speech).
    """

    def __init__(
        self,
        recognizer: Recognizer,
        locale: str,
        timeout: float | None = None,
        on_partial: Callable[[str], None] | None = None,
    ):
        self._recognizer = recognizer
        self._timeout = timeout
        self._task = asyncio.ensure_future(
            recognizer.capture(locale, interim_results=True, on_partial=on_partial)
        )

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._recognizer.stop()
            self._task.cancel()

    async def result(self) -> CaptureOutcome:
        try:
            if self._timeout is None:
                return await asyncio.shield(self._task)
            return await asyncio.wait_for(asyncio.shield(self._task), self._timeout)
        except asyncio.TimeoutError:
            log.warning("Listening window of %.1fs elapsed", self._timeout)
            self.cancel()
            return CaptureError(NO_SPEECH, "timeout")
        except asyncio.CancelledError:
            if self._task.cancelled():
                return Cancelled()
            raise


class ConsoleSpeaker:
    """Prints what would be spoken."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def speak(self, text: str, rate: float = 0.9) -> None:
        self.console.print(f"[bold cyan]🔊 {text}[/bold cyan]")

    def stop(self) -> None:
        pass


class ConsoleRecognizer:
    """Typed text stands in for speech: one line is one final transcript."""

    def __init__(self, console: Console | None = None, prompt: str = "🎙️  > "):
        self.console = console or Console()
        self.prompt = prompt
        self.eof = False

    async def capture(self, locale, interim_results=True, on_partial=None) -> CaptureOutcome:
        try:
            line = await asyncio.to_thread(self.console.input, self.prompt)
        except EOFError:
            self.eof = True
            return Cancelled()
        if not line.strip():
            return CaptureError(NO_SPEECH)
        return Final(line.strip())

    def stop(self) -> None:
        pass
