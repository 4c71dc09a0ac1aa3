"""Scripted stand-ins for speech and completion collaborators."""

import asyncio

from ebaston.speech import Final


class FakeSpeaker:
    """Records every utterance; can run a hook while 'speaking'."""

    def __init__(self):
        self.spoken: list[str] = []
        self.stopped = 0
        self.on_speak = None

    async def speak(self, text, rate=0.9):
        self.spoken.append(text)
        if self.on_speak:
            self.on_speak(text)
        await asyncio.sleep(0)

    def stop(self):
        self.stopped += 1


class FakeRecognizer:
    """Plays back scripted outcomes; plain strings become Final transcripts."""

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.stopped = 0
        self.captures = 0

    async def capture(self, locale, interim_results=True, on_partial=None):
        self.captures += 1
        if not self.outcomes:
            # Block until cancelled, like a microphone with nobody talking
            await asyncio.Event().wait()
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, str):
            if on_partial and outcome:
                on_partial(outcome[: len(outcome) // 2])
            return Final(outcome)
        return outcome

    def stop(self):
        self.stopped += 1


class FakeProvider:
    """Completion provider returning canned replies (or raising them)."""

    name = "fake"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[tuple[str, str, int]] = []

    def complete(self, system_prompt, user_message, max_tokens=300):
        self.calls.append((system_prompt, user_message, max_tokens))
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply



class FakeNavigator:
    def __init__(self):
        self.screens: list[str] = []

    def navigate(self, screen):
        self.screens.append(screen)


class FakeUrlOpener:
    def __init__(self, can_open=True):
        self._can_open = can_open
        self.opened: list[str] = []

    def can_open(self, uri):
        return self._can_open

    def open(self, uri):
        self.opened.append(uri)
