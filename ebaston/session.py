"""Voice module ownership: at most one voice feature listens at a time."""

import threading

from ebaston.logging_config import get_logger

log = get_logger(__name__)


class VoiceModuleBusyError(RuntimeError):
    """Raised when another voice module already holds the session token."""


class SessionToken:
    """Proof of ownership handed to one voice state machine.

    Async results must check ``active`` before touching session state: once
    the owner closes, late completions are dropped.
    """

    def __init__(self, coordinator: "VoiceModuleCoordinator", owner: str):
        self._coordinator = coordinator
        self.owner = owner
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def release(self) -> None:
        if not self._active:
            return
        self._active = False
        self._coordinator._released(self)


class VoiceModuleCoordinator:
    """Grants a single active SessionToken across the global assistant and the wizard."""

    def __init__(self):
        self._lock = threading.Lock()
        self._current: SessionToken | None = None

    @property
    def active_owner(self) -> str | None:
        with self._lock:
            return self._current.owner if self._current else None

    def acquire(self, owner: str) -> SessionToken:
        with self._lock:
            if self._current is not None:
                raise VoiceModuleBusyError(
                    f"Voice module '{self._current.owner}' is active; close it before opening '{owner}'."
                )
            self._current = SessionToken(self, owner)
            log.info("Voice module acquired: %s", owner)
            return self._current

    def _released(self, token: SessionToken) -> None:
        with self._lock:
            if self._current is token:
                self._current = None
                log.info("Voice module released: %s", token.owner)
