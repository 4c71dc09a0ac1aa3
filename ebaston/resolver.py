"""Remote intent resolver: one completion call, JSON extraction, soft failure."""

import asyncio
import json
from dataclasses import dataclass
from datetime import date

from ebaston.intents import (
    Confidence,
    FamilyMember,
    Intent,
    KnownMedicine,
    fallback_intent,
    intent_from_payload,
)
from ebaston.logging_config import get_logger
from ebaston.orchestrator import match_locally
from ebaston.prompts import (
    MEDICINE_NAME_PROMPT,
    build_command_message,
    build_command_prompt,
    build_medicine_name_message,
)
from ebaston.providers import CompletionError, CompletionProvider

log = get_logger(__name__)


@dataclass(frozen=True)
class NameCorrection:
    is_valid: bool
    corrected_name: str
    confidence: Confidence
    suggestion: str = ""


def _first_balanced_object(raw: str) -> str | None:
    """Return the first brace-balanced block, ignoring braces inside JSON strings."""
    start = raw.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(raw)):
            ch = raw[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return raw[start:i + 1]
        # Unbalanced from here; try the next opening brace
        start = raw.find("{", start + 1)
    return None


def extract_json_object(raw: str) -> dict | None:
    """Parse a JSON object out of a completion that may carry stray text."""
    if not raw:
        return None

    try:
        data = json.loads(raw)
        if isinstance(data, dict):
            return data
    except (json.JSONDecodeError, TypeError):
        pass

    block = _first_balanced_object(raw)
    if block is None:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


class RemoteIntentResolver:
    """Turns free text into an Intent with a single completion request.

    Never raises for the command path: provider errors and completions
    without a JSON object degrade to ``fallback_intent()``.
    """

    def __init__(self, provider: CompletionProvider, prefilter: bool = True):
        self.provider = provider
        self.prefilter = prefilter

    @property
    def provider_name(self) -> str:
        return getattr(self.provider, "name", "remote")

    async def resolve(
        self,
        text: str,
        medicines: list[KnownMedicine],
        members: list[FamilyMember],
        today: date | None = None,
    ) -> Intent:
        if self.prefilter:
            local = match_locally(text, medicines, members)
            if local is not None and local.confidence is Confidence.HIGH:
                log.info("Pre-filter hit, skipping remote call: %s", local.action)
                return local

        system_prompt = build_command_prompt(medicines, members, today or date.today())
        try:
            raw = await asyncio.to_thread(
                self.provider.complete, system_prompt, build_command_message(text), 300,
            )
        except CompletionError as e:
            log.error("Command resolution failed (%s): %s", self.provider_name, e)
            return fallback_intent()

        payload = extract_json_object(raw)
        if payload is None:
            log.warning("No JSON object in completion: %r", (raw or "")[:100])
            return fallback_intent()

        intent = intent_from_payload(payload, source=self.provider_name)
        log.info(
            "Remote intent: %s (%s) via %s",
            intent.action, intent.confidence.value, self.provider_name,
        )
        return intent

    async def correct_medicine_name(self, spoken: str) -> NameCorrection:
        """Ask for the canonical drug name. Raises CompletionError on provider failure."""
        raw = await asyncio.to_thread(
            self.provider.complete,
            MEDICINE_NAME_PROMPT,
            build_medicine_name_message(spoken),
            150,
        )
        payload = extract_json_object(raw)
        if payload is None:
            return NameCorrection(True, spoken, Confidence.MEDIUM)

        corrected = str(payload.get("correctedName") or "").strip() or spoken
        return NameCorrection(
            is_valid=payload.get("isValid") is not False,
            corrected_name=corrected,
            confidence=Confidence.parse(payload.get("confidence")),
            suggestion=str(payload.get("suggestion") or ""),
        )
