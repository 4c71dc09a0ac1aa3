"""Turkish-aware text normalisation shared by the matchers and parsers."""

import re

_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)

# str.lower() maps "I" to "i" and "İ" to "i" + combining dot; Turkish needs ı / i.
_TURKISH_UPPER = str.maketrans({"I": "ı", "İ": "i"})


def turkish_lower(text: str) -> str:
    """Lower-case and trim ``text`` using Turkish dotted/dotless i rules."""
    return (text or "").translate(_TURKISH_UPPER).lower().strip()


def tokenize(lowered: str) -> list[str]:
    """Split already-lowered text into word tokens ("3'e" -> ["3", "e"])."""
    return _TOKEN_RE.findall(lowered)
