"""Recovery of structured JSON documents from free-form model replies."""

from __future__ import annotations

import json
import re
from typing import Any

from app.theory_generation.errors import ParseError

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)

# Valid escapes in JSON: \", \\, \/, \b, \f, \n, \r, \t, \uXXXX
_INVALID_ESCAPE_RE = re.compile(r'\\(?![u"\\/bfnrt])')
_ESCAPED_BACKSLASH_RE = re.compile(r"\\\\")


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code block, or the text itself."""
    cleaned = text.strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        return match.group(1).strip()
    # Unterminated fence (reply cut off after the opening marker)
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
    return cleaned.strip()


def fix_invalid_escapes(text: str) -> str:
    """Double every backslash that does not start a valid JSON escape."""
    parts = _ESCAPED_BACKSLASH_RE.split(text)
    return "\\\\".join(_INVALID_ESCAPE_RE.sub(r"\\\\", p) for p in parts)


def outermost_span(text: str) -> str | None:
    """Slice from the first ``{``/``[`` to the last matching closer.

    Whichever bracket kind opens first wins, so a top-level array that
    contains objects is kept whole.
    """
    candidates = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            candidates.append((start, end))
    if not candidates:
        return None
    start, end = min(candidates)
    return text[start:end + 1]


def extract_json_document(text: str) -> dict[str, Any] | list[Any]:
    """Parse a model reply into JSON with best-effort cleanup.

    Order of attempts: direct parse of the fence-stripped text, parse of
    the outermost bracketed span, then both again with invalid backslash
    escapes repaired.

    Args:
        text: Raw reply text.

    Returns:
        Parsed JSON object or array.

    Raises:
        ParseError: If no attempt yields valid JSON.
    """
    if not text or not text.strip():
        msg = "Empty reply"
        raise ParseError(msg)

    cleaned = strip_code_fences(text)
    candidates = [cleaned]
    span = outermost_span(cleaned)
    if span is not None and span != cleaned:
        candidates.append(span)

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        for attempt in (candidate, fix_invalid_escapes(candidate)):
            try:
                return json.loads(attempt)
            except json.JSONDecodeError as exc:
                last_error = exc

    preview = cleaned[:120].replace("\n", " ")
    msg = f"Reply is not valid JSON ({last_error}): {preview!r}"
    raise ParseError(msg)
