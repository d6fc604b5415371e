import json
import re
from typing import Any, Dict, Optional

APOSTROPHES = "'’‘`"
POSSESSIVE_RE = re.compile(r"[" + APOSTROPHES + r"]s\b", re.IGNORECASE)
APOSTROPHE_RE = re.compile(r"[" + APOSTROPHES + r"]")
WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(text: Any, keep_possessive: bool = False) -> str:
    """Purpose: Normalize product names and spoken product references for matching.
    Inputs/Outputs: Input is a raw value; output is lowercase text with possessive
        "'s" and bare apostrophes removed and whitespace collapsed. With
        keep_possessive only the apostrophe goes ("men's" -> "mens").
    Side Effects / State: None; pure function.
    Dependencies: Uses regex; called by catalog name lookup and cart removal.
    Failure Modes: Returns an empty string for non-string or falsy input.
    If Removed: Transcripts such as "mens hoodie" stop matching "Men's Hoodie".
    Testing Notes: "Men's  Hoodie" -> "men hoodie"; keep_possessive -> "mens hoodie".
    """
    # Lowercase, drop possessives before bare apostrophes, then collapse spaces.
    if not text or not isinstance(text, str):
        return ""
    lowered = text.lower()
    if not keep_possessive:
        lowered = POSSESSIVE_RE.sub("", lowered)
    lowered = APOSTROPHE_RE.sub("", lowered)
    return WHITESPACE_RE.sub(" ", lowered).strip()


def normalize_selection(selection: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Purpose: Produce a comparable form of a sparse attribute selection.
    Inputs/Outputs: Input is a selection dict; output drops empty values and
        lowercases the rest.
    Side Effects / State: None.
    Dependencies: Used by cart line identity checks.
    Failure Modes: Non-dict input yields an empty dict.
    If Removed: {"size": "L"} and {"size": "l", "ram": None} become distinct lines.
    Testing Notes: Compare selections that differ only by case or empty keys.
    """
    if not isinstance(selection, dict):
        return {}
    cleaned: Dict[str, str] = {}
    for key, value in selection.items():
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        cleaned[str(key)] = _canonical_number(text).lower()
    return cleaned


def _canonical_number(text: str) -> str:
    # "8.0" and "8" denote the same shoe size.
    try:
        number = float(text)
    except ValueError:
        return text
    return str(int(number)) if number.is_integer() else str(number)


def extract_json_block(text: str) -> Optional[str]:
    """Return the span from the first "{" to the last "}" of a model reply, or None."""
    if not text or not isinstance(text, str):
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Decode the intent object embedded in a model reply.
    Inputs/Outputs: Input is the raw reply; output is a dict, or None when no object decodes.
    Side Effects / State: None.
    Dependencies: extract_json_block, json.loads; called by intent_bridge.parse_intent.
    Failure Modes: Broken JSON, missing braces, and top-level arrays all yield None.
    If Removed: Replies with leading prose ("Sure! {...}") crash the turn.
    Testing Notes: 'ok {"intent": "help"} thanks' -> {"intent": "help"}; "[1]" -> None.
    """
    block = extract_json_block(text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
