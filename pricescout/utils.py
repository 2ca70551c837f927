import json
import re
import unicodedata
from typing import Any, Dict, Optional

FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for case- and accent-insensitive matching.
    Inputs/Outputs: Input is a raw string; output is a casefolded string with
        diacritics removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by the comparison filters.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Search filters fall back to exact-case matching and miss
        "Pune" vs "pune" or "Café" vs "cafe".
    Testing Notes: Validate accents and casing are folded and whitespace collapsed.
    """
    # Fold case and strip combining marks for consistent matching.
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return re.sub(r"\s+", " ", stripped).strip()


def extract_fenced_json(text: str) -> Optional[str]:
    """Return the body of the first ```json fenced block, or None."""
    if not text:
        return None
    match = FENCED_JSON_RE.search(text)
    return match.group(1) if match else None


def extract_json_block(text: str) -> Optional[str]:
    """Purpose: Extract the outermost JSON object span from an arbitrary string.
    Inputs/Outputs: Input is a raw string; output is the substring from the first
        "{" to the last "}" or None.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; used by safe_json_loads.
    Failure Modes: Returns None if braces are missing or inverted.
    If Removed: Model replies with prose around the JSON cannot be decoded.
    Testing Notes: Provide strings with extra text before/after JSON and ensure extraction.
    """
    # Greedy span: first opening brace to last closing brace.
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from a model reply safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Tries extract_fenced_json first, then extract_json_block.
    Failure Modes: Returns None on any JSON ValueError, a missing block, or a
        top-level value that is not an object.
    If Removed: The response decoder crashes on malformed model output.
    Testing Notes: Validate fenced, bare, and malformed inputs.
    """
    # Prefer an explicit ```json fence, otherwise the outermost braces.
    block = extract_fenced_json(text) or extract_json_block(text)
    if not block:
        return None
    try:
        parsed = json.loads(block)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def format_amount(value: float) -> str:
    """Render a rupee amount without a trailing .0 for whole numbers."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"
