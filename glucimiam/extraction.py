"""
Recovery of structured payloads from raw model text.

Vision models wrap their JSON in prose or ```json fences and, when they hit
their output-length limit, stop mid-payload. Extraction walks a fixed ladder
and reports where it landed with an explicit status instead of raising:

1) fenced block content, if any (an unterminated fence counts)
2) first opening brace, matched by depth with string/escape awareness
3) unclosed payload: try a short list of closing suffixes
4) nothing parses: per-field regex extraction straight from the raw text

Only the public ``parse_*`` helpers raise, once the ladder is exhausted.
"""

import enum
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from glucimiam.errors import MalformedPayload, ModelDeclinedAnalysis
from glucimiam.models import DEFAULT_CONFIDENCE, FoodEstimate, to_number

logger = logging.getLogger(__name__)


class ExtractionStatus(enum.Enum):
    SUCCESS = "success"
    TRUNCATED = "truncated"
    UNRECOVERABLE = "unrecoverable"


@dataclass(frozen=True)
class Extraction:
    status: ExtractionStatus
    payload: Any = None
    candidate: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not ExtractionStatus.UNRECOVERABLE


# Tried in order on an unclosed payload
CLOSING_SUFFIXES = (
    "}",
    '"}',
    "0}",
    "0.5}",
    '""}',
    "]}",
    '"]}',
    "}]}",
    '"}]}',
    "0}]}",
    "0.5}]}",
    '""}]}',
    "]",
    '"]',
)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n?(.*)\Z", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

_STRING_VALUE = r'"((?:[^"\\]|\\.)*)"'
_NUMBER_VALUE = r'"?(-?\d+(?:[.,]\d+)?)'

_NAME_FIELD_RE = re.compile(r'"foodName"\s*:\s*' + _STRING_VALUE)
_ERROR_FIELD_RE = re.compile(r'"error"\s*:\s*' + _STRING_VALUE)
_NUMERIC_FIELDS = ("estimatedWeightG", "carbsPer100g", "totalCarbsG", "confidence")
_NUMERIC_FIELD_RES = {
    key: re.compile(r'"%s"\s*:\s*%s' % (key, _NUMBER_VALUE)) for key in _NUMERIC_FIELDS
}
_REASONING_FIELD_RE = re.compile(r'"reasoning"\s*:\s*' + _STRING_VALUE)

_FOODS_ARRAY_RE = re.compile(r'"(?:foods|items|names)"\s*:\s*\[')
_LIST_NAME_RE = re.compile(r'"(?:name|foodName)"\s*:\s*' + _STRING_VALUE)
_QUOTED_RE = re.compile(_STRING_VALUE)


# -----------------------------------
# Ladder steps
# -----------------------------------


def _fenced_content(text: str) -> Optional[str]:
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    match = _OPEN_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return None


def _scan_from(source: str, start: int) -> Tuple[str, bool, str]:
    """
    Return (candidate, closed, pending_closers) for the value opening at start.

    ``pending_closers`` is what would close an unbalanced candidate, string
    quote included, innermost first.
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(source)):
        ch = source[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]":
            if stack:
                stack.pop()
            if not stack:
                return source[start : i + 1], True, ""

    pending = ('"' if in_string else "") + "".join(reversed(stack))
    return source[start:], False, pending


def _scan_balanced(source: str) -> Tuple[str, bool, str]:
    """
    Candidate payload starting at the first opening brace.

    A bracket is only a start when no brace exists (bare list) or when the
    list it opens encloses that first brace; a bracketed aside in leading
    prose ("vu sur [2] photos") is skipped.
    """
    brace, bracket = source.find("{"), source.find("[")
    if brace == -1 and bracket == -1:
        return "", False, ""
    if brace == -1:
        return _scan_from(source, bracket)
    if bracket != -1 and bracket < brace:
        candidate, closed, pending = _scan_from(source, bracket)
        if bracket + len(candidate) > brace:
            return candidate, closed, pending
    return _scan_from(source, brace)


def _loads(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def _close_truncated(candidate: str, pending: str) -> Tuple[bool, Any]:
    base = candidate.rstrip()
    while base.endswith(","):
        base = base[:-1].rstrip()
    for suffix in CLOSING_SUFFIXES:
        ok, payload = _loads(base + suffix)
        if ok:
            logger.info("Repaired truncated payload with suffix %r", suffix)
            return True, payload
    if pending:
        ok, payload = _loads(candidate + pending)
        if ok:
            logger.info("Repaired truncated payload by closing %r", pending)
            return True, payload
    return False, None


def extract_payload(text: str) -> Extraction:
    """Run steps 1-3 of the ladder on raw model text."""
    if not text or not text.strip():
        return Extraction(ExtractionStatus.UNRECOVERABLE)

    ok, payload = _loads(text.strip())
    if ok and isinstance(payload, (dict, list)):
        return Extraction(ExtractionStatus.SUCCESS, payload, text.strip())

    fenced = _fenced_content(text)
    source = fenced if fenced is not None else text

    candidate, closed, pending = _scan_balanced(source)
    if not candidate:
        return Extraction(ExtractionStatus.UNRECOVERABLE, candidate=source)

    if closed:
        ok, payload = _loads(candidate)
        if not ok:
            ok, payload = _loads(_TRAILING_COMMA_RE.sub(r"\1", candidate))
        if ok:
            return Extraction(ExtractionStatus.SUCCESS, payload, candidate)
        return Extraction(ExtractionStatus.UNRECOVERABLE, candidate=candidate)

    ok, payload = _close_truncated(candidate, pending)
    if ok:
        return Extraction(ExtractionStatus.TRUNCATED, payload, candidate)
    return Extraction(ExtractionStatus.UNRECOVERABLE, candidate=candidate)


# -----------------------------------
# Step 4: regex salvage
# -----------------------------------


def _unescape(raw: str) -> str:
    ok, value = _loads('"%s"' % raw)
    return value if ok else raw


def salvage_records(text: str) -> List[Dict[str, Any]]:
    """
    Pull foodName/number fields straight out of raw text.

    A record exists only where a complete foodName string was found; its
    other fields are searched up to the next foodName.
    """
    matches = list(_NAME_FIELD_RE.finditer(text or ""))
    records: List[Dict[str, Any]] = []
    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        segment = text[match.end() : end]
        record: Dict[str, Any] = {"foodName": _unescape(match.group(1))}
        for key, pattern in _NUMERIC_FIELD_RES.items():
            found = pattern.search(segment)
            if found:
                record[key] = to_number(found.group(1))
        reasoning = _REASONING_FIELD_RE.search(segment)
        if reasoning:
            record["reasoning"] = _unescape(reasoning.group(1))
        record.setdefault("confidence", DEFAULT_CONFIDENCE)
        records.append(record)
    return records


def salvage_names(text: str) -> List[str]:
    text = text or ""
    array = _FOODS_ARRAY_RE.search(text)
    if array:
        rest = text[array.end() :]
    else:
        bracket = text.find("[")
        if bracket == -1:
            return []
        rest = text[bracket + 1 :]
    if rest.lstrip().startswith("{"):
        return [_unescape(m.group(1)) for m in _LIST_NAME_RE.finditer(rest)]
    rest = rest.split("]", 1)[0]
    return [_unescape(m.group(1)) for m in _QUOTED_RE.finditer(rest)]


# -----------------------------------
# Payload interpretation
# -----------------------------------


def _raise_if_declined(payload: Any) -> None:
    if not isinstance(payload, dict) or "error" not in payload:
        return
    if any(key in payload for key in ("foodName", "foods", "items")):
        return
    raise ModelDeclinedAnalysis(
        str(payload.get("error") or "analysis declined"),
        needs_retake=bool(payload.get("needsRetake", False)),
    )


def _payload_items(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("foods", "items", "names"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
        if "foodName" in payload or "name" in payload:
            return [payload]
    return []


def _item_name(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict):
        return str(item.get("foodName") or item.get("name") or "").strip()
    return ""


def parse_food_names(text: str) -> List[str]:
    """
    Names listed by the identification pass.

    Returns [] when nothing is recoverable; the caller falls back to a
    single-food analysis in that case.
    """
    extraction = extract_payload(text)
    if extraction.ok:
        _raise_if_declined(extraction.payload)
        names = [_item_name(item) for item in _payload_items(extraction.payload)]
    else:
        if _ERROR_FIELD_RE.search(text or "") and not _FOODS_ARRAY_RE.search(text or ""):
            raise ModelDeclinedAnalysis(_unescape(_ERROR_FIELD_RE.search(text).group(1)))
        names = salvage_names(text)
        logger.warning("Identification payload unrecoverable, salvaged %s names", len(names))
    return [name for name in names if name]


def parse_estimates(text: str) -> List[FoodEstimate]:
    """
    Food estimates from a quantification or single-food answer.

    Raises ModelDeclinedAnalysis on an explicit failure payload and
    MalformedPayload when no record with a food name can be recovered.
    """
    extraction = extract_payload(text)
    records: List[Dict[str, Any]] = []
    if extraction.ok:
        _raise_if_declined(extraction.payload)
        for item in _payload_items(extraction.payload):
            if not isinstance(item, dict):
                continue
            if "foodName" not in item and "name" in item:
                item = dict(item, foodName=item["name"])
            records.append(item)
        if extraction.status is ExtractionStatus.TRUNCATED:
            logger.warning("Estimates payload was truncated; kept %s records", len(records))

    if not any(_item_name(r) for r in records):
        records = salvage_records(text)
        if records:
            logger.warning("Estimates payload unrecoverable, salvaged %s records", len(records))
        else:
            declined = _ERROR_FIELD_RE.search(text or "")
            if declined:
                raise ModelDeclinedAnalysis(_unescape(declined.group(1)))

    estimates = [FoodEstimate.from_payload(r) for r in records if _item_name(r)]
    if not estimates:
        raise MalformedPayload("No food estimate recoverable from model output", text)
    return estimates
