"""
Response reconciliation for analysis completions.

The completion is supposed to be one JSON object but is often wrapped in
prose, fenced in a code block, or cut off at the output token limit. Parsing
escalates through three tiers:

1. locate the JSON span and parse it directly
2. structurally repair a truncated object (close strings, drop dangling
   keys and commas, append missing closers) and parse again
3. regex-extract score / tags / confidence only, marking the result degraded

Whatever the path, ``build_result`` normalizes the fields (known tags only,
score clamped to [1, 10], validated code links).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from paper_insight_pipeline.models import (
    AlgorithmRecord,
    AnalysisResult,
    DetailPayload,
    FlowDiagram,
    KeyFormula,
)
from paper_insight_pipeline.utils.text_cleaning import strip_code_fence

VALID_CONFIDENCES = ("high", "medium", "low")
DEFAULT_SCORE = 5
DEGRADED_REASONING = "JSON was truncated, extracted partial data"
DEGRADED_SCORE_REASON = "JSON was truncated, using extracted score"

BLOCKED_LINK_DOMAINS = (
    "arxiv.org",
    "arxiv.com",
    "scholar.google.com",
    "semanticscholar.org",
    "aclanthology.org",
    "openreview.net",
    "pmlr.press",
    "proceedings.mlr.press",
)
BLOCKED_LINK_PATTERNS = ("/pdf/", "/abs/", "paper", "proceedings", "openreview")

_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_PARTIAL_LITERAL_RE = re.compile(r"(?<=[:\[,])\s*(?:t|tr|tru|f|fa|fal|fals|n|nu|nul|-)$")
_PARTIAL_NUMBER_RE = re.compile(r"(?<=\d)(?:\.|[eE][+-]?)$")
_DANGLING_KEY_RE = re.compile(r'"(?:[^"\\]|\\.)*"\s*:$')


# ----------------------------- JSON span location -----------------------------

def extract_json_block(text: str) -> str:
    """
    Return the most likely JSON object inside a completion.

    Prefers a closed ```json fence; otherwise the outermost ``{...}`` span
    starting at the first brace. When that span never closes (truncated
    output) everything from the first brace on is returned.
    """
    if not text:
        return ""
    trimmed = text.strip()

    m = _FENCED_JSON_RE.search(trimmed)
    if m:
        return m.group(1).strip()

    trimmed = strip_code_fence(trimmed)
    start = trimmed.find("{")
    if start == -1:
        return trimmed

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(trimmed)):
        ch = trimmed[i]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return trimmed[start : i + 1]
    return trimmed[start:]


# ----------------------------- structural repair -----------------------------

def _scan(text: str) -> Tuple[List[str], bool, int, bool]:
    """
    Walk ``text`` tracking string state.

    Returns:
        (open container stack, ends inside a string, start index of the last
        string opened, ends right after a backslash inside a string)
    """
    stack: List[str] = []
    in_string = False
    escape = False
    string_start = -1
    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            string_start = i
        elif ch in "{[":
            stack.append(ch)
        elif ch == "}" and stack and stack[-1] == "{":
            stack.pop()
        elif ch == "]" and stack and stack[-1] == "[":
            stack.pop()
    return stack, in_string, string_start, escape


def _strip_commas_before_closers(text: str) -> str:
    out: List[str] = []
    in_string = False
    escape = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_string:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < len(text) and text[j].isspace():
                j += 1
            if j < len(text) and text[j] in "}]":
                i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _trim_dangling_tail(text: str) -> str:
    """Drop trailing commas, dangling ``"key":`` pairs and partial literals."""
    while True:
        stripped = text.rstrip()
        if stripped.endswith(","):
            text = stripped[:-1]
            continue
        m = _DANGLING_KEY_RE.search(stripped)
        if m:
            text = stripped[: m.start()]
            continue
        m = _PARTIAL_LITERAL_RE.search(stripped) or _PARTIAL_NUMBER_RE.search(stripped)
        if m:
            text = stripped[: m.start()]
            continue
        if stripped.endswith(":"):
            text = stripped[:-1]
            continue
        key_start = _trailing_key_start(stripped)
        if key_start is not None:
            text = stripped[:key_start]
            continue
        return stripped


def _trailing_key_start(text: str) -> Optional[int]:
    """Start index of a complete trailing string that sits in key position, if any."""
    if not text.endswith('"'):
        return None
    stack, in_string, string_start, _ = _scan(text)
    if in_string or not stack or stack[-1] != "{":
        return None
    before = text[:string_start].rstrip()
    if before.endswith("{") or before.endswith(","):
        return string_start
    return None


def repair_truncated_json(json_text: str) -> str:
    """
    Close an object that was cut off mid-stream.

    - an unterminated final string value is soft-closed as ``"...``
      (``"k": "partial`` becomes ``"k": "partial..."``)
    - an unterminated key, or a bare trailing quote, is dropped
    - trailing commas, dangling keys and commas before closers are removed
    - missing ``]`` / ``}`` are appended in nesting order
    """
    repaired = json_text.strip()
    if not repaired:
        return repaired

    stack, in_string, string_start, escape = _scan(repaired)
    if in_string:
        if escape:
            repaired = repaired[:-1]
        body = repaired[string_start + 1 :]
        before = repaired[:string_start].rstrip()
        is_value = before.endswith(":") or (stack and stack[-1] == "[")
        if not body:
            # Bare opening quote
            repaired = repaired[:string_start]
        elif is_value:
            repaired = repaired + '..."'
        else:
            repaired = repaired[:string_start]

    repaired = _trim_dangling_tail(repaired)
    repaired = _strip_commas_before_closers(repaired)

    stack, _, _, _ = _scan(repaired)
    closers = "".join("]" if opener == "[" else "}" for opener in reversed(stack))
    return repaired + closers


# ----------------------------- partial extraction -----------------------------

def extract_partial_data(text: str, topic_keys: List[str]) -> Dict[str, Any]:
    """Regex fallback: recover score, tags and confidence only."""
    result: Dict[str, Any] = {}

    score_match = re.search(r'"score"\s*:\s*(\d+)', text or "")
    if score_match:
        result["score"] = int(score_match.group(1))

    tags_match = re.search(r'"tags"\s*:\s*\[([^\]]*)\]?', text or "")
    if tags_match:
        result["tags"] = [
            t.strip().strip('"').strip()
            for t in tags_match.group(1).split(",")
            if t.strip().strip('"').strip() in topic_keys
        ]

    conf_match = re.search(r'"confidence"\s*:\s*"(\w+)"', text or "")
    result["confidence"] = (
        conf_match.group(1) if conf_match and conf_match.group(1) in VALID_CONFIDENCES else "low"
    )
    result["classification_reasoning"] = DEGRADED_REASONING
    result["score_reasoning"] = DEGRADED_SCORE_REASON
    return result


# ----------------------------- normalization -----------------------------

def validate_code_links(links: Any) -> List[str]:
    """
    Keep only runnable-code links.

    A link must be a well-formed http(s) URL, must not be hosted on a paper
    repository / proceedings domain, and must not look like a paper URL.
    """
    if not isinstance(links, list):
        return []

    valid: List[str] = []
    for link in links:
        if not isinstance(link, str):
            continue
        link = link.strip()
        try:
            parsed = urlparse(link)
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            continue
        host = parsed.hostname.lower()
        if any(host == d or host.endswith("." + d) for d in BLOCKED_LINK_DOMAINS):
            continue
        link_lower = link.lower()
        if any(p in link_lower for p in BLOCKED_LINK_PATTERNS):
            continue
        if link not in valid:
            valid.append(link)
    return valid


def _coerce_score(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_SCORE
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    if score == 0:
        # Zero / missing is treated as "no score"
        return DEFAULT_SCORE
    return min(10, max(1, score))


def _str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def _text(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(str(v) for v in value if v)
    return str(value).strip() if value else ""


def _parse_formulas(value: Any) -> Optional[List[KeyFormula]]:
    if not isinstance(value, list):
        return None
    formulas = [
        KeyFormula(
            latex=str(item.get("latex", "")),
            name=str(item.get("name", "")),
            description=str(item.get("description", "") or ""),
        )
        for item in value
        if isinstance(item, dict) and item.get("latex")
    ]
    return formulas


def _parse_algorithms(value: Any) -> Optional[List[AlgorithmRecord]]:
    if not isinstance(value, list):
        return None
    return [
        AlgorithmRecord(
            name=str(item.get("name", "")),
            steps=_str_list(item.get("steps")),
            complexity=(str(item["complexity"]) if item.get("complexity") else None),
        )
        for item in value
        if isinstance(item, dict) and item.get("name")
    ]


def _parse_flow_diagram(value: Any) -> Optional[FlowDiagram]:
    if isinstance(value, str) and value.strip():
        return FlowDiagram(format="text", content=value.strip())
    if not isinstance(value, dict) or not value.get("content"):
        return None
    fmt = "mermaid" if str(value.get("format", "")).lower() == "mermaid" else "text"
    return FlowDiagram(format=fmt, content=str(value["content"]))


def _parse_detail(raw: Any) -> Optional[DetailPayload]:
    if not isinstance(raw, dict):
        return None
    return DetailPayload(
        ai_summary=_text(raw.get("ai_summary")),
        key_insights=_str_list(raw.get("key_insights")),
        engineering_notes=_text(raw.get("engineering_notes")),
        code_links=validate_code_links(raw.get("code_links")),
        key_formulas=_parse_formulas(raw.get("key_formulas")),
        algorithms=_parse_algorithms(raw.get("algorithms")),
        flow_diagram=_parse_flow_diagram(raw.get("flow_diagram")),
    )


def build_result(parsed: Dict[str, Any], topic_keys: List[str], degraded: bool = False) -> AnalysisResult:
    """
    Normalize a parsed completion into an AnalysisResult.

    Tags are restricted to ``topic_keys`` (falling back to the first key),
    confidence defaults to medium (low when degraded), score is clamped to
    [1, 10]. Degraded results never carry a detail payload.
    """
    fallback_tag = topic_keys[0] if topic_keys else "llm"
    tags: List[str] = []
    for tag in _str_list(parsed.get("tags")):
        tag = tag.lower()
        if tag in topic_keys and tag not in tags:
            tags.append(tag)
    if not tags:
        tags = [fallback_tag]

    confidence = parsed.get("confidence")
    if confidence not in VALID_CONFIDENCES:
        confidence = "low" if degraded else "medium"

    detail = None
    if not degraded:
        detail = _parse_detail(parsed.get("deep_analysis") or parsed.get("deepAnalysis"))

    return AnalysisResult(
        tags=tags,
        confidence=confidence,
        score=_coerce_score(parsed.get("score")),
        reasoning=_text(parsed.get("classification_reasoning") or parsed.get("reasoning")),
        score_reason=_text(parsed.get("score_reasoning") or parsed.get("score_reason")),
        detail=detail,
        degraded=degraded,
    )


class ResponseReconciler:
    """Turn raw completion text into a normalized AnalysisResult."""

    def __init__(self, topic_keys: List[str], logger: Optional[logging.Logger] = None) -> None:
        self.topic_keys = list(topic_keys)
        self.logger = logger or logging.getLogger(__name__)

    def reconcile(self, raw_text: str) -> AnalysisResult:
        json_text = extract_json_block(raw_text or "")

        parsed = self._loads(json_text)
        if parsed is not None:
            self.logger.debug("Parsed completion JSON directly")
            return build_result(parsed, self.topic_keys)

        repaired = repair_truncated_json(json_text)
        parsed = self._loads(repaired)
        if parsed is not None:
            self.logger.info("Repaired truncated completion JSON (%d chars)", len(json_text))
            return build_result(parsed, self.topic_keys)

        preview = (raw_text or "")[:500].replace("\n", " ")
        self.logger.warning("Completion JSON unrecoverable; extracting partial data. head=%r", preview)
        partial = extract_partial_data(raw_text or "", self.topic_keys)
        result = build_result(partial, self.topic_keys, degraded=True)
        self.logger.info(
            "Partial data: tags=%s score=%s confidence=%s", result.tags, result.score, result.confidence
        )
        return result

    def _loads(self, text: str) -> Optional[Dict[str, Any]]:
        if not text:
            return None
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            self.logger.debug(f"JSON parse failed: {e}")
            return None
        return parsed if isinstance(parsed, dict) else None
