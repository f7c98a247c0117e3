"""
LaTeX cleaning and depth-based section extraction.

Turns a flattened LaTeX document into the evidence text sent to the
completion service:

- ``basic``: nothing (the caller uses the arXiv abstract instead)
- ``standard``: Introduction + Conclusion sections
- ``full``: the entire cleaned document

Every non-empty result is capped at MAX_CONTENT_LENGTH characters, cut at a
sentence boundary where possible.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Union

from paper_insight_pipeline.config import INTRO_FALLBACK_CHARS, MAX_CONTENT_LENGTH
from paper_insight_pipeline.models import AnalysisDepth

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"
TRUNCATION_MARKER = "\n\n[Content truncated...]"
NO_SECTIONS_MARKER = "\n\n[Note: Could not find Introduction/Conclusion sections, using paper beginning]"

# A section runs until the next \section{, the bibliography, or end of input.
_SECTION_END = r"[\s\S]*?(?=\\section\{|\\bibliography|\Z)"

INTRO_PATTERNS = [
    re.compile(r"\\section\{Introduction\}" + _SECTION_END, re.IGNORECASE),
    re.compile(r"\\section\{\s*1\.?\s*Introduction\s*\}" + _SECTION_END, re.IGNORECASE),
    re.compile(r"\\section\{\s*I\.?\s*Introduction\s*\}" + _SECTION_END, re.IGNORECASE),
    re.compile(r"\\section\{[\d.]+\s*Introduction\}" + _SECTION_END, re.IGNORECASE),
]

CONCLUSION_PATTERNS = [
    re.compile(r"\\section\{Conclusion\}" + _SECTION_END, re.IGNORECASE),
    re.compile(r"\\section\{Conclusions\}" + _SECTION_END, re.IGNORECASE),
    re.compile(r"\\section\{Concluding Remarks\}" + _SECTION_END, re.IGNORECASE),
    re.compile(r"\\section\{Discussion and Conclusions?\}" + _SECTION_END, re.IGNORECASE),
    re.compile(r"\\section\{\s*\d+\.?\s*Conclusions?\s*\}" + _SECTION_END, re.IGNORECASE),
]


def clean_latex_content(tex: str) -> str:
    """
    Remove LaTeX noise that carries no meaning for the model.

    - strips ``%`` comments (escaped ``\\%`` is kept)
    - drops macro definitions (``\\newcommand``, ``\\DeclareMathOperator``)
    - collapses citations to [CITATION], references to [REF] / [EQ]
    - replaces figure environments with [FIGURE]
    - brackets table environments with [TABLE] / [END TABLE]
    """
    if not isinstance(tex, str):
        return ""
    cleaned = tex

    cleaned = re.sub(r"(?<!\\)%.*$", "", cleaned, flags=re.MULTILINE)

    cleaned = re.sub(r"\\newcommand\*?\{[^}]+\}(?:\[\d\])?\{[^}]*\}", "", cleaned)
    cleaned = re.sub(r"\\DeclareMathOperator\*?\{[^}]+\}\{[^}]*\}", "", cleaned)

    cleaned = re.sub(r"\\nocite\{[^}]*\}", "", cleaned)
    cleaned = re.sub(r"\\cite[a-zA-Z]*\*?(?:\[[^\]]*\]){0,2}\{[^}]+\}", "[CITATION]", cleaned)

    cleaned = re.sub(r"\\eqref\{[^}]+\}", "[EQ]", cleaned)
    cleaned = re.sub(r"\\(?:ref|cref|Cref|autoref)\{[^}]+\}", "[REF]", cleaned)

    cleaned = re.sub(r"\\begin\{figure\*?\}[\s\S]*?\\end\{figure\*?\}", "[FIGURE]", cleaned)

    cleaned = re.sub(r"\\begin\{table\*?\}", "[TABLE]\n", cleaned)
    cleaned = re.sub(r"\\end\{table\*?\}", "\n[END TABLE]", cleaned)

    cleaned = re.sub(r"\\(?:begin|end)\{document\}", "", cleaned)

    cleaned = re.sub(r"\n\s*\n\s*\n", "\n\n", cleaned)
    return cleaned.strip()


def _first_match(text: str, patterns: List["re.Pattern[str]"]) -> Optional[str]:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            return m.group(0)
    return None


def extract_introduction(cleaned: str) -> Optional[str]:
    """Return the Introduction section of already-cleaned LaTeX, if present."""
    return _first_match(cleaned, INTRO_PATTERNS)


def extract_conclusion(cleaned: str) -> Optional[str]:
    """Return the first conclusion-like section of already-cleaned LaTeX, if present."""
    return _first_match(cleaned, CONCLUSION_PATTERNS)


def extract_intro_and_conclusion(tex: str) -> str:
    """
    Introduction and Conclusion only, used for the first (scoring) phase of
    standard-depth analysis.

    Falls back to the beginning of the document with an explanatory note when
    neither section can be located.
    """
    cleaned = clean_latex_content(tex)
    sections = [s for s in (extract_introduction(cleaned), extract_conclusion(cleaned)) if s]

    if not sections:
        logger.info(
            "No Introduction/Conclusion sections found; using first %d chars",
            min(INTRO_FALLBACK_CHARS, len(cleaned)),
        )
        return cleaned[:INTRO_FALLBACK_CHARS] + NO_SECTIONS_MARKER

    joined = SECTION_SEPARATOR.join(sections)
    if len(joined) >= len(cleaned):
        # The two sections already span the whole document
        return cleaned
    logger.debug("Extracted %d sections, total length %d", len(sections), len(joined))
    return joined


def extract_content_by_depth(tex: str, depth: Union[AnalysisDepth, str]) -> str:
    """
    Slice a flattened LaTeX document for the requested analysis depth.

    Args:
        tex: Flattened LaTeX source
        depth: basic / standard / full (enum or string)

    Returns:
        Evidence text; always "" for basic
    """
    depth = AnalysisDepth.parse(depth)
    if depth == AnalysisDepth.STANDARD:
        return truncate_to_length(extract_intro_and_conclusion(tex))
    if depth == AnalysisDepth.FULL:
        cleaned = clean_latex_content(tex)
        logger.debug("Full-depth extraction: cleaned content length = %d", len(cleaned))
        return truncate_to_length(cleaned)
    return ""


def truncate_to_length(content: str, max_length: int = MAX_CONTENT_LENGTH) -> str:
    """
    Truncate content, preferring the last full sentence before the limit.

    The cut lands on the last period when it lies beyond 80% of the limit;
    otherwise the text is hard-cut. A marker is always appended when cut.
    """
    if not content or len(content) <= max_length:
        return content

    truncated = content[:max_length]
    last_period = truncated.rfind(".")
    if last_period > max_length * 0.8:
        return truncated[: last_period + 1] + TRUNCATION_MARKER
    return truncated + TRUNCATION_MARKER


def latex_to_plain_text(tex: str) -> str:
    """
    Rough plain-text rendering of LaTeX for previews and log lines.

    Inline math is kept in brackets, display math and code blocks become
    placeholders, and formatting macros are unwrapped to their argument.
    """
    if not isinstance(tex, str):
        return ""
    text = tex

    text = re.sub(r"\\\[([\s\S]*?)\\\]", r"\n[MATH BLOCK]\n\1\n[END MATH]\n", text)
    text = re.sub(r"\$\$([^$]+)\$\$", r"\n[MATH BLOCK]\n\1\n[END MATH]\n", text)
    text = re.sub(r"\\\((.+?)\\\)", r"[\1]", text)
    text = re.sub(r"\$([^$]+)\$", r"[\1]", text)

    text = re.sub(r"\\begin\{equation\*?\}[\s\S]*?\\end\{equation\*?\}", "[EQUATION]", text)
    text = re.sub(r"\\begin\{align\*?\}[\s\S]*?\\end\{align\*?\}", "[ALIGNMENT]", text)
    text = re.sub(r"\\begin\{(?:lstlisting|verbatim)\}[\s\S]*?\\end\{(?:lstlisting|verbatim)\}", "[CODE]", text)

    text = re.sub(r"\\[a-zA-Z]+\*?(?:\[[^\]]*\])?\{([^}]*)\}", r"\1", text)
    text = re.sub(r"[{}]", " ", text)
    return re.sub(r"\s+", " ", text).strip()
