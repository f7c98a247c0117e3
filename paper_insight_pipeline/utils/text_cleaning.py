# utils/text_cleaning.py

import re


def collapse_whitespace(text: str) -> str:
    """Collapse runs of whitespace (including newlines) into single spaces."""
    if not isinstance(text, str):
        return ""
    return re.sub(r"\s+", " ", text).strip()


def sanitize_unicode(text: str) -> str:
    """
    Remove surrogate characters that cause encoding errors
    (e.g., 'invalid low surrogate in string').
    """
    if not isinstance(text, str):
        return ""
    # Lone surrogates (U+D800 to U+DFFF) show up in badly encoded sources.
    return re.sub(r'[\ud800-\udfff]', ' ', text)


def sanitize_for_llm(text: str) -> str:
    """
    Normalize and strip problematic control characters to ensure safe UTF-8 JSON transport.

    This function prepares text for LLM consumption by:
    - Applying Unicode NFKC normalization (canonical composition)
    - Removing control characters (except tabs and newlines)
    - Removing invalid UTF-8 surrogate pairs

    Args:
        text: Input text to sanitize

    Returns:
        Sanitized text safe for JSON encoding and LLM processing
    """
    import unicodedata

    if not isinstance(text, str):
        text = str(text or "")
    text = unicodedata.normalize("NFKC", text)
    # Remove control chars except tabs/newlines
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", " ", text)
    # Drop invalid surrogates by round-tripping through utf-8
    return text.encode("utf-8", "ignore").decode("utf-8", "ignore")


def strip_code_fence(text: str) -> str:
    """
    Remove markdown code fences from text (typically LLM output).

    Handles formats like:
    - ```json\n{...}\n```
    - ```\n{...}\n```

    Args:
        text: Input text potentially wrapped in code fences

    Returns:
        Text with code fences removed
    """
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped[3:]
        if stripped.lower().startswith("json"):
            stripped = stripped[4:]
        stripped = stripped.lstrip("\n")
        if stripped.endswith("```"):
            stripped = stripped[:-3]
        stripped = stripped.rstrip()
    return stripped


def cap_length(text: str, max_chars: int, marker: str) -> str:
    """Hard-cap ``text`` at ``max_chars`` and append ``marker`` when cut."""
    if not isinstance(text, str):
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + marker
