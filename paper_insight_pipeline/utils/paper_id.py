"""
Utilities for normalizing arXiv paper identifiers.

Strategy: the normalized id is the bare arXiv identifier with any ``arxiv:``
prefix, URL prefix and ``vN`` version suffix removed. It is the key used by the
evidence cache, the source fetcher and the ledger.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

_VERSION_RE = re.compile(r"v(\d+)$")
_URL_PREFIX_RE = re.compile(r"^https?://(?:export\.)?arxiv\.org/(?:abs|pdf|e-print)/", re.IGNORECASE)


def split_version(paper_id: Optional[str]) -> Tuple[str, Optional[int]]:
    """
    Split an identifier into (normalized id, version).

    Examples:
        >>> split_version("arxiv:2403.01460v3")
        ('2403.01460', 3)
        >>> split_version("http://arxiv.org/abs/cs/0112017v1")
        ('cs/0112017', 1)
        >>> split_version("2403.01460")
        ('2403.01460', None)
    """
    if not paper_id:
        return "", None
    text = str(paper_id).strip()
    text = _URL_PREFIX_RE.sub("", text)
    text = re.sub(r"^arxiv:", "", text, flags=re.IGNORECASE)
    if text.lower().endswith(".pdf"):
        text = text[:-4]
    m = _VERSION_RE.search(text)
    if m:
        return text[: m.start()], int(m.group(1))
    return text, None


def normalize_paper_id(paper_id: Optional[str]) -> str:
    """Return the bare identifier without prefix or version suffix."""
    return split_version(paper_id)[0]


def safe_file_stem(paper_id: str, max_len: int = 150) -> str:
    """Filesystem-safe stem for a normalized id (old-style ids contain '/')."""
    safe_name = re.sub(r"[^\w\-.]", "_", normalize_paper_id(paper_id))
    return safe_name[:max_len]
