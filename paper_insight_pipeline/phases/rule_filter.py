"""
Rule-based prefilter.

Zero-cost, deterministic accept/reject pass over raw arXiv metadata, run
before any network or completion work. First failing rule wins.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from paper_insight_pipeline.models import FilterVerdict, PaperMetadata

logger = logging.getLogger(__name__)

TITLE_BLACKLIST = [
    "workshop",
    "note",
    "preliminary",
    "draft",
    "commentary",
    "opinion",
    "position paper",
    "tutorial",
    "survey",
    "review",
    "perspective",
    "thesis",
]

TOP_VENUE_KEYWORDS = [
    "neurips",
    "neural information processing systems",
    "icml",
    "international conference on machine learning",
    "iclr",
    "international conference on learning representations",
    "acl",
    "association for computational linguistics",
    "emnlp",
    "aaai",
    "ijcai",
    "kdd",
    "sigmod",
    "vldb",
    "icde",
]

RETRACTION_MARKERS = ("retracted", "withdrawn", "this paper has been removed")
NON_RESEARCH_MARKERS = ("we are hiring", "job opening", "call for papers")

MIN_TITLE_LENGTH = 15
MIN_SUMMARY_LENGTH = 200
MAX_VERSION = 5

BASE_SCORE = 5
TOP_VENUE_SCORE = 7


def get_paper_version(paper_id: str) -> int:
    """Version number from a ``...vN`` identifier; 1 when there is no suffix."""
    m = re.search(r"v(\d+)$", paper_id or "")
    return int(m.group(1)) if m else 1


def apply_rule_filter(paper: PaperMetadata) -> FilterVerdict:
    """
    Apply the rule-based checks to one paper.

    Returns:
        FilterVerdict; on success ``score`` is 7 for papers mentioning a top
        venue, else 5.
    """
    if not paper.authors:
        return FilterVerdict(False, "No authors listed")

    title = paper.title or ""
    title_lower = title.lower()
    for word in TITLE_BLACKLIST:
        if word in title_lower:
            return FilterVerdict(False, f"Title contains blacklist word: {word}")

    if len(title) < MIN_TITLE_LENGTH:
        return FilterVerdict(False, "Title too short")

    summary = paper.summary or ""
    if len(summary) < MIN_SUMMARY_LENGTH:
        return FilterVerdict(False, "Summary too short")

    summary_lower = summary.lower()
    if any(marker in summary_lower for marker in RETRACTION_MARKERS):
        return FilterVerdict(False, "Paper retracted or withdrawn")

    if any(marker in summary_lower for marker in NON_RESEARCH_MARKERS):
        return FilterVerdict(False, "Non-research content")

    version = get_paper_version(paper.versioned_id)
    if version > MAX_VERSION:
        return FilterVerdict(False, f"Too many versions (v{version})")

    combined = f"{title_lower} {summary_lower}"
    score = TOP_VENUE_SCORE if any(venue in combined for venue in TOP_VENUE_KEYWORDS) else BASE_SCORE
    return FilterVerdict(True, "Passed rule-based filter", score)


def filter_papers(
    papers: List[PaperMetadata],
) -> Tuple[List[Tuple[PaperMetadata, FilterVerdict]], List[Tuple[PaperMetadata, str]]]:
    """
    Run the prefilter over a batch.

    Returns:
        (passed, rejected): passed pairs each paper with its verdict (for the
        base score); rejected pairs each paper with the rejection reason.
    """
    passed: List[Tuple[PaperMetadata, FilterVerdict]] = []
    rejected: List[Tuple[PaperMetadata, str]] = []
    for paper in papers:
        verdict = apply_rule_filter(paper)
        if verdict.passed:
            passed.append((paper, verdict))
        else:
            rejected.append((paper, verdict.reason))
    logger.info(f"Rule filter: {len(passed)} passed, {len(rejected)} rejected")
    return passed, rejected


def _age_days(timestamp: Optional[str], now: datetime) -> Optional[float]:
    if not timestamp:
        return None
    try:
        ts = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (now - ts).total_seconds() / 86400


def is_recent_update(
    paper: PaperMetadata, max_days_old: int = 7, now: Optional[datetime] = None
) -> bool:
    """True for an old paper that received a new version within ``max_days_old`` days."""
    now = now or datetime.now(timezone.utc)
    published_age = _age_days(paper.published, now)
    updated_age = _age_days(paper.updated, now)
    if published_age is None or updated_age is None:
        return False
    return published_age > max_days_old and updated_age <= max_days_old
