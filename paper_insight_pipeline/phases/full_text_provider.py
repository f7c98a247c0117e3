"""
Full text provider.

Single entry point for depth-based evidence acquisition: consults the
evidence cache, downloads and flattens the LaTeX source on a miss, caches the
raw flattened source (always the whole document, whatever the depth), and
slices it for the requested depth.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union

from paper_insight_pipeline.models import AnalysisDepth
from paper_insight_pipeline.services.source_fetcher import SourceFetcher, SourceUnavailableError
from paper_insight_pipeline.utils.evidence_cache import EvidenceCache
from paper_insight_pipeline.utils.latex_extractor import extract_content_by_depth

EvidenceSource = Literal["cache", "latex", "abstract", "error"]


@dataclass
class FullTextResult:
    content: Optional[str]
    used_full_text: bool
    source: EvidenceSource
    length: int = 0
    error: Optional[str] = None
    # Flattened source, kept so a later phase can re-slice without re-downloading
    raw_text: Optional[str] = None


class FullTextProvider:
    """Acquire depth-appropriate evidence text for a paper."""

    def __init__(
        self,
        cache: Optional[EvidenceCache] = None,
        fetcher: Optional[SourceFetcher] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.cache = cache or EvidenceCache(logger=self.logger)
        self.fetcher = fetcher or SourceFetcher(logger=self.logger)

    def get_raw_source(self, paper_id: str) -> Tuple[str, str]:
        """
        Flattened LaTeX for a paper, from cache or network.

        Returns:
            (text, source) where source is "cache" or "latex"

        Raises:
            SourceUnavailableError: download / archive failure
        """
        cached = self.cache.get(paper_id)
        if cached:
            self.logger.debug(f"Evidence cache hit for {paper_id}")
            return cached, "cache"

        latex = self.fetcher.fetch(paper_id)
        if not latex.strip():
            raise SourceUnavailableError(f"LaTeX source for {paper_id} is empty")
        self.cache.set(paper_id, latex)
        return latex, "latex"

    def get_full_text_by_depth(
        self, paper_id: str, depth: Union[AnalysisDepth, str]
    ) -> FullTextResult:
        """
        Evidence for ``depth``:

        - basic: nothing (abstract-only analysis, no network access)
        - standard: Introduction + Conclusion
        - full: the whole cleaned document

        Source failures are reported in the result (source="abstract" with
        ``error`` set) rather than raised, so the caller can fall back.
        """
        depth = AnalysisDepth.parse(depth)
        if depth <= AnalysisDepth.BASIC:
            return FullTextResult(content=None, used_full_text=False, source="abstract")

        self.logger.info(f"Getting full text for {paper_id} (depth={depth})")
        try:
            raw, source = self.get_raw_source(paper_id)
        except SourceUnavailableError as e:
            self.logger.warning(f"Source unavailable for {paper_id}: {e}")
            return FullTextResult(content=None, used_full_text=False, source="abstract", error=str(e))
        except OSError as e:
            self.logger.error(f"Evidence acquisition failed for {paper_id}: {e}")
            return FullTextResult(content=None, used_full_text=False, source="error", error=str(e))

        content = extract_content_by_depth(raw, depth)
        return FullTextResult(
            content=content,
            used_full_text=True,
            source=source,
            length=len(content),
            raw_text=raw,
        )
