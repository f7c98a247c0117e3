"""
Library entrypoints for the Paper Insight Pipeline.

Goal:
- Provide a single in-process entry for each batch job (the scripts call here).
- Keep the scripts as thin argparse wrappers.

Every collaborator (metadata source, orchestrator, ledger) can be injected, so
callers and tests can swap in their own; by default each one is built from
config.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from paper_insight_pipeline.config import (
    ANALYSIS_DEPTH,
    ARXIV_CATEGORIES,
    DAYS_BACK,
    DEEP_ANALYSIS_THRESHOLD,
    FORCE_REANALYZE,
    MAX_PAPERS,
)
from paper_insight_pipeline.models import (
    AnalysisDepth,
    AnalysisResult,
    PaperMetadata,
    PaperRecord,
    ReanalyzeSummary,
    RunSummary,
)
from paper_insight_pipeline.phases.ledger import AnalysisLedger, select_for_upgrade, should_process
from paper_insight_pipeline.phases.orchestrator import DepthOrchestrator
from paper_insight_pipeline.phases.rule_filter import filter_papers
from paper_insight_pipeline.services.arxiv_client import ArxivAPIError, ArxivClient
from paper_insight_pipeline.utils.evidence_cache import EvidenceCache
from paper_insight_pipeline.utils.logger import log_execution_time
from paper_insight_pipeline.utils.paper_id import normalize_paper_id


# ----------------------------- small helpers -----------------------------

def _requested_depth(depth: Union[AnalysisDepth, str]) -> AnalysisDepth:
    parsed = AnalysisDepth.parse(depth)
    if parsed == AnalysisDepth.NONE:
        raise ValueError(f"Invalid analysis depth: {depth!r} (expected basic, standard or full)")
    return parsed


def _score_bucket(score: int) -> str:
    if score >= 7:
        return "high"
    if score >= 5:
        return "medium"
    return "low"


def _count_result(summary: RunSummary, result: AnalysisResult) -> None:
    for tag in result.tags:
        summary.by_tag[tag] = summary.by_tag.get(tag, 0) + 1
    summary.by_confidence[result.confidence] = summary.by_confidence.get(result.confidence, 0) + 1
    summary.by_score[_score_bucket(result.score)] += 1


def _metadata_from_record(record: PaperRecord) -> PaperMetadata:
    """Rebuild metadata from a stored record when the metadata source is unavailable."""
    return PaperMetadata(
        arxiv_id=record.arxiv_id,
        title=record.title,
        summary=record.summary,
        authors=list(record.authors),
        categories=list(record.categories),
        published=record.published_date,
        version=record.version,
        arxiv_url=record.arxiv_url,
        pdf_url=record.pdf_url,
    )


# ----------------------------- entrypoint: batch analysis -----------------------------

@log_execution_time
def run_analysis(
    *,
    categories: Optional[Sequence[str]] = None,
    max_papers: int = MAX_PAPERS,
    days_back: int = DAYS_BACK,
    depth: Union[AnalysisDepth, str] = ANALYSIS_DEPTH,
    force_reanalyze: bool = FORCE_REANALYZE,
    clear_existing: bool = False,
    arxiv_client: Optional[ArxivClient] = None,
    orchestrator: Optional[DepthOrchestrator] = None,
    ledger: Optional[AnalysisLedger] = None,
    logger: Optional[logging.Logger] = None,
) -> RunSummary:
    """
    Fetch recent papers, prefilter, analyze and store them.

    Args:
        categories: arXiv categories to fetch (default ARXIV_CATEGORIES)
        max_papers: Maximum number of papers analyzed in this run
        days_back: Only papers published within this many days
        depth: Requested analysis depth (basic / standard / full)
        force_reanalyze: Analyze papers even if the ledger says no work is needed
        clear_existing: Delete every stored paper before the run

    Returns:
        RunSummary with counts and per-paper errors. A failing paper never
        aborts the batch.

    Raises:
        ArxivAPIError: the metadata source could not be queried at all.
    """
    log = logger or logging.getLogger(__name__)
    requested = _requested_depth(depth)
    categories = list(categories or ARXIV_CATEGORIES)

    ledger = ledger or AnalysisLedger(logger=log)
    arxiv_client = arxiv_client or ArxivClient(logger=log)
    orchestrator = orchestrator or DepthOrchestrator(logger=log)

    if clear_existing:
        removed = ledger.store.clear_all()
        log.info(f"Cleared {removed} existing papers before the run")

    summary = RunSummary()
    papers = arxiv_client.fetch_recent(categories, max_results=max_papers * 2, days_back=days_back)
    summary.fetched = len(papers)

    passed, rejected = filter_papers(papers)
    summary.filtered = len(passed)
    for paper, reason in rejected:
        log.debug(f"Prefilter rejected {paper.arxiv_id}: {reason}")

    candidates = passed[:max_papers]
    log.info(
        f"Fetched {summary.fetched}, {summary.filtered} passed prefilter, "
        f"analyzing up to {len(candidates)} at depth={requested}"
    )

    for index, (paper, verdict) in enumerate(candidates, 1):
        log.info(f"[{index}/{len(candidates)}] {paper.arxiv_id}: {paper.title[:60]}")
        try:
            if not ledger.needs_processing(paper.arxiv_id, requested, force_reanalyze):
                log.info(f"Skipping {paper.arxiv_id}: already analyzed at sufficient depth")
                summary.skipped += 1
                continue

            outcome = orchestrator.analyze(paper, requested)
            if outcome is None:
                summary.discarded += 1
                continue

            # Save right away so a crash later in the batch keeps this paper
            ledger.record(paper, outcome, verdict)
            summary.processed += 1
            _count_result(summary, outcome.result)
        except Exception as e:
            log.error(f"Failed to analyze {paper.arxiv_id}: {e}")
            summary.errors.append({"paper_id": paper.arxiv_id, "error": str(e)})

    log.info(
        "Run finished: processed=%d skipped=%d discarded=%d errors=%d",
        summary.processed, summary.skipped, summary.discarded, summary.errored,
    )
    return summary


# ----------------------------- entrypoint: reanalysis -----------------------------

@log_execution_time
def reanalyze_papers(
    *,
    depth: Union[AnalysisDepth, str] = AnalysisDepth.STANDARD,
    paper_ids: Optional[Sequence[str]] = None,
    threshold: int = DEEP_ANALYSIS_THRESHOLD,
    force: bool = False,
    limit: Optional[int] = None,
    arxiv_client: Optional[ArxivClient] = None,
    orchestrator: Optional[DepthOrchestrator] = None,
    ledger: Optional[AnalysisLedger] = None,
    logger: Optional[logging.Logger] = None,
) -> ReanalyzeSummary:
    """
    Upgrade stored papers to a deeper analysis.

    Without ``paper_ids`` the candidates come from the upgrade filter
    (unanalyzed papers, plus shallower papers scoring at or above
    ``threshold``). With explicit ids each paper is checked against the ledger
    rules instead, unless ``force`` is set.

    Metadata is refreshed from arXiv before analysis; the stored record is the
    fallback when arXiv is unreachable or no longer lists the paper.
    """
    log = logger or logging.getLogger(__name__)
    requested = _requested_depth(depth)

    ledger = ledger or AnalysisLedger(logger=log)
    arxiv_client = arxiv_client or ArxivClient(logger=log)
    orchestrator = orchestrator or DepthOrchestrator(logger=log)

    summary = ReanalyzeSummary()
    targets: List[PaperRecord] = []
    if paper_ids:
        for raw_id in paper_ids:
            arxiv_id = normalize_paper_id(raw_id)
            record = ledger.get(arxiv_id)
            if record is None:
                summary.errors.append({"paper_id": arxiv_id, "error": "Paper not found in store"})
            elif should_process(record, requested, force):
                targets.append(record)
            else:
                summary.skipped += 1
    else:
        targets = select_for_upgrade(ledger.store.all_papers(), requested, threshold)
    if limit is not None:
        targets = targets[:limit]

    log.info(f"Reanalyzing {len(targets)} papers at depth={requested}")

    for index, record in enumerate(targets, 1):
        prior = record.depth
        log.info(f"[{index}/{len(targets)}] {record.arxiv_id} (stored depth={prior})")
        try:
            metadata = _refresh_metadata(arxiv_client, record, log)
            outcome = orchestrator.analyze(metadata, requested)
            if outcome is None:
                summary.skipped += 1
                continue
            ledger.record(metadata, outcome)
            summary.processed += 1
            if outcome.depth > prior:
                summary.upgraded += 1
        except Exception as e:
            log.error(f"Failed to reanalyze {record.arxiv_id}: {e}")
            summary.errors.append({"paper_id": record.arxiv_id, "error": str(e)})

    log.info(
        f"Reanalysis finished: processed={summary.processed} upgraded={summary.upgraded} "
        f"skipped={summary.skipped} errors={len(summary.errors)}"
    )
    return summary


def _refresh_metadata(
    arxiv_client: ArxivClient, record: PaperRecord, log: logging.Logger
) -> PaperMetadata:
    try:
        fresh = arxiv_client.fetch_by_id(record.arxiv_id)
    except ArxivAPIError as e:
        log.warning(f"Metadata refresh failed for {record.arxiv_id}: {e}; using stored record")
        return _metadata_from_record(record)
    if fresh is None:
        log.warning(f"arXiv has no entry for {record.arxiv_id}; using stored record")
        return _metadata_from_record(record)
    return fresh


# ----------------------------- entrypoint: maintenance -----------------------------

def get_cache_stats(cache: Optional[EvidenceCache] = None) -> Dict[str, Any]:
    return (cache or EvidenceCache()).get_stats()


def clear_cache(cache: Optional[EvidenceCache] = None) -> int:
    """Delete every cached evidence file; returns how many were removed."""
    return (cache or EvidenceCache()).clear_all()


def get_store_stats(ledger: Optional[AnalysisLedger] = None) -> Dict[str, Any]:
    return (ledger or AnalysisLedger()).store.get_stats()
