"""
Depth orchestrator.

Drives one paper through evidence acquisition, one or two completion calls
and response reconciliation for a requested analysis depth:

- basic: abstract only, one phase-1 call (summary + notes)
- standard: intro+conclusion for a phase-1 scoring call; papers scoring at or
  above the detail threshold get a phase-2 call on the already-downloaded full
  text and end at depth full
- full: the whole text in one call; the model fills detail fields itself when
  its score reaches the detail threshold

The orchestrator never touches the ledger; it returns the result and the depth
actually achieved, or None when the paper should not be stored.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from paper_insight_pipeline.config import (
    DETAIL_THRESHOLD,
    FULL_MAX_TOKENS,
    LLM_TEMPERATURE,
    MIN_SCORE_TO_SAVE,
    PHASE1_MAX_TOKENS,
    load_topics,
)
from paper_insight_pipeline.models import (
    AnalysisDepth,
    AnalysisResult,
    OrchestratorOutcome,
    PaperMetadata,
)
from paper_insight_pipeline.phases.full_text_provider import FullTextProvider
from paper_insight_pipeline.phases.prompts import OutputLevel, build_messages
from paper_insight_pipeline.phases.reconciler import ResponseReconciler
from paper_insight_pipeline.services.llm_client import CompletionClient, CompletionError, create_llm_client
from paper_insight_pipeline.utils.latex_extractor import extract_content_by_depth


class DepthOrchestrator:
    """Orchestrate the analysis of one paper at a requested depth."""

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        text_provider: Optional[FullTextProvider] = None,
        *,
        topics: Optional[List[Dict[str, Any]]] = None,
        detail_threshold: int = DETAIL_THRESHOLD,
        min_score_to_save: Optional[int] = MIN_SCORE_TO_SAVE,
        phase1_max_tokens: int = PHASE1_MAX_TOKENS,
        full_max_tokens: int = FULL_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.llm_client = llm_client or create_llm_client(logger=self.logger)
        self.text_provider = text_provider or FullTextProvider(logger=self.logger)
        self.topics = topics or load_topics()
        self.detail_threshold = detail_threshold
        self.min_score_to_save = min_score_to_save
        self.phase1_max_tokens = phase1_max_tokens
        self.full_max_tokens = full_max_tokens
        self.temperature = temperature
        self.reconciler = ResponseReconciler([t["key"] for t in self.topics], self.logger)

    def analyze(
        self, paper: PaperMetadata, depth: Union[AnalysisDepth, str]
    ) -> Optional[OrchestratorOutcome]:
        """
        Analyze a paper at the requested depth.

        Args:
            paper: Paper metadata (title, abstract, categories)
            depth: basic / standard / full

        Returns:
            OrchestratorOutcome with the achieved depth, or None when the
            paper scored below ``min_score_to_save`` and must not be stored.

        Raises:
            CompletionError: the completion service failed permanently.
        """
        depth = AnalysisDepth.parse(depth)
        if depth == AnalysisDepth.NONE:
            raise ValueError("Analysis depth must be basic, standard or full")

        self.logger.info(f"Analyzing {paper.arxiv_id} at depth={depth}: {paper.title[:60]}")
        if depth == AnalysisDepth.BASIC:
            return self._analyze_basic(paper)
        if depth == AnalysisDepth.STANDARD:
            return self._analyze_standard(paper)
        return self._analyze_full(paper)

    # ----------------------------- depth paths -----------------------------

    def _analyze_basic(self, paper: PaperMetadata, reason: str = "") -> Optional[OrchestratorOutcome]:
        result = self._call(
            paper,
            output_level="phase1",
            evidence=None,
            max_tokens=self.phase1_max_tokens,
            model=self.llm_client.quick_model,
            call_type="basic" + (f" ({reason})" if reason else ""),
        )
        if not self._passes_save_threshold(paper, result):
            return None
        return OrchestratorOutcome(result=result, depth=AnalysisDepth.BASIC, evidence_source="abstract")

    def _analyze_standard(self, paper: PaperMetadata) -> Optional[OrchestratorOutcome]:
        evidence = self.text_provider.get_full_text_by_depth(paper.arxiv_id, AnalysisDepth.STANDARD)
        if not evidence.used_full_text or not evidence.content:
            self.logger.warning(
                f"No LaTeX evidence for {paper.arxiv_id} ({evidence.error or evidence.source}); "
                "falling back to abstract-only analysis"
            )
            return self._analyze_basic(paper, reason="source unavailable")

        # Phase 1: score on introduction + conclusion
        phase1 = self._call(
            paper,
            output_level="phase1",
            evidence=evidence.content,
            evidence_label="Introduction and Conclusion",
            max_tokens=self.phase1_max_tokens,
            model=self.llm_client.deep_model,
            call_type="standard/phase1",
        )
        if not self._passes_save_threshold(paper, phase1):
            return None

        if phase1.score < self.detail_threshold:
            self.logger.info(
                f"{paper.arxiv_id}: phase-1 score {phase1.score} < {self.detail_threshold}; keeping standard analysis"
            )
            return OrchestratorOutcome(result=phase1, depth=AnalysisDepth.STANDARD, evidence_source=evidence.source)

        # Phase 2: detail extraction on the full text we already have
        self.logger.info(
            f"{paper.arxiv_id}: phase-1 score {phase1.score} >= {self.detail_threshold}; running phase 2"
        )
        full_text = extract_content_by_depth(evidence.raw_text or "", AnalysisDepth.FULL)
        try:
            phase2 = self._call(
                paper,
                output_level="full",
                evidence=full_text,
                max_tokens=self.full_max_tokens,
                model=self.llm_client.deep_model,
                call_type="standard/phase2",
            )
        except CompletionError as e:
            self.logger.error(f"{paper.arxiv_id}: phase 2 failed ({e}); keeping phase-1 result")
            return OrchestratorOutcome(result=phase1, depth=AnalysisDepth.STANDARD, evidence_source=evidence.source)

        if phase2.degraded:
            self.logger.warning(f"{paper.arxiv_id}: phase-2 output unusable; keeping phase-1 result")
            return OrchestratorOutcome(result=phase1, depth=AnalysisDepth.STANDARD, evidence_source=evidence.source)

        self._check_details(paper, phase2)
        return OrchestratorOutcome(result=phase2, depth=AnalysisDepth.FULL, evidence_source=evidence.source)

    def _analyze_full(self, paper: PaperMetadata) -> Optional[OrchestratorOutcome]:
        evidence = self.text_provider.get_full_text_by_depth(paper.arxiv_id, AnalysisDepth.FULL)
        if not evidence.used_full_text or not evidence.content:
            self.logger.warning(
                f"No LaTeX evidence for {paper.arxiv_id} ({evidence.error or evidence.source}); "
                "falling back to abstract-only analysis"
            )
            return self._analyze_basic(paper, reason="source unavailable")

        result = self._call(
            paper,
            output_level="full",
            evidence=evidence.content,
            max_tokens=self.full_max_tokens,
            model=self.llm_client.deep_model,
            call_type="full",
        )
        if not self._passes_save_threshold(paper, result):
            return None
        self._check_details(paper, result)
        return OrchestratorOutcome(result=result, depth=AnalysisDepth.FULL, evidence_source=evidence.source)

    # ----------------------------- helpers -----------------------------

    def _call(
        self,
        paper: PaperMetadata,
        *,
        output_level: OutputLevel,
        evidence: Optional[str],
        max_tokens: int,
        model: str,
        call_type: str,
        evidence_label: str = "Full Paper Text",
    ) -> AnalysisResult:
        messages = build_messages(
            paper,
            self.topics,
            output_level,
            self.detail_threshold,
            evidence=evidence,
            evidence_label=evidence_label,
        )
        self.logger.debug(
            "%s call for %s: model=%s max_tokens=%d evidence=%d chars",
            call_type, paper.arxiv_id, model, max_tokens, len(evidence or ""),
        )
        raw = self.llm_client.generate(
            messages, model=model, max_tokens=max_tokens, temperature=self.temperature
        )
        result = self.reconciler.reconcile(raw)
        self.logger.info(
            f"{paper.arxiv_id} [{call_type}]: tags={result.tags} score={result.score} "
            f"confidence={result.confidence}" + (" (degraded)" if result.degraded else "")
        )
        return result

    def _passes_save_threshold(self, paper: PaperMetadata, result: AnalysisResult) -> bool:
        if self.min_score_to_save is None or result.score >= self.min_score_to_save:
            return True
        self.logger.info(
            f"{paper.arxiv_id}: score {result.score} < min_score_to_save {self.min_score_to_save}; discarding"
        )
        return False

    def _check_details(self, paper: PaperMetadata, result: AnalysisResult) -> None:
        if result.score < self.detail_threshold:
            return
        if result.detail is None or not result.detail.has_details:
            self.logger.warning(
                f"{paper.arxiv_id}: score {result.score} >= {self.detail_threshold} "
                "but no formulas, algorithms or diagram were returned"
            )
