"""Lightweight package init for phases.

Avoid importing heavy modules at import time so consumers that only need the
prefilter or the reconciler do not pull in the completion SDK. Provides lazy
attributes for the common phase classes.
"""

from importlib import import_module
from typing import Any

__all__ = [
    "AnalysisLedger",
    "DepthOrchestrator",
    "FullTextProvider",
    "ResponseReconciler",
]

_LAZY = {
    "AnalysisLedger": "paper_insight_pipeline.phases.ledger",
    "DepthOrchestrator": "paper_insight_pipeline.phases.orchestrator",
    "FullTextProvider": "paper_insight_pipeline.phases.full_text_provider",
    "ResponseReconciler": "paper_insight_pipeline.phases.reconciler",
}


def __getattr__(name: str) -> Any:  # lazy imports
    if name in _LAZY:
        return getattr(import_module(_LAZY[name]), name)
    raise AttributeError(name)
