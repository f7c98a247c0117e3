#!/usr/bin/env python3
"""
Fetch recent arXiv papers, prefilter, analyze and store them.

Usage examples:

1) Defaults from .env (categories, depth, max papers):
    python scripts/run_analysis.py

2) Standard depth on two categories, last 2 days:
    python scripts/run_analysis.py --categories cs.LG cs.CL --depth standard --days-back 2

3) Start from an empty store and re-analyze everything:
    python scripts/run_analysis.py --clear-existing --force
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict

from paper_insight_pipeline.config import (
    ANALYSIS_DEPTH,
    ARXIV_CATEGORIES,
    DAYS_BACK,
    FORCE_REANALYZE,
    MAX_PAPERS,
)
from paper_insight_pipeline.entrypoints import run_analysis
from paper_insight_pipeline.models import REQUESTABLE_DEPTHS
from paper_insight_pipeline.utils.logger import setup_logger


def main() -> None:
    parser = argparse.ArgumentParser(description="Batch analysis of recent arXiv papers")
    parser.add_argument(
        "--categories",
        nargs="+",
        default=ARXIV_CATEGORIES,
        help="arXiv categories to fetch, e.g. cs.AI cs.LG",
    )
    parser.add_argument("--max-papers", type=int, default=MAX_PAPERS, help="Max papers analyzed")
    parser.add_argument("--days-back", type=int, default=DAYS_BACK, help="Only papers from the last N days")
    parser.add_argument(
        "--depth",
        choices=[d.value for d in REQUESTABLE_DEPTHS],
        default=ANALYSIS_DEPTH,
        help="Analysis depth (default from ANALYSIS_DEPTH)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        default=FORCE_REANALYZE,
        help="Analyze papers even if already stored at sufficient depth",
    )
    parser.add_argument(
        "--clear-existing",
        action="store_true",
        help="Delete all stored papers before the run",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    args = parser.parse_args()

    setup_logger(level=args.log_level)

    summary = run_analysis(
        categories=args.categories,
        max_papers=args.max_papers,
        days_back=args.days_back,
        depth=args.depth,
        force_reanalyze=args.force,
        clear_existing=args.clear_existing,
    )

    print("\n== Analysis done ==")
    print(json.dumps(asdict(summary), ensure_ascii=False, indent=2))
    sys.exit(1 if summary.errors and summary.processed == 0 else 0)


if __name__ == "__main__":
    main()
