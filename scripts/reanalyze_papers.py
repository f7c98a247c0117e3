#!/usr/bin/env python3
"""
Upgrade stored papers to a deeper analysis.

Usage examples:

1) Upgrade high-scoring basic papers to standard:
    python scripts/reanalyze_papers.py --depth standard

2) Full analysis for specific papers, even if already analyzed:
    python scripts/reanalyze_papers.py --depth full --papers 2403.01460 2402.12345v2 --force
"""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict

from paper_insight_pipeline.config import DEEP_ANALYSIS_THRESHOLD
from paper_insight_pipeline.entrypoints import reanalyze_papers
from paper_insight_pipeline.models import REQUESTABLE_DEPTHS
from paper_insight_pipeline.utils.logger import setup_logger


def main() -> None:
    parser = argparse.ArgumentParser(description="Re-analyze stored papers at a deeper level")
    parser.add_argument(
        "--depth",
        choices=[d.value for d in REQUESTABLE_DEPTHS],
        default="standard",
        help="Target analysis depth",
    )
    parser.add_argument("--papers", nargs="+", help="Explicit arXiv ids (default: upgrade filter)")
    parser.add_argument(
        "--threshold",
        type=int,
        default=DEEP_ANALYSIS_THRESHOLD,
        help="Minimum stored score for upgrading already-analyzed papers",
    )
    parser.add_argument("--limit", type=int, default=None, help="Max papers to re-analyze")
    parser.add_argument("--force", action="store_true", help="Ignore ledger depth checks for --papers")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    args = parser.parse_args()

    setup_logger(level=args.log_level)

    summary = reanalyze_papers(
        depth=args.depth,
        paper_ids=args.papers,
        threshold=args.threshold,
        force=args.force,
        limit=args.limit,
    )

    print("\n== Reanalysis done ==")
    print(json.dumps(asdict(summary), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
