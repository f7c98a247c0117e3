#!/usr/bin/env python3
"""
Inspect or clear the LaTeX evidence cache and show paper store statistics.

Usage:
    python scripts/cache_admin.py stats
    python scripts/cache_admin.py clear
"""

import argparse
import json

from paper_insight_pipeline.entrypoints import clear_cache, get_cache_stats, get_store_stats
from paper_insight_pipeline.utils.logger import setup_logger


def main() -> None:
    parser = argparse.ArgumentParser(description="Evidence cache / paper store maintenance")
    parser.add_argument("command", choices=["stats", "clear"], help="What to do")
    args = parser.parse_args()

    setup_logger(file_output=False)

    if args.command == "clear":
        removed = clear_cache()
        print(f"Removed {removed} cached evidence files")
        return

    print("Evidence cache:")
    print(json.dumps(get_cache_stats(), indent=2))
    print("Paper store:")
    print(json.dumps(get_store_stats(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
