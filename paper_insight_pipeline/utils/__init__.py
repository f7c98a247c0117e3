# Utils package initialization

from paper_insight_pipeline.utils.paper_id import (
    normalize_paper_id,
    safe_file_stem,
    split_version,
)

__all__ = [
    "normalize_paper_id",
    "safe_file_stem",
    "split_version",
]
