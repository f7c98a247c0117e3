"""
Data models for the paper insight pipeline.
Defines all data structures passed between the prefilter, orchestrator and ledger.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Optional, Dict, Any, Literal

Confidence = Literal["high", "medium", "low"]


class AnalysisDepth(str, Enum):
    """
    How much evidence/analysis effort was applied to a paper.

    Ordered ``NONE < BASIC < STANDARD < FULL`` so upgrade checks are plain
    comparisons. Values are the strings stored in the ledger.
    """

    NONE = "none"
    BASIC = "basic"
    STANDARD = "standard"
    FULL = "full"

    @property
    def rank(self) -> int:
        return _DEPTH_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, AnalysisDepth):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, AnalysisDepth):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, AnalysisDepth):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, AnalysisDepth):
            return NotImplemented
        return self.rank >= other.rank

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "AnalysisDepth":
        """
        Parse a stored or configured depth string.

        Accepts the legacy names ``abstract`` (basic) and ``full_text`` (full).
        Anything unrecognized maps to NONE.
        """
        if isinstance(value, AnalysisDepth):
            return value
        if not value:
            return cls.NONE
        text = str(value).strip().lower()
        legacy = {"abstract": cls.BASIC, "full_text": cls.FULL, "fulltext": cls.FULL}
        if text in legacy:
            return legacy[text]
        for member in cls:
            if member.value == text:
                return member
        return cls.NONE


_DEPTH_ORDER = [AnalysisDepth.NONE, AnalysisDepth.BASIC, AnalysisDepth.STANDARD, AnalysisDepth.FULL]

# Depths a caller may request (NONE is only ever a stored state)
REQUESTABLE_DEPTHS = (AnalysisDepth.BASIC, AnalysisDepth.STANDARD, AnalysisDepth.FULL)


@dataclass
class PaperMetadata:
    """Descriptive metadata for one preprint, as returned by the metadata source."""
    arxiv_id: str                       # Normalized id, no version suffix
    title: str
    summary: str                        # Raw abstract
    authors: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    published: Optional[str] = None     # ISO-8601 timestamp
    updated: Optional[str] = None       # ISO-8601 timestamp
    version: int = 1
    arxiv_url: Optional[str] = None
    pdf_url: Optional[str] = None

    @property
    def versioned_id(self) -> str:
        return f"{self.arxiv_id}v{self.version}" if self.version else self.arxiv_id


@dataclass(frozen=True)
class FilterVerdict:
    """Outcome of the rule prefilter; transient, never stored."""
    passed: bool
    reason: str
    score: Optional[int] = None  # Heuristic base score, only set when passed


@dataclass
class KeyFormula:
    latex: str
    name: str
    description: str = ""


@dataclass
class AlgorithmRecord:
    name: str
    steps: List[str] = field(default_factory=list)
    complexity: Optional[str] = None


@dataclass
class FlowDiagram:
    format: Literal["mermaid", "text"]
    content: str


@dataclass
class DetailPayload:
    """Nested analysis payload returned by the completion service."""
    ai_summary: str = ""
    key_insights: List[str] = field(default_factory=list)
    engineering_notes: str = ""
    code_links: List[str] = field(default_factory=list)
    key_formulas: Optional[List[KeyFormula]] = None   # None = not requested / below threshold
    algorithms: Optional[List[AlgorithmRecord]] = None
    flow_diagram: Optional[FlowDiagram] = None

    @property
    def has_details(self) -> bool:
        return bool(self.key_formulas or self.algorithms or self.flow_diagram)


@dataclass
class AnalysisResult:
    """
    Output of one orchestrator run for one paper.

    Transient: produced by the orchestrator, consumed immediately by the ledger.
    """
    tags: List[str]
    confidence: Confidence
    score: int
    reasoning: str = ""
    score_reason: str = ""
    detail: Optional[DetailPayload] = None
    degraded: bool = False  # True when only partial fields could be recovered


@dataclass
class OrchestratorOutcome:
    result: AnalysisResult
    depth: AnalysisDepth
    evidence_source: str = "abstract"  # cache | latex | abstract


@dataclass
class PaperRecord:
    """
    A paper as persisted in the ledger.

    Descriptive fields are refreshed from metadata; analysis fields only ever
    move toward a higher ``analysis_type``.
    """
    id: str
    arxiv_id: str
    title: str
    summary: str
    authors: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    published_date: Optional[str] = None
    arxiv_url: Optional[str] = None
    pdf_url: Optional[str] = None
    version: int = 1

    # Prefilter
    filter_score: Optional[int] = None
    filter_reason: Optional[str] = None

    # Analysis
    tags: List[str] = field(default_factory=list)
    confidence: Optional[str] = None
    score: Optional[int] = None
    score_reason: Optional[str] = None
    reasoning: Optional[str] = None
    ai_summary: Optional[str] = None
    key_insights: List[str] = field(default_factory=list)
    engineering_notes: Optional[str] = None
    code_links: List[str] = field(default_factory=list)
    key_formulas: Optional[List[Dict[str, Any]]] = None
    algorithms: Optional[List[Dict[str, Any]]] = None
    flow_diagram: Optional[Dict[str, Any]] = None
    is_deep_analyzed: bool = False
    analysis_type: str = AnalysisDepth.NONE.value

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def depth(self) -> AnalysisDepth:
        return AnalysisDepth.parse(self.analysis_type)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaperRecord":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class PaperQuery:
    """Filters for listing stored papers."""
    tag: Optional[str] = None
    min_score: Optional[int] = None
    deep_analyzed_only: bool = False
    date_from: Optional[str] = None  # YYYY-MM-DD, inclusive
    date_to: Optional[str] = None    # YYYY-MM-DD, inclusive
    search: Optional[str] = None
    sort: Literal["date", "score"] = "date"
    limit: int = 20
    offset: int = 0


@dataclass
class PaperPage:
    papers: List[PaperRecord]
    total: int
    has_more: bool


@dataclass
class RunSummary:
    """Aggregate counts for one batch analysis run."""
    fetched: int = 0
    filtered: int = 0
    processed: int = 0
    skipped: int = 0
    discarded: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    by_tag: Dict[str, int] = field(default_factory=dict)
    by_confidence: Dict[str, int] = field(default_factory=dict)
    by_score: Dict[str, int] = field(default_factory=lambda: {"high": 0, "medium": 0, "low": 0})

    @property
    def errored(self) -> int:
        return len(self.errors)


@dataclass
class ReanalyzeSummary:
    processed: int = 0
    upgraded: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
