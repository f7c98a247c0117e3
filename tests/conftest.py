"""Shared pytest fixtures for the paper insight pipeline test suite."""

import json
from typing import List, Optional

import pytest

from paper_insight_pipeline.models import AnalysisDepth, PaperMetadata
from paper_insight_pipeline.phases.full_text_provider import FullTextResult

TOPICS = [
    {"key": "rl", "label": "Reinforcement Learning", "description": "RL"},
    {"key": "llm", "label": "Large Language Models", "description": "LLMs"},
    {"key": "inference", "label": "Inference Optimization", "description": "Serving"},
]


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set minimum env vars so modules can be used without real services."""
    monkeypatch.setenv("ZHIPUAI_API_KEY", "test-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setenv("LLM_PROVIDER", "glm")
    monkeypatch.delenv("TOPICS_CONFIG", raising=False)


@pytest.fixture
def topics():
    return [dict(t) for t in TOPICS]


@pytest.fixture
def make_paper():
    """Factory fixture for PaperMetadata that passes the prefilter by default."""

    def _make(arxiv_id="2403.01460", **overrides):
        fields = dict(
            arxiv_id=arxiv_id,
            title="Scaling Laws for Reward Model Overoptimization",
            summary=(
                "We study how optimizing a policy against a learned reward model "
                "degrades true performance, measure the effect across model sizes, "
                "and propose a simple correction that keeps the gold reward rising "
                "for longer in practical RLHF pipelines."
            ),
            authors=["Ada Lovelace", "Alan Turing"],
            categories=["cs.LG", "cs.AI"],
            published="2026-10-18T12:00:00Z",
            updated="2026-10-18T12:00:00Z",
            version=1,
            arxiv_url=f"https://arxiv.org/abs/{arxiv_id}",
            pdf_url=f"https://arxiv.org/pdf/{arxiv_id}",
        )
        fields.update(overrides)
        return PaperMetadata(**fields)

    return _make


def completion_json(score=8, tags=("llm",), confidence="high", detail=None) -> str:
    payload = {
        "tags": list(tags),
        "confidence": confidence,
        "classification_reasoning": "Fits the topic",
        "score": score,
        "score_reasoning": "Solid contribution",
        "deep_analysis": detail
        if detail is not None
        else {"ai_summary": "A summary.", "engineering_notes": "Use it."},
    }
    return json.dumps(payload)


class FakeCompletionClient:
    """Stands in for CompletionClient; returns queued responses in order."""

    quick_model = "quick-model"
    deep_model = "deep-model"

    def __init__(self, responses: List):
        self.responses = list(responses)
        self.calls = []

    def generate(self, messages, *, model=None, max_tokens=4000, temperature=0.1):
        self.calls.append({"messages": messages, "model": model, "max_tokens": max_tokens})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeTextProvider:
    """Stands in for FullTextProvider with a fixed raw document (or none)."""

    def __init__(self, raw_text: Optional[str] = None):
        self.raw_text = raw_text
        self.requests = []

    def get_full_text_by_depth(self, paper_id, depth):
        depth = AnalysisDepth.parse(depth)
        self.requests.append((paper_id, depth))
        if depth <= AnalysisDepth.BASIC:
            return FullTextResult(content=None, used_full_text=False, source="abstract")
        if self.raw_text is None:
            return FullTextResult(
                content=None, used_full_text=False, source="abstract", error="LaTeX source not found"
            )
        from paper_insight_pipeline.utils.latex_extractor import extract_content_by_depth

        content = extract_content_by_depth(self.raw_text, depth)
        return FullTextResult(
            content=content, used_full_text=True, source="latex", length=len(content), raw_text=self.raw_text
        )


SAMPLE_LATEX = r"""\documentclass{article}
\begin{document}
\section{Introduction}
Reward models are imperfect proxies \cite{gao2022}. We measure overoptimization.
\section{Method}
We fit scaling laws to the gold reward as a function of KL distance.
\section{Conclusion}
Overoptimization follows predictable laws.
\bibliography{refs}
\end{document}
"""


@pytest.fixture
def sample_latex():
    return SAMPLE_LATEX
