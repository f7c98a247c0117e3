"""Tests for the batch run and reanalysis entrypoints."""

from unittest.mock import MagicMock

import pytest

from paper_insight_pipeline.entrypoints import reanalyze_papers, run_analysis
from paper_insight_pipeline.models import AnalysisDepth, AnalysisResult, DetailPayload, OrchestratorOutcome
from paper_insight_pipeline.phases.ledger import AnalysisLedger
from paper_insight_pipeline.services.arxiv_client import ArxivAPIError
from paper_insight_pipeline.services.llm_client import CompletionError
from paper_insight_pipeline.services.paper_store import PaperStore


class ScriptedOrchestrator:
    """Returns a per-paper outcome (or raises) and records what it saw."""

    def __init__(self, scores=None, failures=(), achieved=None):
        self.scores = scores or {}
        self.failures = set(failures)
        self.achieved = achieved
        self.calls = []

    def analyze(self, paper, depth):
        depth = AnalysisDepth.parse(depth)
        self.calls.append((paper.arxiv_id, depth, paper.title))
        if paper.arxiv_id in self.failures:
            raise CompletionError("glm:glm-4.7 failed after 10 attempts")
        score = self.scores.get(paper.arxiv_id, 7)
        if score is None:
            return None
        result = AnalysisResult(
            tags=["llm"] if score >= 5 else ["rl"],
            confidence="high",
            score=score,
            detail=DetailPayload(ai_summary="Summary"),
        )
        return OrchestratorOutcome(result=result, depth=self.achieved or depth)


@pytest.fixture
def ledger(tmp_path):
    return AnalysisLedger(PaperStore(tmp_path / "data.json"))


def arxiv_returning(papers):
    client = MagicMock()
    client.fetch_recent.return_value = papers
    return client


class TestRunAnalysis:

    def test_counts_and_stats(self, ledger, make_paper):
        papers = [make_paper("2410.0000%d" % i) for i in range(1, 5)]
        papers.append(make_paper("2410.00009", authors=[]))
        orchestrator = ScriptedOrchestrator(scores={"2410.00001": 9, "2410.00002": 5, "2410.00003": None})
        client = arxiv_returning(papers)

        summary = run_analysis(
            categories=["cs.LG"], max_papers=10, days_back=2, depth="basic",
            arxiv_client=client, orchestrator=orchestrator, ledger=ledger,
        )

        client.fetch_recent.assert_called_once_with(["cs.LG"], max_results=20, days_back=2)
        assert summary.fetched == 5
        assert summary.filtered == 4
        assert summary.processed == 3
        assert summary.discarded == 1
        assert summary.by_score == {"high": 2, "medium": 1, "low": 0}
        assert summary.by_tag == {"llm": 3}
        assert summary.by_confidence == {"high": 3}
        assert ledger.get("2410.00003") is None
        assert ledger.get("2410.00001").score == 9

    def test_failures_are_isolated_per_paper(self, ledger, make_paper):
        papers = [make_paper("2410.00001"), make_paper("2410.00002"), make_paper("2410.00003")]
        orchestrator = ScriptedOrchestrator(failures={"2410.00002"})

        summary = run_analysis(
            depth="standard", arxiv_client=arxiv_returning(papers),
            orchestrator=orchestrator, ledger=ledger,
        )

        assert summary.processed == 2
        assert summary.errors == [
            {"paper_id": "2410.00002", "error": "glm:glm-4.7 failed after 10 attempts"}
        ]
        assert ledger.get("2410.00003") is not None

    def test_caps_at_max_papers(self, ledger, make_paper):
        papers = [make_paper("2410.0000%d" % i) for i in range(1, 6)]
        orchestrator = ScriptedOrchestrator()
        summary = run_analysis(
            max_papers=2, depth="basic", arxiv_client=arxiv_returning(papers),
            orchestrator=orchestrator, ledger=ledger,
        )
        assert summary.processed == 2
        assert [c[0] for c in orchestrator.calls] == ["2410.00001", "2410.00002"]

    def test_second_run_skips_fully_analyzed_papers(self, ledger, make_paper):
        papers = [make_paper("2410.00001")]
        run_analysis(depth="full", arxiv_client=arxiv_returning(papers),
                     orchestrator=ScriptedOrchestrator(), ledger=ledger)

        orchestrator = ScriptedOrchestrator()
        summary = run_analysis(depth="standard", arxiv_client=arxiv_returning(papers),
                               orchestrator=orchestrator, ledger=ledger)
        assert summary.skipped == 1
        assert orchestrator.calls == []

        forced = run_analysis(depth="standard", force_reanalyze=True, arxiv_client=arxiv_returning(papers),
                              orchestrator=orchestrator, ledger=ledger)
        assert forced.processed == 1
        assert ledger.get("2410.00001").analysis_type == "full"

    def test_clear_existing(self, ledger, make_paper):
        run_analysis(depth="basic", arxiv_client=arxiv_returning([make_paper("2410.00001")]),
                     orchestrator=ScriptedOrchestrator(), ledger=ledger)
        run_analysis(depth="basic", clear_existing=True, arxiv_client=arxiv_returning([]),
                     orchestrator=ScriptedOrchestrator(), ledger=ledger)
        assert ledger.store.all_papers() == []

    def test_invalid_depth_rejected(self, ledger):
        with pytest.raises(ValueError):
            run_analysis(depth="deep", arxiv_client=MagicMock(), orchestrator=MagicMock(), ledger=ledger)


class TestReanalyze:

    def seed(self, ledger, make_paper):
        run_analysis(
            depth="basic",
            arxiv_client=arxiv_returning([make_paper("2410.00001"), make_paper("2410.00002")]),
            orchestrator=ScriptedOrchestrator(scores={"2410.00001": 9, "2410.00002": 6}),
            ledger=ledger,
        )

    def test_upgrade_filter_selects_high_scorers(self, ledger, make_paper):
        self.seed(ledger, make_paper)
        client = MagicMock()
        client.fetch_by_id.side_effect = lambda pid: make_paper(pid, title="Refreshed Title From arXiv")
        orchestrator = ScriptedOrchestrator(scores={"2410.00001": 9})

        summary = reanalyze_papers(
            depth="standard", threshold=8, arxiv_client=client, orchestrator=orchestrator, ledger=ledger,
        )

        assert summary.processed == 1
        assert summary.upgraded == 1
        assert [c[0] for c in orchestrator.calls] == ["2410.00001"]
        stored = ledger.get("2410.00001")
        assert stored.analysis_type == "standard"
        assert stored.title == "Refreshed Title From arXiv"

    def test_metadata_falls_back_to_stored_record(self, ledger, make_paper):
        self.seed(ledger, make_paper)
        client = MagicMock()
        client.fetch_by_id.side_effect = ArxivAPIError("arXiv API returned 503")
        orchestrator = ScriptedOrchestrator()

        summary = reanalyze_papers(
            depth="full", paper_ids=["2410.00002v1"], arxiv_client=client,
            orchestrator=orchestrator, ledger=ledger,
        )

        assert summary.processed == 1
        assert orchestrator.calls[0][2] == make_paper().title

    def test_explicit_ids_respect_ledger_unless_forced(self, ledger, make_paper):
        self.seed(ledger, make_paper)
        client = MagicMock()
        client.fetch_by_id.return_value = None
        reanalyze_papers(depth="full", paper_ids=["2410.00001"], arxiv_client=client,
                         orchestrator=ScriptedOrchestrator(), ledger=ledger)

        summary = reanalyze_papers(depth="full", paper_ids=["2410.00001", "2499.99999"], arxiv_client=client,
                                   orchestrator=ScriptedOrchestrator(), ledger=ledger)
        assert summary.skipped == 1
        assert summary.errors == [{"paper_id": "2499.99999", "error": "Paper not found in store"}]

        forced = reanalyze_papers(depth="full", paper_ids=["2410.00001"], force=True, arxiv_client=client,
                                  orchestrator=ScriptedOrchestrator(), ledger=ledger)
        assert forced.processed == 1
        assert forced.upgraded == 0

    def test_errors_isolated(self, ledger, make_paper):
        self.seed(ledger, make_paper)
        client = MagicMock()
        client.fetch_by_id.return_value = None
        summary = reanalyze_papers(
            depth="full", threshold=5, arxiv_client=client,
            orchestrator=ScriptedOrchestrator(failures={"2410.00001"}), ledger=ledger,
        )
        assert summary.processed == 1
        assert [e["paper_id"] for e in summary.errors] == ["2410.00001"]
