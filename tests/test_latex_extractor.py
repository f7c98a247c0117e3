"""Tests for LaTeX cleaning and depth-based extraction."""

from paper_insight_pipeline.models import AnalysisDepth
from paper_insight_pipeline.utils.latex_extractor import (
    NO_SECTIONS_MARKER,
    SECTION_SEPARATOR,
    TRUNCATION_MARKER,
    clean_latex_content,
    extract_content_by_depth,
    extract_intro_and_conclusion,
    latex_to_plain_text,
    truncate_to_length,
)


def test_clean_latex_content_replaces_noise():
    tex = (
        "Text % a comment\n"
        "50\\% of runs \\citep[see][]{a,b} and \\ref{fig:1} and \\eqref{eq:1}.\n"
        "\\newcommand{\\R}{\\mathbb{R}}\n"
        "\\begin{figure}\\includegraphics{x.png}\\end{figure}\n"
        "\\begin{table}rows\\end{table}\n"
    )
    cleaned = clean_latex_content(tex)
    assert "a comment" not in cleaned
    assert "50\\% of runs [CITATION] and [REF] and [EQ]." in cleaned
    assert "\\newcommand" not in cleaned
    assert "[FIGURE]" in cleaned and "includegraphics" not in cleaned
    assert "[TABLE]" in cleaned and "[END TABLE]" in cleaned


def test_intro_and_conclusion_extracted(sample_latex):
    content = extract_intro_and_conclusion(sample_latex)
    assert content.startswith("\\section{Introduction}")
    assert SECTION_SEPARATOR in content
    assert "Overoptimization follows predictable laws." in content
    # The method section and bibliography are left out
    assert "scaling laws to the gold reward" not in content
    assert "\\bibliography" not in content


def test_numbered_section_headers_recognized():
    tex = "\\section{1. Introduction}\nIntro text.\n\\section{Body}\nBody.\n\\section{5 Conclusions}\nDone."
    content = extract_intro_and_conclusion(tex)
    assert "Intro text." in content
    assert "Done." in content
    assert "Body." not in content


def test_missing_sections_fall_back_to_document_start():
    tex = "\\section{Overview}\n" + "word " * 1000
    content = extract_intro_and_conclusion(tex)
    assert content.endswith(NO_SECTIONS_MARKER)
    assert len(content) == 3000 + len(NO_SECTIONS_MARKER)


def test_standard_content_never_longer_than_full(sample_latex):
    standard = extract_content_by_depth(sample_latex, AnalysisDepth.STANDARD)
    full = extract_content_by_depth(sample_latex, AnalysisDepth.FULL)
    assert len(standard) <= len(full)


def test_basic_depth_yields_nothing(sample_latex):
    assert extract_content_by_depth(sample_latex, "basic") == ""
    assert extract_content_by_depth(sample_latex, AnalysisDepth.NONE) == ""


def test_full_depth_accepts_legacy_name(sample_latex):
    assert extract_content_by_depth(sample_latex, "full_text") == clean_latex_content(sample_latex)


def test_truncate_prefers_sentence_boundary():
    content = ("Sentence number one. " * 10) + "x" * 100
    truncated = truncate_to_length(content, max_length=200)
    assert truncated.endswith("." + TRUNCATION_MARKER)
    assert len(truncated) <= 200 + len(TRUNCATION_MARKER)


def test_truncate_hard_cuts_without_late_period():
    content = "A. " + "x" * 500
    truncated = truncate_to_length(content, max_length=100)
    assert truncated == content[:100] + TRUNCATION_MARKER


def test_truncate_leaves_short_content_alone():
    assert truncate_to_length("short", max_length=100) == "short"


def test_latex_to_plain_text():
    text = latex_to_plain_text("We use \\textbf{bold} and $x^2$.\n\\begin{equation}y=1\\end{equation}")
    assert text == "We use bold and [x^2]. [EQUATION]"
