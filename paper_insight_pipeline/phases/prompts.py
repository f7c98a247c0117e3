"""
Prompt construction for paper analysis calls.

Two output levels share one system prompt skeleton:

- ``phase1``: classification + score + short summary and engineering notes
- ``full``: classification + score + the complete detail payload, with
  formulas/algorithms/diagram only when the model's own score reaches the
  detail threshold
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Literal, Optional

from paper_insight_pipeline.config import MAX_CONTENT_LENGTH
from paper_insight_pipeline.models import PaperMetadata
from paper_insight_pipeline.utils.latex_extractor import TRUNCATION_MARKER
from paper_insight_pipeline.utils.text_cleaning import cap_length, sanitize_for_llm

OutputLevel = Literal["phase1", "full"]

FULL_TEXT_TRUNCATION_MARKER = "\n\n[Text truncated due to length...]"


def _topic_lines(topics: List[Dict[str, Any]]) -> str:
    lines = []
    for topic in topics:
        label = topic.get("label") or topic["key"]
        desc = topic.get("description") or ""
        lines.append(f"- **{topic['key']}**: {label}" + (f" - {desc}" if desc else ""))
    return "\n".join(lines)


def _phase1_example(topics: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "tags": [topics[0]["key"]],
        "confidence": "high",
        "classification_reasoning": "Brief explanation",
        "score": 8,
        "score_reasoning": "Why this score",
        "deep_analysis": {
            "ai_summary": "3-5 sentence summary",
            "engineering_notes": "Brief practical applications",
        },
    }


def _full_example(topics: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "tags": [t["key"] for t in topics[:2]],
        "confidence": "high",
        "classification_reasoning": "Paper discusses ...",
        "score": 9,
        "score_reasoning": "Novel approach with significant practical impact",
        "deep_analysis": {
            "ai_summary": "3-5 sentence summary",
            "key_insights": ["insight 1", "insight 2", "insight 3"],
            "engineering_notes": "Practical applications and framework recommendations",
            "code_links": ["https://github.com/username/repo"],
            "key_formulas": [
                {
                    "latex": "\\(L(\\theta) = -\\sum_i \\log p_\\theta(y_i \\mid x_i)\\)",
                    "name": "Loss Function",
                    "description": "Negative log-likelihood",
                }
            ],
            "algorithms": [
                {
                    "name": "Method name",
                    "steps": ["Step 1", "Step 2", "Step 3"],
                    "complexity": "O(N)",
                }
            ],
            "flow_diagram": {
                "format": "mermaid",
                "content": "graph TD\nA[Input] --> B[Model]\nB --> C[Output]",
            },
        },
    }


def build_system_prompt(
    topics: List[Dict[str, Any]],
    output_level: OutputLevel,
    detail_threshold: int,
) -> str:
    """
    Build the system prompt for one analysis call.

    Args:
        topics: Topic definitions ({"key", "label", "description"})
        output_level: "phase1" or "full"
        detail_threshold: Minimum score for formulas/algorithms/diagram
    """
    if output_level == "phase1":
        analysis_part = (
            "# Part 3: Deep Analysis (PHASE 1 - Basic Output Only)\n\n"
            "Only provide: ai_summary (3-5 sentences) and engineering_notes "
            "(brief practical applications)."
        )
        example = _phase1_example(topics)
    else:
        analysis_part = f"""# Part 3: Deep Analysis

Always output these basic fields:
1. ai_summary: 3-5 sentence summary of the core contribution
2. key_insights: 3-5 bullet points of key takeaways
3. engineering_notes: practical applications and frameworks that could benefit
4. code_links: code repositories explicitly provided by the paper
   - Only actual, working code links (e.g. GitHub repositories)
   - Never paper pages, arXiv links, proceedings pages, or "coming soon" mentions
   - Return [] when no code is provided

Only output these detailed fields if score >= {detail_threshold}:
5. key_formulas: list of {{"latex", "name", "description"}}
6. algorithms: list of {{"name", "steps" (list of strings), "complexity"}}
7. flow_diagram: {{"format": "mermaid" | "text", "content": ...}}

If your score is < {detail_threshold}, set key_formulas, algorithms and flow_diagram to null."""
        example = _full_example(topics)

    return f"""You are an expert AI/ML research analyst. Analyze the research paper and provide a structured assessment.

# Part 1: Classification

Categorize the paper into these domains:
{_topic_lines(topics)}

Rules:
- A paper can belong to multiple domains
- At least one tag must be provided, using only the keys above
- Set confidence (high / medium / low) by how clearly the paper fits

# Part 2: Scoring

Rate the paper's value and significance from 1-10:
- 9-10: major breakthrough, must-read
- 7-8: solid contribution, worth following
- 5-6: incremental improvement, limited novelty
- 1-4: minor work or not significant

{analysis_part}

# Output Format

Respond ONLY with a single valid JSON object (no markdown, no code fences), like:

{json.dumps(example, indent=2, ensure_ascii=False)}
"""


def build_user_prompt(
    paper: PaperMetadata,
    evidence: Optional[str] = None,
    *,
    evidence_label: str = "Full Paper Text",
    max_chars: int = MAX_CONTENT_LENGTH,
) -> str:
    """User message: metadata, optional evidence text, and the instruction."""
    parts = [
        f"Title: {sanitize_for_llm(paper.title)}",
        f"Abstract: {sanitize_for_llm(paper.summary)}",
        f"ArXiv Categories: {', '.join(paper.categories)}",
    ]
    if evidence:
        text = sanitize_for_llm(evidence)
        # Already cut by the extractor: leave room for its marker
        limit = max_chars + len(TRUNCATION_MARKER) if text.endswith(TRUNCATION_MARKER) else max_chars
        text = cap_length(text, limit, FULL_TEXT_TRUNCATION_MARKER)
        parts.append(f"{evidence_label}:\n{text}")
    parts.append("Analyze this paper. Respond with ONLY a JSON object.")
    return "\n\n".join(parts)


def build_messages(
    paper: PaperMetadata,
    topics: List[Dict[str, Any]],
    output_level: OutputLevel,
    detail_threshold: int,
    evidence: Optional[str] = None,
    evidence_label: str = "Full Paper Text",
) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": build_system_prompt(topics, output_level, detail_threshold)},
        {"role": "user", "content": build_user_prompt(paper, evidence, evidence_label=evidence_label)},
    ]
