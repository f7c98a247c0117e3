"""
Configuration constants for the paper insight pipeline.

All values are read from the environment (optionally populated from a local
``.env`` file) once at import time. Modules import the constants they need
directly, e.g. ``from paper_insight_pipeline.config import PAPER_CACHE_PATH``.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name) or default
    return [item.strip() for item in raw.split(",") if item.strip()]


# ----------------------------- LLM providers -----------------------------

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "glm").strip().lower()

ZHIPUAI_API_KEY = os.getenv("ZHIPUAI_API_KEY", "")
GLM_BASE_URL = os.getenv("GLM_BASE_URL", "https://open.bigmodel.cn/api/paas/v4/")
GLM_QUICK_MODEL = os.getenv("GLM_QUICK_MODEL", "glm-4.5-flash")
GLM_DEEP_MODEL = os.getenv("GLM_DEEP_MODEL", "glm-4.7")

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
CLAUDE_BASE_URL = os.getenv("CLAUDE_BASE_URL", "https://api.anthropic.com/v1/")
CLAUDE_QUICK_MODEL = os.getenv("CLAUDE_QUICK_MODEL", "claude-haiku-4-5")
CLAUDE_DEEP_MODEL = os.getenv("CLAUDE_DEEP_MODEL", "claude-sonnet-4-5")

LLM_REQUEST_TIMEOUT = _env_float("LLM_REQUEST_TIMEOUT", 300.0)
LLM_TEMPERATURE = _env_float("LLM_TEMPERATURE", 0.1)

# Completion retry policy (seconds)
LLM_MAX_ATTEMPTS = _env_int("LLM_MAX_ATTEMPTS", 10)
LLM_RETRY_INITIAL_DELAY = _env_float("LLM_RETRY_INITIAL_DELAY", 1.0)
LLM_RETRY_MAX_DELAY = _env_float("LLM_RETRY_MAX_DELAY", 30.0)

# ----------------------------- Analysis depth -----------------------------

ANALYSIS_DEPTH = os.getenv("ANALYSIS_DEPTH", "basic").strip().lower()

# Papers scoring below this after phase 1 are discarded (unset = keep all)
MIN_SCORE_TO_SAVE = _env_optional_int("MIN_SCORE_TO_SAVE")
# Score that triggers detail extraction (phase 2 / detail fields)
DETAIL_THRESHOLD = _env_int("MIN_SCORE_THRESHOLD", 7)
# Score a stored paper needs to be picked up by an upgrade reanalysis
DEEP_ANALYSIS_THRESHOLD = _env_int("DEEP_ANALYSIS_THRESHOLD", 8)

PHASE1_MAX_TOKENS = _env_int("PHASE1_MAX_TOKENS", 4000)
FULL_MAX_TOKENS = _env_int("FULL_MAX_TOKENS", 12000)

MAX_CONTENT_LENGTH = _env_int("MAX_CONTENT_LENGTH", 150000)
INTRO_FALLBACK_CHARS = 3000

# ----------------------------- Storage -----------------------------

PAPER_CACHE_PATH = Path(os.getenv("PAPER_CACHE_PATH", "./local/cache/papers"))
CACHE_TTL_DAYS = _env_int("CACHE_TTL_DAYS", 7)
CACHE_TTL_SECONDS = CACHE_TTL_DAYS * 24 * 60 * 60

LOCAL_DB_PATH = Path(os.getenv("LOCAL_DB_PATH", "./local/data.json"))

# ----------------------------- arXiv -----------------------------

ARXIV_API_URL = os.getenv("ARXIV_API_URL", "http://export.arxiv.org/api/query")
ARXIV_EPRINT_URL = os.getenv("ARXIV_EPRINT_URL", "https://arxiv.org/e-print")
ARXIV_CATEGORIES = _env_list("ARXIV_CATEGORIES", "cs.AI,cs.LG,cs.CL")

MAX_PAPERS = _env_int("MAX_PAPERS", 10)
DAYS_BACK = _env_int("DAYS_BACK", 3)
FORCE_REANALYZE = _env_bool("FORCE_REANALYZE", False)

HTTP_TIMEOUT = _env_float("HTTP_TIMEOUT", 60.0)
HTTP_MAX_RETRIES = _env_int("HTTP_MAX_RETRIES", 3)
HTTP_BACKOFF = _env_float("HTTP_BACKOFF", 1.0)

# ----------------------------- Topics -----------------------------

DEFAULT_TOPICS: List[Dict[str, Any]] = [
    {
        "key": "rl",
        "label": "Reinforcement Learning",
        "description": "Reinforcement learning, RLHF, reward modeling, policy optimization",
    },
    {
        "key": "llm",
        "label": "Large Language Models",
        "description": "Large language models, pretraining, fine-tuning, prompting, reasoning",
    },
    {
        "key": "inference",
        "label": "Inference Optimization",
        "description": "Inference acceleration, quantization, serving systems, KV cache, speculative decoding",
    },
]


def load_topics() -> List[Dict[str, Any]]:
    """Return topics from ``TOPICS_CONFIG`` (JSON list) or the defaults."""
    raw = os.getenv("TOPICS_CONFIG")
    if not raw:
        return [dict(t) for t in DEFAULT_TOPICS]
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return [dict(t) for t in DEFAULT_TOPICS]
    topics = [t for t in parsed if isinstance(t, dict) and t.get("key")] if isinstance(parsed, list) else []
    return topics or [dict(t) for t in DEFAULT_TOPICS]


# ----------------------------- Logging -----------------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
LOG_FILE = os.getenv("LOG_FILE", "logs/paper_insight_pipeline.log")
LOG_MAX_BYTES = _env_int("LOG_MAX_BYTES", 10 * 1024 * 1024)
LOG_BACKUP_COUNT = _env_int("LOG_BACKUP_COUNT", 5)
