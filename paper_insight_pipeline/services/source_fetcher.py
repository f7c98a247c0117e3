"""arXiv LaTeX source download, archive extraction and include flattening."""

from __future__ import annotations

import gzip
import io
import logging
import re
import tarfile
import zipfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import certifi
import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from paper_insight_pipeline.config import (
    ARXIV_EPRINT_URL,
    HTTP_BACKOFF,
    HTTP_MAX_RETRIES,
    HTTP_TIMEOUT,
)
from paper_insight_pipeline.utils.paper_id import normalize_paper_id


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; PaperInsightBot/1.0)"

MAIN_FILE_NAMES = ("main.tex", "paper.tex", "article.tex", "ms.tex", "root.tex")

MAX_INCLUDE_DEPTH = 50
MAX_INCLUDE_EXPANSIONS = 100

_INCLUDE_RE = re.compile(r"\\(input|include)\{([^}]+)\}")


class SourceUnavailableError(Exception):
    """The source archive is missing, unreadable, or has no usable .tex files."""


def create_session(
    *,
    retry_total: int = HTTP_MAX_RETRIES,
    backoff_factor: float = HTTP_BACKOFF,
    user_agent: str = DEFAULT_USER_AGENT,
) -> requests.Session:
    session = requests.Session()
    retries = Retry(
        total=retry_total,
        backoff_factor=backoff_factor,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET",),
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": user_agent})
    return session


def build_eprint_url(paper_id: str, base_url: str = ARXIV_EPRINT_URL) -> str:
    return f"{base_url.rstrip('/')}/{normalize_paper_id(paper_id)}"


def download_source_archive(
    paper_id: str,
    session: Optional[requests.Session] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> bytes:
    """
    Download the e-print archive for a paper.

    Raises:
        SourceUnavailableError: on 404, other HTTP failures, or network errors.
    """
    log = logger or logging.getLogger(__name__)
    session = session or create_session()
    url = build_eprint_url(paper_id)
    log.info("Downloading LaTeX source: %s", url)

    try:
        resp = session.get(url, timeout=HTTP_TIMEOUT, allow_redirects=True, verify=certifi.where())
    except RequestException as e:
        raise SourceUnavailableError(f"Failed to download LaTeX source for {paper_id}: {e}") from e

    if resp.status_code == 404:
        raise SourceUnavailableError(f"LaTeX source not found for {paper_id}")
    if not resp.ok:
        raise SourceUnavailableError(
            f"Failed to download LaTeX source: {resp.status_code} {resp.reason}"
        )
    return resp.content


def detect_archive_format(data: bytes) -> Optional[str]:
    """Return 'tar.gz' or 'zip' based on magic bytes, or None."""
    if not data or len(data) < 2:
        return None
    if data[0] == 0x1F and data[1] == 0x8B:
        return "tar.gz"
    if data[0] == 0x50 and data[1] == 0x4B:
        return "zip"
    return None


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def extract_tex_files(data: bytes, *, logger: Optional[logging.Logger] = None) -> Dict[str, str]:
    """
    Decompress an archive in memory and return every .tex file (path -> text).

    A gzip stream that is not a tar archive is a single gzipped source file;
    it is returned as ``main.tex``.

    Raises:
        SourceUnavailableError: unknown format or corrupt archive.
    """
    log = logger or logging.getLogger(__name__)
    fmt = detect_archive_format(data)
    files: Dict[str, str] = {}

    if fmt == "tar.gz":
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
                for member in tar.getmembers():
                    if not member.isfile() or not member.name.lower().endswith(".tex"):
                        continue
                    fh = tar.extractfile(member)
                    if fh is None:
                        continue
                    files[_normalize_member_path(member.name)] = _decode(fh.read())
        except tarfile.ReadError:
            try:
                files["main.tex"] = _decode(gzip.decompress(data))
            except (OSError, EOFError) as e:
                raise SourceUnavailableError(f"Corrupt gzip archive: {e}") from e
            log.debug("Archive is a single gzipped file; treating it as main.tex")
        except (tarfile.TarError, OSError, EOFError) as e:
            raise SourceUnavailableError(f"Corrupt tar archive: {e}") from e
    elif fmt == "zip":
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                for info in zf.infolist():
                    if info.is_dir() or not info.filename.lower().endswith(".tex"):
                        continue
                    files[_normalize_member_path(info.filename)] = _decode(zf.read(info))
        except zipfile.BadZipFile as e:
            raise SourceUnavailableError(f"Corrupt zip archive: {e}") from e
    else:
        raise SourceUnavailableError("Unknown archive format")

    log.debug("Extracted %d .tex files", len(files))
    return files


def _normalize_member_path(name: str) -> str:
    name = name.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    return name.lstrip("/")


def find_main_tex_file(files: Dict[str, str], *, logger: Optional[logging.Logger] = None) -> Optional[str]:
    """
    Pick the main document path.

    Priority: well-known main file names, then the first file containing
    ``\\documentclass``, then the first file.
    """
    log = logger or logging.getLogger(__name__)
    if not files:
        return None

    paths = list(files.keys())
    for file_name in MAIN_FILE_NAMES:
        for path in paths:
            if path == file_name or path.endswith("/" + file_name):
                log.debug("Found main file by name: %s", path)
                return path

    for path in paths:
        if "\\documentclass" in files[path]:
            log.debug("Found main file by \\documentclass: %s", path)
            return path

    log.debug("Using first .tex file as main: %s", paths[0])
    return paths[0]


def _resolve_include(name: str, files: Dict[str, str]) -> Optional[str]:
    name = _normalize_member_path(name.strip())
    candidates = [name]
    if not name.endswith(".tex"):
        candidates.append(name + ".tex")
    for candidate in candidates:
        if candidate in files:
            return candidate
        for path in files:
            if path.endswith("/" + candidate):
                return path
    return None


def _is_commented(text: str, pos: int) -> bool:
    line_start = text.rfind("\n", 0, pos) + 1
    return re.search(r"(?<!\\)%", text[line_start:pos]) is not None


@dataclass
class _ExpansionState:
    processed: set = field(default_factory=set)
    missing: List[str] = field(default_factory=list)
    expansions: int = 0
    limit_logged: bool = False


def expand_includes(
    content: str,
    files: Dict[str, str],
    *,
    max_depth: int = MAX_INCLUDE_DEPTH,
    max_expansions: int = MAX_INCLUDE_EXPANSIONS,
    logger: Optional[logging.Logger] = None,
) -> str:
    """
    Recursively inline ``\\input{}`` / ``\\include{}`` directives.

    Already-expanded files become ``% [Already included: x]``; unresolved
    references become ``% [Missing file: x]``. Once the depth or expansion
    limit is reached, remaining directives are left untouched.
    """
    log = logger or logging.getLogger(__name__)
    state = _ExpansionState()
    expanded = _expand(content, files, state, 0, max_depth, max_expansions, log)
    if state.missing:
        short = ", ".join(m.rsplit("/", 1)[-1] for m in state.missing)
        log.info("Skipped %d missing include(s): %s", len(state.missing), short)
    return expanded


def _expand(
    content: str,
    files: Dict[str, str],
    state: _ExpansionState,
    depth: int,
    max_depth: int,
    max_expansions: int,
    log: logging.Logger,
) -> str:
    if depth > max_depth:
        log.warning("Reached maximum include depth (%d), stopping expansion", max_depth)
        return content

    def replace(match: "re.Match[str]") -> str:
        if _is_commented(match.string, match.start()):
            return match.group(0)
        target = match.group(2).strip()

        # Tracked by resolved path so "sec/intro" and "sec/intro.tex" count once
        path = _resolve_include(target, files)
        if path is not None and path in state.processed:
            return f"\n% [Already included: {target}]\n"

        if state.expansions >= max_expansions:
            if not state.limit_logged:
                log.warning("Reached maximum include count (%d), skipping remaining inputs", max_expansions)
                state.limit_logged = True
            return match.group(0)

        if path is None:
            state.missing.append(target)
            return f"\n% [Missing file: {target}]\n"

        state.processed.add(path)
        state.expansions += 1
        log.debug("[%d] Expanding \\%s{%s} (%d chars)", depth, match.group(1), target, len(files[path]))
        return _expand(files[path], files, state, depth + 1, max_depth, max_expansions, log)

    return _INCLUDE_RE.sub(replace, content)


class SourceFetcher:
    """Fetch and flatten the LaTeX source of arXiv papers."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session or create_session()
        self.logger = logger or logging.getLogger(__name__)

    def fetch(self, paper_id: str) -> str:
        """
        Download, extract and flatten the main document.

        Raises:
            SourceUnavailableError: whenever no flattened document can be produced.
        """
        data = download_source_archive(paper_id, self.session, logger=self.logger)
        files = extract_tex_files(data, logger=self.logger)
        main_path = find_main_tex_file(files, logger=self.logger)
        if main_path is None:
            raise SourceUnavailableError(f"No .tex files in source archive for {paper_id}")

        # The main file never includes itself
        others = {p: c for p, c in files.items() if p != main_path}
        expanded = expand_includes(files[main_path], others, logger=self.logger)
        self.logger.info(
            "Flattened LaTeX for %s: %d chars (main %s, %d files)",
            paper_id, len(expanded), main_path, len(files),
        )
        return expanded


def fetch_latex_source(paper_id: str, *, logger: Optional[logging.Logger] = None) -> Optional[str]:
    """Convenience wrapper: flattened source or None on any source failure."""
    log = logger or logging.getLogger(__name__)
    try:
        return SourceFetcher(logger=log).fetch(paper_id)
    except SourceUnavailableError as e:
        log.warning("LaTeX source unavailable for %s: %s", paper_id, e)
        return None
