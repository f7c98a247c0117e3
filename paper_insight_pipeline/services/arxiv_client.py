"""
arXiv API metadata client.

Fetches recent submissions for a set of categories, or a single paper by id,
from the public Atom API and normalizes them into PaperMetadata records.
Docs: http://export.arxiv.org/api_help/docs/user_manual.html
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import certifi
import requests
from requests.exceptions import RequestException

from paper_insight_pipeline.config import ARXIV_API_URL, HTTP_TIMEOUT
from paper_insight_pipeline.models import PaperMetadata
from paper_insight_pipeline.services.source_fetcher import create_session
from paper_insight_pipeline.utils.paper_id import split_version
from paper_insight_pipeline.utils.text_cleaning import collapse_whitespace

ATOM_NS = {"atom": "http://www.w3.org/2005/Atom", "arxiv": "http://arxiv.org/schemas/atom"}


class ArxivAPIError(Exception):
    """The arXiv API could not be reached or returned an unusable response."""


def parse_arxiv_id(raw_id: str) -> str:
    """
    Normalize an arXiv id from any of the usual forms.

    Handles "2312.12345", "2312.12345v1", "arXiv:2312.12345" and
    "http://arxiv.org/abs/2312.12345v1".
    """
    return split_version(raw_id)[0]


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


class ArxivClient:
    """Thin client over the arXiv Atom query API."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        api_url: str = ARXIV_API_URL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session or create_session()
        self.api_url = api_url
        self.logger = logger or logging.getLogger(__name__)

    def fetch_recent(
        self,
        categories: List[str],
        *,
        max_results: int = 100,
        days_back: int = 1,
        now: Optional[datetime] = None,
    ) -> List[PaperMetadata]:
        """
        Fetch the most recent submissions in ``categories``.

        The API has no date filter, so entries are requested newest-first and
        filtered client-side to those published within ``days_back`` days.

        Raises:
            ArxivAPIError: network failure or non-2xx response.
        """
        category_query = " OR ".join(f"cat:{cat}" for cat in categories)
        params = {
            "search_query": f"({category_query})",
            "start": 0,
            "max_results": max_results,
            "sortBy": "submittedDate",
            "sortOrder": "descending",
        }
        papers = self._query(params)

        now = now or datetime.now(timezone.utc)
        earliest = now - timedelta(days=days_back)
        recent = []
        for paper in papers:
            published = _parse_timestamp(paper.published)
            if published is None or earliest <= published <= now:
                recent.append(paper)
        self.logger.info(
            f"arXiv returned {len(papers)} entries for {categories}; {len(recent)} within {days_back} day(s)"
        )
        return recent

    def fetch_by_id(self, paper_id: str) -> Optional[PaperMetadata]:
        """Fetch a single paper; None when arXiv has no such id."""
        clean_id = parse_arxiv_id(paper_id)
        if not clean_id:
            return None
        papers = self._query({"id_list": clean_id, "max_results": 1})
        for paper in papers:
            if paper.arxiv_id == clean_id:
                return paper
        return None

    def _query(self, params: dict) -> List[PaperMetadata]:
        try:
            resp = self.session.get(
                self.api_url, params=params, timeout=HTTP_TIMEOUT, verify=certifi.where()
            )
        except RequestException as e:
            raise ArxivAPIError(f"arXiv API request failed: {e}") from e
        if not resp.ok:
            raise ArxivAPIError(f"arXiv API returned {resp.status_code}")
        return self.parse_feed(resp.text)

    def parse_feed(self, xml_text: str) -> List[PaperMetadata]:
        """Parse an Atom feed, skipping entries with missing required fields."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ArxivAPIError(f"Malformed arXiv feed: {e}") from e

        papers: List[PaperMetadata] = []
        for entry in root.findall("atom:entry", ATOM_NS):
            paper = self._entry_to_metadata(entry)
            if paper is not None:
                papers.append(paper)
        return papers

    def _entry_to_metadata(self, entry: ET.Element) -> Optional[PaperMetadata]:
        raw_id = entry.findtext("atom:id", default="", namespaces=ATOM_NS).strip()
        title = collapse_whitespace(entry.findtext("atom:title", default="", namespaces=ATOM_NS))
        summary = collapse_whitespace(entry.findtext("atom:summary", default="", namespaces=ATOM_NS))
        published = entry.findtext("atom:published", default="", namespaces=ATOM_NS).strip()
        updated = entry.findtext("atom:updated", default="", namespaces=ATOM_NS).strip()

        # Error entries in an otherwise valid feed have an id but no title/summary
        if not raw_id or not title or not summary or not published:
            self.logger.debug("Skipping entry with missing fields: %s", raw_id or "<no id>")
            return None

        arxiv_id, version = split_version(raw_id)
        if not arxiv_id:
            return None

        authors = [
            collapse_whitespace(name.text or "")
            for name in entry.findall("atom:author/atom:name", ATOM_NS)
            if name.text and name.text.strip()
        ]

        categories: List[str] = []
        for cat in entry.findall("atom:category", ATOM_NS):
            term = cat.attrib.get("term", "")
            if (term.startswith("cs.") or term.startswith("stat.")) and term not in categories:
                categories.append(term)

        return PaperMetadata(
            arxiv_id=arxiv_id,
            title=title,
            summary=summary,
            authors=authors,
            categories=categories,
            published=published,
            updated=updated or published,
            version=version or 1,
            arxiv_url=f"https://arxiv.org/abs/{arxiv_id}",
            pdf_url=f"https://arxiv.org/pdf/{arxiv_id}",
        )
