"""Tests for arXiv Atom feed parsing and querying."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError

from paper_insight_pipeline.services.arxiv_client import ArxivAPIError, ArxivClient, parse_arxiv_id

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <entry>
    <id>http://arxiv.org/abs/2410.12345v2</id>
    <updated>2026-10-18T10:00:00Z</updated>
    <published>2026-10-17T09:00:00Z</published>
    <title>Speculative Decoding
      at Scale</title>
    <summary>  We accelerate
      inference.  </summary>
    <author><name>Ada Lovelace</name></author>
    <author><name>Alan Turing</name></author>
    <category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
    <category term="math.OC" scheme="http://arxiv.org/schemas/atom"/>
    <category term="stat.ML" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
  <entry>
    <id>http://arxiv.org/abs/2401.00001v1</id>
    <updated>2026-09-01T00:00:00Z</updated>
    <published>2026-09-01T00:00:00Z</published>
    <title>An Older Paper About Agents</title>
    <summary>Old abstract.</summary>
    <author><name>Grace Hopper</name></author>
    <category term="cs.AI" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
  <entry>
    <id>http://arxiv.org/api/errors#incorrect_id_format</id>
    <title>Error</title>
  </entry>
</feed>
"""


def mock_session(text=FEED, status_code=200):
    resp = MagicMock()
    resp.ok = status_code == 200
    resp.status_code = status_code
    resp.text = text
    session = MagicMock()
    session.get.return_value = resp
    return session


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2312.12345", "2312.12345"),
        ("2312.12345v1", "2312.12345"),
        ("arXiv:2312.12345", "2312.12345"),
        ("http://arxiv.org/abs/2312.12345v1", "2312.12345"),
    ],
)
def test_parse_arxiv_id(raw, expected):
    assert parse_arxiv_id(raw) == expected


def test_parse_feed_normalizes_entries():
    papers = ArxivClient(session=MagicMock()).parse_feed(FEED)
    assert [p.arxiv_id for p in papers] == ["2410.12345", "2401.00001"]

    paper = papers[0]
    assert paper.title == "Speculative Decoding at Scale"
    assert paper.summary == "We accelerate inference."
    assert paper.authors == ["Ada Lovelace", "Alan Turing"]
    assert paper.categories == ["cs.CL", "stat.ML"]
    assert paper.version == 2
    assert paper.versioned_id == "2410.12345v2"
    assert paper.arxiv_url == "https://arxiv.org/abs/2410.12345"
    assert paper.pdf_url == "https://arxiv.org/pdf/2410.12345"


def test_malformed_feed_raises():
    with pytest.raises(ArxivAPIError):
        ArxivClient(session=MagicMock()).parse_feed("<feed")


def test_fetch_recent_builds_query_and_filters_by_date():
    session = mock_session()
    client = ArxivClient(session=session, api_url="http://export.arxiv.org/api/query")
    now = datetime(2026, 10, 19, tzinfo=timezone.utc)

    papers = client.fetch_recent(["cs.AI", "cs.CL"], max_results=20, days_back=3, now=now)

    assert [p.arxiv_id for p in papers] == ["2410.12345"]
    params = session.get.call_args.kwargs["params"]
    assert params["search_query"] == "(cat:cs.AI OR cat:cs.CL)"
    assert params["max_results"] == 20
    assert params["sortBy"] == "submittedDate"
    assert params["sortOrder"] == "descending"


def test_fetch_by_id():
    session = mock_session()
    client = ArxivClient(session=session)
    assert client.fetch_by_id("arxiv:2401.00001v1").title == "An Older Paper About Agents"
    assert session.get.call_args.kwargs["params"]["id_list"] == "2401.00001"
    assert client.fetch_by_id("9999.99999") is None


def test_http_failures_raise_api_error():
    with pytest.raises(ArxivAPIError, match="503"):
        ArxivClient(session=mock_session(status_code=503)).fetch_by_id("2401.00001")

    session = MagicMock()
    session.get.side_effect = RequestsConnectionError("offline")
    with pytest.raises(ArxivAPIError, match="offline"):
        ArxivClient(session=session).fetch_recent(["cs.AI"])
