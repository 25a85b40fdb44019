"""
PyTest Configuration and Fixtures
=================================

Shared fixtures for Safha Ingest tests.

- Session-scoped database file created once, cleared between tests
- Fake aiohttp session for feed and page fetches without network access
- Sample RSS, Atom and article HTML documents
"""

import pytest
import tempfile
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_test_dir = Path(tempfile.gettempdir()) / "safha_ingest_tests"
_test_dir.mkdir(exist_ok=True)
os.environ["SAFHA_DATABASE__PATH"] = str(_test_dir / "safha_ingest_env.db")
os.environ["SAFHA_LOGGING__FILE_PATH"] = str(_test_dir / "safha_ingest_test.log")
os.environ["SAFHA_BACKFILL__DELAY_SECONDS"] = "0"
os.environ["SAFHA_DEBUG"] = "true"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def session_test_db():
    """Session-scoped test database, schema created once.

    File-backed rather than ``:memory:`` because every pooled connection
    must see the same database.
    """
    from safha_ingest.database.schema import DatabaseSchema

    db_path = _test_dir / "safha_ingest_test.db"
    if db_path.exists():
        db_path.unlink()

    DatabaseSchema(str(db_path)).create_tables()

    yield str(db_path)

    try:
        db_path.unlink()
    except FileNotFoundError:
        pass


@pytest.fixture
def clean_db(session_test_db):
    """Clear all rows while keeping the schema."""
    from safha_ingest.database.connection import DatabaseConnection

    conn = DatabaseConnection(session_test_db, pool_size=1)

    with conn.get_connection() as db:
        # Order matters for foreign keys
        db.execute("DELETE FROM raw_articles")
        db.execute("DELETE FROM rss_sources")
        db.commit()

    conn.close_all_connections()

    yield session_test_db


@pytest.fixture
def db_connection(clean_db):
    """Database connection manager over a clean database."""
    from safha_ingest.database.connection import DatabaseConnection

    connection = DatabaseConnection(clean_db, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def test_settings(clean_db):
    """Settings pointing at the test database with no backfill delay."""
    from safha_ingest.config.settings import (
        SafhaSettings,
        DatabaseSettings,
        BackfillSettings,
        LoggingSettings,
    )

    return SafhaSettings(
        database=DatabaseSettings(path=clean_db, pool_size=2),
        backfill=BackfillSettings(delay_seconds=0),
        logging=LoggingSettings(file_path=None, console_logging=False),
    )


@pytest.fixture
def source_repo(db_connection):
    from safha_ingest.storage.source_repository import SourceRepository

    return SourceRepository(db_connection)


@pytest.fixture
def article_repo(db_connection):
    from safha_ingest.storage.article_repository import ArticleRepository

    return ArticleRepository(db_connection)


@pytest.fixture
def make_source(source_repo):
    """Factory inserting a source and returning it as stored."""
    from safha_ingest.database.models import RssSource

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "name": f"Source {counter['n']}",
            "feed_url": f"https://news{counter['n']}.example.com/rss.xml",
            "website_url": f"https://news{counter['n']}.example.com",
        }
        fields.update(overrides)
        source_id = source_repo.create_source(RssSource(**fields))
        return source_repo.get_source(source_id)

    return _make


# ============================================================================
# HTTP Fakes
# ============================================================================


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, status=200, body=b"", headers=None, reason="OK", raise_on_enter=None):
        self.status = status
        self.reason = reason
        self.headers = headers if headers is not None else {"Content-Type": "text/html; charset=utf-8"}
        self._body = body if isinstance(body, bytes) else body.encode("utf-8")
        self._raise_on_enter = raise_on_enter
        self.read = AsyncMock(return_value=self._body)
        self.text = AsyncMock(return_value=self._body.decode("utf-8", errors="replace"))

    async def __aenter__(self):
        if self._raise_on_enter is not None:
            raise self._raise_on_enter
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Routes ``get(url)`` to canned FakeResponse objects by URL.

    Unknown URLs answer 404. Requested URLs are recorded in ``calls``.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append(url)
        response = self.routes.get(url)
        if response is None:
            return FakeResponse(status=404, body=b"Not Found", reason="Not Found")
        return response


@pytest.fixture
def fake_session_factory():
    return FakeSession


@pytest.fixture
def fake_response_factory():
    return FakeResponse


# ============================================================================
# Sample Documents
# ============================================================================


ARTICLE_PARAGRAPHS = [
    "The city council approved a new transport plan on Tuesday after months of public consultation and debate among residents.",
    "Under the plan, three new bus corridors will connect the northern suburbs with the central business district by the end of next year.",
    "Officials said the corridors would cut average commuting times by nearly a quarter for the roughly forty thousand daily riders affected.",
    "Funding for the first phase comes from a mix of municipal bonds and a national infrastructure grant announced earlier this spring.",
    "Opposition members questioned the cost estimates but agreed that congestion on the main arterial roads had become unsustainable.",
]


@pytest.fixture
def article_paragraphs():
    return list(ARTICLE_PARAGRAPHS)


@pytest.fixture
def sample_article_html():
    """Article page with og:image, a YouTube embed and a named content container."""
    paragraphs = "\n".join(f"<p>{p}</p>" for p in ARTICLE_PARAGRAPHS)
    return f"""<!DOCTYPE html>
<html>
<head>
    <title>Council approves transport plan</title>
    <meta property="og:image" content="/images/council-vote.jpg">
    <meta name="description" content="The council approved a plan adding three bus corridors to the city network.">
    <meta name="author" content="Jane Reporter">
    <meta property="og:site_name" content="Example News">
</head>
<body>
    <nav><a href="/">Home</a> <a href="/world">World</a></nav>
    <div class="article-body">
        {paragraphs}
        <iframe src="https://www.youtube.com/embed/dQw4w9WgXcQ"></iframe>
        <p>Follow us on social media and subscribe to our newsletter.</p>
    </div>
    <footer>Copyright 2024 Example News. All rights reserved.</footer>
</body>
</html>"""


@pytest.fixture
def sample_rss():
    """RSS 2.0 feed with an enclosure image, media thumbnail and inline image."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/" xmlns:dc="http://purl.org/dc/elements/1.1/">
    <channel>
        <title>Example News</title>
        <link>https://news.example.com</link>
        <description>Latest headlines</description>
        <item>
            <title>Council approves transport plan</title>
            <link>https://news.example.com/2024/transport-plan</link>
            <guid isPermaLink="false">news-1001</guid>
            <description><![CDATA[<p>Three new bus corridors.</p>]]></description>
            <dc:creator>Jane Reporter</dc:creator>
            <pubDate>Thu, 05 Sep 2024 12:00:00 GMT</pubDate>
            <enclosure url="https://cdn.example.com/council.jpg" type="image/jpeg" length="1024"/>
        </item>
        <item>
            <title>Storm expected this weekend</title>
            <link>https://news.example.com/2024/storm</link>
            <description>Forecasters warn of heavy rain.</description>
            <media:thumbnail url="https://cdn.example.com/storm-thumb.jpg"/>
        </item>
        <item>
            <title>Market rally continues</title>
            <link>https://news.example.com/2024/markets</link>
            <description><![CDATA[<img src="/uploads/markets.png"> Stocks rose for a fifth day.]]></description>
        </item>
        <item>
            <title></title>
            <link>https://news.example.com/2024/untitled</link>
            <description>Entry without a title is skipped.</description>
        </item>
    </channel>
</rss>"""


@pytest.fixture
def sample_atom():
    return """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
    <title>Example Atom</title>
    <link href="https://blog.example.org/"/>
    <updated>2024-09-05T12:00:00Z</updated>
    <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
    <entry>
        <title>Release notes</title>
        <link rel="alternate" href="https://blog.example.org/release-notes"/>
        <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
        <updated>2024-09-05T12:00:00Z</updated>
        <author><name>Sam Writer</name></author>
        <content type="html">&lt;p&gt;Watch the demo on &lt;a href="https://vimeo.com/76979871"&gt;Vimeo&lt;/a&gt;&lt;/p&gt;</content>
    </entry>
</feed>"""
