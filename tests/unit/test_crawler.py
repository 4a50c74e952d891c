"""Unit tests for the site crawler.

The crawler only talks to storage through a ``ContentFetcher``; these tests
drive it with an in-memory fake and a zero pacing delay.
"""

from unittest.mock import AsyncMock, patch

import pytest

from rdnt_search.config import Settings
from rdnt_search.search.models import DocumentType
from rdnt_search.utils.crawler import (
    CrawlConfig,
    SiteCrawler,
    classify_document_type,
    extract_links,
    extract_title,
    is_crawlable,
    resolve_url,
)


pytestmark = pytest.mark.unit


def fast_config(**overrides):
    return CrawlConfig(delay_seconds=0.0, **overrides)


def urls_in(index):
    return sorted(doc.url for doc in index.documents.values())


class TestCrawlConfig:
    """Configuration value object."""

    def test_defaults(self):
        config = CrawlConfig()

        assert config.max_depth == 3
        assert config.max_pages == 100
        assert config.delay_seconds == 0.1
        assert config.user_agent == "RedNet-Explorer/1.0 Crawler"
        assert config.respect_robots_txt is True
        assert config.same_host_only is True

    def test_from_settings(self):
        settings = Settings(_env_file=None, crawl_max_depth=1, crawl_max_pages=5, crawl_delay_seconds=0.5)

        config = CrawlConfig.from_settings(settings)

        assert (config.max_depth, config.max_pages, config.delay_seconds) == (1, 5, 0.5)


class TestHelpers:
    """Classification, titles, links and URL resolution."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("rdnt://home/page.rwml", DocumentType.RWML),
            ("rdnt://home/tool.LUA", DocumentType.SCRIPT),
            ("rdnt://home/notes.txt", DocumentType.PLAIN_TEXT),
            ("rdnt://home/readme.md", DocumentType.PLAIN_TEXT),
            ("rdnt://home/old.html", DocumentType.HTML),
            ("rdnt://home/docs", DocumentType.PLAIN_TEXT),
            ("rdnt://home/", DocumentType.PLAIN_TEXT),
            ("rdnt://home/image.png", None),
        ],
    )
    def test_classify_document_type(self, url, expected):
        assert classify_document_type(url) is expected
        assert is_crawlable(url) is (expected is not None)

    def test_host_dots_do_not_count_as_extension(self):
        assert classify_document_type("rdnt://site.comp1.rednet/") is DocumentType.PLAIN_TEXT

    @pytest.mark.parametrize(
        ("content", "doc_type", "expected"),
        [
            ("<title>My Page</title><h1>Heading</h1>", DocumentType.RWML, "My Page"),
            ("<body><h1 class='x'>Heading</h1></body>", DocumentType.HTML, "Heading"),
            ("<body><h2>Sub</h2></body>", DocumentType.HTML, "Sub"),
            ("<p>no title here</p>", DocumentType.RWML, "Untitled"),
            ("-- Blog Engine\nlocal x = 1", DocumentType.SCRIPT, "Blog Engine"),
            ("  \n-- Indented comment\nprint()", DocumentType.SCRIPT, "Indented comment"),
            ("local x = 1 -- not leading", DocumentType.SCRIPT, "Untitled"),
            ("<title>Served Index</title><p>body</p>", DocumentType.PLAIN_TEXT, "Served Index"),
            ("<h3>Section</h3>\nmore text", DocumentType.PLAIN_TEXT, "Section"),
            ("<title>Tool</title>\n-- comment", DocumentType.SCRIPT, "Tool"),
            ("just some words", DocumentType.PLAIN_TEXT, "Untitled"),
        ],
    )
    def test_extract_title(self, content, doc_type, expected):
        assert extract_title(content, doc_type) == expected

    def test_extract_links_both_forms_in_order(self):
        content = (
            '<a href="/one.rwml">one</a>'
            '<link url="two.rwml">'
            '<a href="/one.rwml">dup</a>'
            "<a name='anchor'>no href</a>"
        )

        assert extract_links(content) == ["two.rwml", "/one.rwml"]

    @pytest.mark.parametrize(
        ("link", "base", "expected"),
        [
            ("rdnt://other/page.rwml", "rdnt://home/a/b.rwml", "rdnt://other/page.rwml"),
            ("/root.rwml", "rdnt://home/a/b.rwml", "rdnt://home/root.rwml"),
            ("sibling.rwml", "rdnt://home/a/b.rwml", "rdnt://home/a/sibling.rwml"),
            ("sub/page.rwml#part", "rdnt://home/a/", "rdnt://home/a/sub/page.rwml"),
            ("../up.rwml", "rdnt://home/a/b/c.rwml", "rdnt://home/a/up.rwml"),
            ("./same.rwml", "rdnt://home/a/b.rwml", "rdnt://home/a/same.rwml"),
            ("../../../../top.rwml", "rdnt://home/a/b.rwml", "rdnt://home/top.rwml"),
            ("docs/", "rdnt://home/", "rdnt://home/docs/"),
            ("page.rwml", "rdnt://home", "rdnt://home/page.rwml"),
        ],
    )
    def test_resolve_url(self, link, base, expected):
        assert resolve_url(link, base) == expected

    def test_resolve_bare_fragment(self):
        assert resolve_url("#top", "rdnt://home/a.rwml") is None

    def test_resolve_drops_fragment_from_absolute_link(self):
        assert resolve_url("rdnt://home/page.rwml#top", "rdnt://home/") == "rdnt://home/page.rwml"


class TestCrawlSite:
    """Traversal behavior of crawl_site."""

    async def test_invalid_seed(self, index, make_fetcher):
        stats = await SiteCrawler(make_fetcher(), fast_config()).crawl_site("not-a-url", index)

        assert stats.errors == {"not-a-url": "Invalid URL"}
        assert stats.pages_indexed == 0
        assert len(index) == 0

    async def test_follows_links_and_indexes_pages(self, index, make_fetcher):
        fetcher = make_fetcher(
            {
                "home/": '<title>Home</title><link url="about.rwml"><a href="/notes.txt">notes</a>',
                "home/about.rwml": "<h1>About</h1> all about us",
                "home/notes.txt": "plain notes",
            }
        )

        stats = await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert stats.pages_indexed == 3
        assert stats.pages_failed == 0
        assert stats.total_visited == 3
        assert urls_in(index) == ["rdnt://home/", "rdnt://home/about.rwml", "rdnt://home/notes.txt"]
        titles = {doc.url: doc.title for doc in index.documents.values()}
        assert titles["rdnt://home/about.rwml"] == "About"
        assert titles["rdnt://home/notes.txt"] == "Untitled"

    async def test_fifo_order(self, index, make_fetcher):
        fetcher = make_fetcher(
            {
                "home/": '<a href="a.rwml">a</a><a href="b.rwml">b</a>',
                "home/a.rwml": '<a href="a2.rwml">a2</a>',
                "home/b.rwml": "leaf",
                "home/a2.rwml": "leaf",
            }
        )

        await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert fetcher.requests == ["home/robots.txt", "home/", "home/a.rwml", "home/b.rwml", "home/a2.rwml"]

    async def test_fragment_variants_are_one_page(self, index, make_fetcher):
        fetcher = make_fetcher(
            {"home/": '<a href="page.rwml">a</a><a href="rdnt://home/page.rwml#top">b</a>', "home/page.rwml": "x"}
        )

        stats = await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert urls_in(index) == ["rdnt://home/", "rdnt://home/page.rwml"]
        assert stats.pages_indexed == 2
        assert fetcher.requests.count("home/page.rwml") == 1

    async def test_site_root_takes_title_of_served_index(self, index, make_fetcher):
        fetcher = make_fetcher({"home/": "<title>Home</title> welcome"})

        await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        (doc,) = index.documents.values()
        assert doc.type is DocumentType.PLAIN_TEXT
        assert doc.title == "Home"

    async def test_each_url_visited_once(self, index, make_fetcher):
        fetcher = make_fetcher(
            {
                "home/": '<a href="a.rwml">a</a><a href="b.rwml">b</a>',
                "home/a.rwml": '<a href="b.rwml">b</a><a href="/">home</a>',
                "home/b.rwml": '<a href="a.rwml">a</a>',
            }
        )

        stats = await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert stats.pages_indexed == 3
        assert len(index) == 3
        assert fetcher.requests.count("home/b.rwml") == 1

    async def test_respects_max_depth(self, index, make_fetcher):
        fetcher = make_fetcher(
            {
                "home/": '<a href="d1.rwml">1</a>',
                "home/d1.rwml": '<a href="d2.rwml">2</a>',
                "home/d2.rwml": '<a href="d3.rwml">3</a>',
            }
        )

        await SiteCrawler(fetcher, fast_config(max_depth=1)).crawl_site("rdnt://home/", index)

        assert urls_in(index) == ["rdnt://home/", "rdnt://home/d1.rwml"]
        assert "home/d2.rwml" not in fetcher.requests

    async def test_depth_zero_indexes_only_seed(self, index, make_fetcher):
        fetcher = make_fetcher({"home/": '<a href="a.rwml">a</a>', "home/a.rwml": "x"})

        await SiteCrawler(fetcher, fast_config(max_depth=0)).crawl_site("rdnt://home/", index)

        assert urls_in(index) == ["rdnt://home/"]

    async def test_respects_max_pages(self, index, make_fetcher):
        links = "".join(f'<a href="p{i}.rwml">{i}</a>' for i in range(10))
        pages = {"home/": links} | {f"home/p{i}.rwml": "page" for i in range(10)}

        stats = await SiteCrawler(make_fetcher(pages), fast_config(max_pages=4)).crawl_site("rdnt://home/", index)

        assert stats.pages_indexed == 4
        assert len(index) == 4
        assert stats.queue_remaining == 7

    async def test_fetch_failures_are_recorded_and_crawl_continues(self, index, make_fetcher):
        fetcher = make_fetcher({"home/": '<a href="gone.rwml">x</a><a href="ok.rwml">y</a>', "home/ok.rwml": "fine"})

        stats = await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert stats.pages_failed == 1
        assert "rdnt://home/gone.rwml" in stats.errors
        assert stats.pages_indexed == 2

    async def test_uncrawlable_links_are_not_followed(self, index, make_fetcher):
        fetcher = make_fetcher({"home/": '<a href="logo.png">img</a><a href="ok.md">md</a>', "home/ok.md": "# hi"})

        await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert "home/logo.png" not in fetcher.requests
        assert urls_in(index) == ["rdnt://home/", "rdnt://home/ok.md"]

    async def test_unsupported_seed_extension_is_fetched_but_not_indexed(self, index, make_fetcher):
        fetcher = make_fetcher({"home/data.bin": "binary"})

        stats = await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/data.bin", index)

        assert stats.pages_skipped == 1
        assert len(index) == 0

    async def test_same_host_only(self, index, make_fetcher):
        fetcher = make_fetcher({"home/": '<a href="rdnt://other/">other</a>', "other/": "elsewhere"})

        await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert urls_in(index) == ["rdnt://home/"]

    async def test_cross_host_allowed_when_configured(self, index, make_fetcher):
        fetcher = make_fetcher({"home/": '<a href="rdnt://other/">other</a>', "other/": "elsewhere"})

        await SiteCrawler(fetcher, fast_config(same_host_only=False)).crawl_site("rdnt://home/", index)

        assert urls_in(index) == ["rdnt://home/", "rdnt://other/"]

    async def test_robots_disallow(self, index, make_fetcher):
        fetcher = make_fetcher(
            {
                "home/robots.txt": "User-agent: *\nDisallow: /private\n",
                "home/": '<a href="private/x.rwml">p</a><a href="public.rwml">q</a>',
                "home/private/x.rwml": "secret",
                "home/public.rwml": "open",
            }
        )

        await SiteCrawler(fetcher, fast_config()).crawl_site("rdnt://home/", index)

        assert urls_in(index) == ["rdnt://home/", "rdnt://home/public.rwml"]
        assert "home/private/x.rwml" not in fetcher.requests

    async def test_robots_ignored_when_disabled(self, index, make_fetcher):
        fetcher = make_fetcher({"home/robots.txt": "User-agent: *\nDisallow: /\n", "home/": "welcome"})

        await SiteCrawler(fetcher, fast_config(respect_robots_txt=False)).crawl_site("rdnt://home/", index)

        assert urls_in(index) == ["rdnt://home/"]
        assert "home/robots.txt" not in fetcher.requests

    async def test_crawl_delay_is_a_floor(self, index, make_fetcher):
        fetcher = make_fetcher(
            {"home/robots.txt": "User-agent: *\nCrawl-delay: 2\n", "home/": '<a href="a.rwml">a</a>', "home/a.rwml": "x"}
        )

        with patch("rdnt_search.utils.crawler.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await SiteCrawler(fetcher, CrawlConfig(delay_seconds=0.5)).crawl_site("rdnt://home/", index)

        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 2.0]

    async def test_configured_delay_kept_when_larger(self, index, make_fetcher):
        fetcher = make_fetcher({"home/robots.txt": "User-agent: *\nCrawl-delay: 0.2\n", "home/": "x"})

        with patch("rdnt_search.utils.crawler.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await SiteCrawler(fetcher, CrawlConfig(delay_seconds=1.5)).crawl_site("rdnt://home/", index)

        sleep.assert_awaited_once_with(1.5)

    async def test_stats_timestamps(self, index, make_fetcher):
        stats = await SiteCrawler(make_fetcher({"home/": "x"}), fast_config()).crawl_site("rdnt://home/", index)

        assert stats.finished_at >= stats.started_at
        assert stats.elapsed >= 0
        assert stats.to_dict()["pages_indexed"] == 1


class TestCrawlAll:
    """crawl_all walks every site the fetcher lists."""

    async def test_crawls_each_site(self, index, make_fetcher):
        fetcher = make_fetcher({"home/": "home page", "blog/": "blog page"})

        results = await SiteCrawler(fetcher, fast_config()).crawl_all(index)

        assert sorted(results) == ["rdnt://blog/", "rdnt://home/"]
        assert all(stats.pages_indexed == 1 for stats in results.values())
        assert urls_in(index) == ["rdnt://blog/", "rdnt://home/"]
