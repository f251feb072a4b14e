"""
Tests for outbound link extraction.

Covers:
- Which links of a rendered document become webmention targets
- Discovery order and deduplication

Running Tests:
    $ PYTHONPATH=src python -m pytest tests/test_link_tracking.py -v
"""
from indieweb.link_tracking import MAX_HTML_PARSE_BYTES, extract_outbound_links, origin_of, outbound_target


# =========================================================================
# Unit Tests: Link Extraction
# =========================================================================

class TestExtractOutboundLinks:
    def test_extracts_external_links(self):
        html = '''
        <p>Check out <a href="https://example.com/post">this post</a> and
        <a href="https://other.org/article">this article</a>.</p>
        '''
        links = extract_outbound_links(html, "https://myblog.com")
        assert links == ["https://example.com/post", "https://other.org/article"]

    def test_excludes_self_links(self):
        html = '<p><a href="https://myblog.com/about">About</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert len(links) == 0

    def test_excludes_self_links_case_insensitive(self):
        html = '<p><a href="https://MyBlog.COM/about">About</a></p>'
        links = extract_outbound_links(html, "https://myblog.com/")
        assert len(links) == 0

    def test_excludes_mailto_links(self):
        html = '<p><a href="mailto:test@example.com">Email</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert len(links) == 0

    def test_excludes_javascript_links(self):
        html = '<p><a href="javascript:alert(1)">Click</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert len(links) == 0

    def test_excludes_fragment_only(self):
        html = '<p><a href="#section">Jump</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert len(links) == 0

    def test_excludes_empty_href(self):
        html = '<p><a href="">Empty</a><a>No href</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert len(links) == 0

    def test_excludes_relative_links(self):
        html = '<p><a href="/about">About</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert len(links) == 0

    def test_strips_fragments_from_links(self):
        html = '<p><a href="https://example.com/post#comments">Post</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert links == ["https://example.com/post"]

    def test_preserves_query_params(self):
        html = '<p><a href="https://example.com/search?q=test">Search</a></p>'
        links = extract_outbound_links(html, "https://myblog.com")
        assert links == ["https://example.com/search?q=test"]

    def test_deduplicates_links_keeping_first_position(self):
        html = '''
        <a href="https://b.com/2">B</a>
        <a href="https://a.com/1">A</a>
        <a href="https://b.com/2#again">B again</a>
        '''
        links = extract_outbound_links(html, "https://myblog.com")
        assert links == ["https://b.com/2", "https://a.com/1"]

    def test_same_host_different_scheme_is_external(self):
        html = '<a href="http://myblog.com/old">Old</a>'
        assert extract_outbound_links(html, "https://myblog.com") == ["http://myblog.com/old"]

    def test_empty_html(self):
        links = extract_outbound_links("", "https://myblog.com")
        assert len(links) == 0

    def test_oversized_html_is_truncated(self):
        html = '<a href="https://a.com/1">A</a>' + " " * MAX_HTML_PARSE_BYTES + '<a href="https://b.com/2">B</a>'
        assert extract_outbound_links(html, "https://myblog.com") == ["https://a.com/1"]

    def test_multiple_external_domains(self):
        html = '''
        <a href="https://a.com/1">A</a>
        <a href="https://b.com/2">B</a>
        <a href="https://c.com/3">C</a>
        <a href="https://myblog.com/self">Self</a>
        '''
        links = extract_outbound_links(html, "https://myblog.com")
        assert links == ["https://a.com/1", "https://b.com/2", "https://c.com/3"]


class TestOriginOf:
    def test_origin(self):
        assert origin_of("https://blog.example.com:8443/a/b/?q=1") == "https://blog.example.com:8443"


class TestOutboundTarget:
    def test_keeps_params_and_query(self):
        assert outbound_target("https://a.com/p;v=1?x=2#frag", "https://myblog.com") == "https://a.com/p;v=1?x=2"

    def test_uppercase_scheme(self):
        assert outbound_target("HTTPS://a.com/x", "https://myblog.com") == "https://a.com/x"

    def test_missing_href(self):
        assert outbound_target(None, "https://myblog.com") is None
