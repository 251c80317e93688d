"""
Tests for webmention content sanitization.
"""
import pytest

from config import SanitizerConfig
from indieweb.sanitizer import ContentSanitizer


@pytest.fixture
def sanitizer():
    return ContentSanitizer()


class TestSanitize:
    def test_script_removed(self, sanitizer):
        assert sanitizer.sanitize("<p>hi</p><script>x</script>") == "<p>hi</p>"

    def test_anchor_gets_rel_and_loses_handlers(self, sanitizer):
        result = sanitizer.sanitize('<a href="http://e.com" onclick="x">t</a>')
        assert result == '<a href="http://e.com" rel="nofollow noopener">t</a>'

    def test_event_handlers_removed_from_allowed_tags(self, sanitizer):
        assert sanitizer.sanitize('<p onclick="x()">hi<script>bad()</script></p>') == "<p>hi</p>"
        assert sanitizer.sanitize("<em onmouseover='x'>a</em>") == "<em>a</em>"
        assert sanitizer.sanitize("<b onload=x>a</b>") == "<b>a</b>"

    def test_slash_separated_handlers_removed(self, sanitizer):
        result = sanitizer.sanitize('<p/onclick="alert(1)">x</p><em/onmouseover=alert(1)>y</em>')
        assert result == "<p>x</p><em>y</em>"

    def test_plain_tags_lose_all_attributes(self, sanitizer):
        assert sanitizer.sanitize('<blockquote cite="x" style="color:red">q</blockquote>') == "<blockquote>q</blockquote>"
        assert sanitizer.sanitize("<br/>") == "<br>"

    def test_slash_separated_attributes_on_rewritten_tags(self, sanitizer):
        assert sanitizer.sanitize('<img/src="https://x.test/a.png"/onerror=alert(1)>') == '<img src="https://x.test/a.png">'
        result = sanitizer.sanitize('<a/href="http://e.com"/onclick="x">t</a>')
        assert result == '<a href="http://e.com" rel="nofollow noopener">t</a>'

    def test_unclosed_anchor_rebuilt(self, sanitizer):
        assert sanitizer.sanitize('<a href="javascript:x" rel="nofollow noopener">t') == "t"
        assert sanitizer.sanitize('<a onclick=x href="http://e.com">t') == '<a href="http://e.com" rel="nofollow noopener">t'

    def test_href_path_resembling_handler_kept(self, sanitizer):
        result = sanitizer.sanitize('<a href="http://e.com/online=1">t</a>')
        assert result == '<a href="http://e.com/online=1" rel="nofollow noopener">t</a>'

    def test_disallowed_tags_stripped_text_kept(self, sanitizer):
        assert sanitizer.sanitize("<div><span>hi</span></div>") == "hi"

    def test_style_and_comments_removed(self, sanitizer):
        assert sanitizer.sanitize("a<style>p{}</style>b<!-- hidden -->c") == "abc"

    def test_unclosed_script_removed(self, sanitizer):
        assert sanitizer.sanitize("<p>x</p><script>evil()") == "<p>x</p>"

    def test_uppercase_tags(self, sanitizer):
        assert sanitizer.sanitize("<SCRIPT>x</SCRIPT><B>y</B>") == "<b>y</b>"

    def test_image_keeps_only_src_and_alt(self, sanitizer):
        result = sanitizer.sanitize('<img src="https://x.test/a.png" alt="a &quot;b" onerror="x" width="9">')
        assert result == '<img src="https://x.test/a.png" alt="a &quot;b">'

    def test_unsafe_href_replaced_by_text(self, sanitizer):
        assert sanitizer.sanitize('<a href="javascript:alert(1)">t</a>') == "t"
        assert sanitizer.sanitize('<a href=" JaVaScRiPt:alert(1)">t</a>') == "t"

    def test_anchor_without_href_replaced_by_text(self, sanitizer):
        assert sanitizer.sanitize('<a name="x">t</a>') == "t"

    def test_unsafe_image_source_dropped(self, sanitizer):
        assert sanitizer.sanitize('<img src="data:image/png;base64,AAAA">') == "<img>"

    def test_stray_angle_bracket_escaped(self, sanitizer):
        assert sanitizer.sanitize("1 < 2") == "1 &lt; 2"

    def test_empty_content(self, sanitizer):
        assert sanitizer.sanitize("") == ""
        assert sanitizer.sanitize(None) == ""


class TestTruncation:
    def test_truncated_with_marker(self):
        assert ContentSanitizer(max_content_length=5).sanitize("abcdefgh") == "abcde..."

    def test_exact_length_untouched(self):
        assert ContentSanitizer(max_content_length=5).sanitize("abcde") == "abcde"

    def test_truncation_counts_characters(self):
        assert ContentSanitizer(max_content_length=3).sanitize("ééééé") == "ééé..."


class TestDisabled:
    def test_disabled_only_truncates(self):
        sanitizer = ContentSanitizer(enabled=False, max_content_length=100)
        assert sanitizer.sanitize("<script>x</script>") == "<script>x</script>"

    def test_from_config(self):
        sanitizer = ContentSanitizer.from_config(SanitizerConfig(enabled=False, max_content_length=10))
        assert sanitizer.enabled is False
        assert sanitizer.max_content_length == 10
