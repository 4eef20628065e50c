"""
Tests for activity heuristics (app, window title and URL extraction).
"""

import pytest

from contextgraph.core.heuristics import (
    MAX_PAGE_CONTEXT,
    Observation,
    domain_label,
    extract_activity,
    extract_from_title,
    extract_from_url,
    page_context,
    should_skip_title,
)


def _labels(observations, type_=None):
    return [o.label for o in observations if type_ is None or o.type == type_]


class TestHelpers:
    @pytest.mark.parametrize("title", ["Untitled", "Loading...", "New Tab", "", "   ", "about:blank",
                                       "Settings - General", "Preferences", None])
    def test_skipped_titles(self, title):
        assert should_skip_title(title)

    @pytest.mark.parametrize("title", ["Pull requests", "My settings notes", "The Bear"])
    def test_kept_titles(self, title):
        assert not should_skip_title(title)

    @pytest.mark.parametrize("hostname,expected", [
        ("github.com", "github"),
        ("news.ycombinator.com", "news.ycombinator"),
        ("bbc.co.uk", "bbc"),
        ("en.wikipedia.org", "en.wikipedia"),
        ("localhost", None),
        ("", None),
    ])
    def test_domain_label(self, hostname, expected):
        assert domain_label(hostname) == expected

    def test_page_context_prefers_summary(self):
        assert page_context("Chrome", "Title", "https://a.com", "reading about rust") == "reading about rust"

    def test_page_context_fallbacks(self):
        assert page_context("Chrome", "Title", "https://a.com", None) == "Chrome: Title"
        assert page_context("Chrome", "", "https://a.com", None) == "https://a.com"
        assert page_context("Notes", "Groceries", None, None) == "Notes: Groceries"

    def test_page_context_is_capped(self):
        assert len(page_context("Chrome", "x" * 500, "https://a.com", None)) == MAX_PAGE_CONTEXT


class TestUrlExtraction:
    def test_domain_content(self):
        observations = extract_from_url("https://www.bbc.co.uk/news/world", "hint")
        assert observations == [Observation("bbc", "content", "bbc.co.uk", "hint")]

    def test_generic_domains_skipped(self):
        assert extract_from_url("https://www.google.com/search?q=rust", "hint") == []

    def test_github_repo(self):
        observations = extract_from_url("https://github.com/acme/widget/pulls", "hint")
        assert _labels(observations) == ["github", "widget"]
        assert observations[1].type == "project"

    def test_github_settings_ignored(self):
        assert _labels(extract_from_url("https://github.com/settings/profile", "h"), "project") == []

    def test_instagram_profile(self):
        assert _labels(extract_from_url("https://www.instagram.com/chrisli/", "h"), "person") == ["@chrisli"]
        assert _labels(extract_from_url("https://www.instagram.com/explore/", "h"), "person") == []

    def test_x_profile(self):
        assert _labels(extract_from_url("https://x.com/katie_codes", "h"), "person") == ["@katie_codes"]
        assert _labels(extract_from_url("https://twitter.com/home", "h"), "person") == []

    def test_x_pattern_needs_exact_domain(self):
        assert _labels(extract_from_url("https://www.netflix.com/browse", "h"), "person") == []

    def test_linkedin_slug(self):
        observations = extract_from_url("https://www.linkedin.com/in/jane-doe-12345/", "h")
        assert _labels(observations, "person") == ["jane doe"]

    def test_subreddit(self):
        observations = extract_from_url("https://www.reddit.com/r/rust/comments/abc", "h")
        assert _labels(observations, "topic") == ["rust"]
        assert _labels(extract_from_url("https://reddit.com/r/ai", "h"), "topic") == []


class TestTitleExtraction:
    def test_youtube_title(self):
        observations = extract_from_title(
            "Chrome", "Rust in 100 Seconds - YouTube", "https://www.youtube.com/watch?v=abc", "h",
        )
        assert observations == [Observation("Rust in 100 Seconds", "content", "youtube.com", "h")]

    def test_messaging_conversation_partner(self):
        observations = extract_from_title("Slack", "Katie Li - Direct Message", None, "h")
        assert observations == [Observation("Katie Li", "person", "Slack", "h")]

    def test_messaging_numeric_title_ignored(self):
        assert extract_from_title("Messages", "12345", None, "h") == []

    def test_mentions_are_capped(self):
        observations = extract_from_title("Chrome", "Ping @alice and @bob_dev and @carol and @dave", None, "h")
        assert _labels(observations) == ["@alice", "@bob_dev", "@carol"]

    def test_short_title(self):
        assert extract_from_title("Slack", "hi", None, "h") == []


class TestExtractActivity:
    def test_skipped_title(self):
        assert extract_activity("Chrome", "New Tab", "https://github.com/acme/widget") == []

    def test_app_has_no_hint(self):
        observations = extract_activity("Chrome", "acme/widget", "https://github.com/acme/widget")
        app = observations[0]
        assert app == Observation("Chrome", "app", "Chrome", None)
        assert all(o.hint == "Chrome: acme/widget" for o in observations[1:])
        assert _labels(observations) == ["Chrome", "github", "widget"]

    @pytest.mark.parametrize("app", ["Unknown", "QQ", ""])
    def test_app_not_observed(self, app):
        assert _labels(extract_activity(app, "Some page", None), "app") == []

    def test_summary_used_as_hint(self):
        observations = extract_activity("Slack", "Katie Li", None, summary="planning poker night")
        assert observations[-1] == Observation("Katie Li", "person", "Slack", "planning poker night")
