"""
Activity Heuristics
===================
Cheap, local entity extraction from what the user is looking at: the
foreground app, its window title and (for browsers) the URL.

Produces ``Observation`` records; the service upserts each one and feeds
the page context to the co-occurrence tracker so that entities seen on the
same page get linked.

Labels are chosen to survive canonical resolution, which rejects anything
path-like or ending in a file-extension-like suffix: domains lose their
TLD ("github.com" -> "github"), GitHub repos are keyed by repo name and
subreddits by their bare name.
"""

from __future__ import annotations

import re
from typing import List, NamedTuple, Optional
from urllib.parse import urlparse

from loguru import logger

SKIP_TITLE_PATTERNS = (
    re.compile(r"^untitled", re.IGNORECASE),
    re.compile(r"^loading", re.IGNORECASE),
    re.compile(r"^new tab", re.IGNORECASE),
    re.compile(r"^\s*$"),
    re.compile(r"^about:blank", re.IGNORECASE),
    re.compile(r"^settings", re.IGNORECASE),
    re.compile(r"^preferences", re.IGNORECASE),
)

GENERIC_DOMAINS = frozenset({"google.com", "bing.com", "duckduckgo.com", "localhost", "127.0.0.1"})
INSTAGRAM_RESERVED = frozenset({"stories", "p", "reel", "explore", "accounts", "direct", "about"})
X_RESERVED = frozenset({
    "home", "search", "explore", "notifications", "messages",
    "i", "settings", "compose", "login", "logout",
})
MESSAGING_APPS = frozenset({"Messages", "Telegram", "WhatsApp", "Signal", "Discord", "Slack", "iMessage"})

MAX_PAGE_CONTEXT = 200
MAX_MENTIONS = 3

_INSTAGRAM = re.compile(r"instagram\.com/([^/?#]+)")
_X = re.compile(r"(?:^|[/.])(?:twitter|x)\.com/([^/?#]+)")
_GITHUB = re.compile(r"github\.com/([^/?#]+)/([^/?#]+)")
_LINKEDIN = re.compile(r"linkedin\.com/in/([^/?#]+)")
_REDDIT = re.compile(r"reddit\.com/r/([^/?#]+)")
_YOUTUBE_SUFFIX = re.compile(r"\s*[-–—|]?\s*YouTube\s*$")
_TITLE_SEPARATOR_TAIL = re.compile(r"\s*[-–—|].*$")
_MENTION = re.compile(r"@[\w.-]{3,}")
_HAS_LETTER = re.compile(r"[A-Za-z]")


class Observation(NamedTuple):
    """One entity sighting, ready for ``GraphStore.upsert_node``."""
    label: str
    type: str
    context: str
    hint: Optional[str] = None


def should_skip_title(title: Optional[str]) -> bool:
    return any(p.search(title or "") for p in SKIP_TITLE_PATTERNS)


def page_context(app: str, title: str, url: Optional[str], summary: Optional[str]) -> str:
    """Context hint shared by every entity extracted from one page."""
    if summary:
        return summary
    if title and url:
        text = f"{app}: {title}"
    else:
        text = url or f"{app}: {title or ''}"
    return text[:MAX_PAGE_CONTEXT]


def domain_label(hostname: str) -> Optional[str]:
    """``news.ycombinator.com`` -> ``news.ycombinator``; ``bbc.co.uk`` -> ``bbc``."""
    parts = [p for p in hostname.lower().split(".") if p]
    if len(parts) < 2:
        return None
    parts = parts[:-1]
    if len(parts) >= 2 and len(parts[-1]) <= 3:
        parts = parts[:-1]
    return ".".join(parts) or None


def extract_from_url(url: str, context_hint: str) -> List[Observation]:
    observations: List[Observation] = []
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError as e:
        logger.trace(f"[Heuristics] Unparseable URL {url!r}: {e}")
        return observations

    domain = hostname[4:] if hostname.startswith("www.") else hostname
    if domain and domain not in GENERIC_DOMAINS:
        label = domain_label(domain)
        if label:
            observations.append(Observation(label, "content", domain, context_hint))

    match = _INSTAGRAM.search(url)
    if match and match.group(1) not in INSTAGRAM_RESERVED:
        observations.append(Observation(f"@{match.group(1)}", "person", "instagram.com", context_hint))

    match = _X.search(url)
    if match and match.group(1) not in X_RESERVED:
        observations.append(Observation(f"@{match.group(1)}", "person", "x.com", context_hint))

    match = _GITHUB.search(url)
    if match and "settings" not in match.group(0) and "notifications" not in match.group(0):
        observations.append(Observation(match.group(2), "project", "github.com", context_hint))

    match = _LINKEDIN.search(url)
    if match:
        name = re.sub(r"\d+$", "", match.group(1).replace("-", " ")).strip()
        if len(name) > 2:
            observations.append(Observation(name, "person", "linkedin.com", context_hint))

    match = _REDDIT.search(url)
    if match and len(match.group(1)) > 2:
        observations.append(Observation(match.group(1), "topic", "reddit.com", context_hint))

    return observations


def extract_from_title(app: str, title: str, url: Optional[str], context_hint: str) -> List[Observation]:
    observations: List[Observation] = []
    if not title or len(title) <= 2:
        return observations

    if url and ("youtube.com/watch" in url or "youtu.be" in url):
        clean = _YOUTUBE_SUFFIX.sub("", title).strip()
        if 5 < len(clean) < 100:
            observations.append(Observation(clean, "content", "youtube.com", context_hint))

    if app in MESSAGING_APPS:
        name = _TITLE_SEPARATOR_TAIL.sub("", title).strip()
        if 1 < len(name) < 30 and not name.isdigit() and _HAS_LETTER.search(name):
            observations.append(Observation(name, "person", app, context_hint))

    for mention in _MENTION.findall(title)[:MAX_MENTIONS]:
        observations.append(Observation(mention, "person", app, context_hint))

    return observations


def extract_activity(
    app: str,
    title: str,
    url: Optional[str] = None,
    summary: Optional[str] = None,
) -> List[Observation]:
    """
    Entities worth recording for one foreground-window sample.

    The app itself is observed without a context hint so that it never
    co-occurs with the page content.
    """
    if should_skip_title(title):
        return []

    hint = page_context(app, title, url, summary)
    observations: List[Observation] = []
    if app and app != "Unknown" and len(app) > 2:
        observations.append(Observation(app, "app", app, None))
    if url:
        observations.extend(extract_from_url(url, hint))
    observations.extend(extract_from_title(app, title, url, hint))
    return observations
