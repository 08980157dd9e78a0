"""Resource & citation extraction from AI responses.

Finds the sources an answer points to:
  - Native citations returned by the provider API
  - Markdown links: [text](url)
  - Footnote definitions: [1]: https://...
  - Bare URLs: https://example.com
and marks those that land on an accepted competitor's domain.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Markdown-style links: [anchor text](url)
_MD_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\((https?://[^\s\)]+)\)")

# Bare URLs
_BARE_URL_PATTERN = re.compile(r"(?<!\()(https?://[^\s\)\]\"'>]+)")

# Footnote definitions at end of text: [1]: https://...
_FOOTNOTE_DEF_PATTERN = re.compile(r"^\s*\[\^?(\d+)\]:?\s+(https?://\S+)", re.MULTILINE)

_PROTOCOL_PATTERN = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)


@dataclass
class Resource:
    url: str
    domain: str
    anchor_text: str | None = None
    is_competitor: bool = False


def normalize_domain(value: str | None) -> str:
    """Bare lower-case host: protocol, ``www.``, port and path removed."""
    if not value:
        return ""
    value = value.strip().lower()
    if not _PROTOCOL_PATTERN.match(value):
        value = "http://" + value
    try:
        host = urlparse(value).hostname or ""
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host


def _domain_matches(domain: str, tracked: str) -> bool:
    return domain == tracked or domain.endswith("." + tracked)


def extract_resources(
    text: str,
    native_urls: list[str] | None = None,
    competitor_domains: list[str] | None = None,
) -> list[Resource]:
    """Extract all cited URLs, deduplicated by URL, in order of appearance."""
    resources: list[Resource] = []
    seen_urls: set[str] = set()

    def _add(url: str, **kwargs) -> None:
        url = url.strip().rstrip(".,;:")
        if url and url not in seen_urls:
            seen_urls.add(url)
            resources.append(Resource(url=url, domain=normalize_domain(url), **kwargs))

    for url in native_urls or []:
        _add(url)

    text = text or ""

    for match in _MD_LINK_PATTERN.finditer(text):
        _add(match.group(2), anchor_text=match.group(1).strip())

    for match in _FOOTNOTE_DEF_PATTERN.finditer(text):
        _add(match.group(2))

    for match in _BARE_URL_PATTERN.finditer(text):
        _add(match.group(1))

    tracked = [d for d in (normalize_domain(c) for c in competitor_domains or []) if d]
    if tracked:
        for r in resources:
            r.is_competitor = any(_domain_matches(r.domain, t) for t in tracked)

    return resources
