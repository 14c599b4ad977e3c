"""
Official domain resolution for subscription names.

Resolution tries each tier in order and stops at the first one that yields a
domain:

1. In-memory cache (exact query string)
2. Structured search API (OfficialWebsite, AbstractURL, Results[].FirstURL)
3. HTML search results page

The first non-cache success is written back to the cache. Failures write
nothing, so a later call retries the remote tiers.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from .cache import MemoryCache
from .models import InvalidInput, ResolutionOutcome
from .providers import ProviderClient

logger = logging.getLogger(__name__)

# Encyclopedia hosts are never an official site
GENERIC_ABSTRACT_HOSTS = ("wikipedia.org",)

SEARCH_PROVIDER_HOST = "duckduckgo.com"
WEB_SCHEMES = ("http://", "https://")

RESULT_LINK_SELECTOR = ".result__a, .result__url, .links_main a"

# Redirect links carry the destination in this query parameter
REDIRECT_PATH_PREFIX = "/l/"
REDIRECT_TARGET_PARAM = "uddg"

Tier = Callable[[str], Awaitable[str | None]]


def extract_host(url: Any) -> str | None:
    """
    Return the host of an absolute URL, or None if it has no scheme or host.
    """
    if not isinstance(url, str) or not url.strip():
        return None
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError:
        return None
    if not parsed.scheme or not host:
        return None
    return host


def domain_from_api_response(data: dict[str, Any]) -> tuple[str, str] | None:
    """
    Pick a domain from a structured search response.

    Returns (domain, field) for the first usable field, checked in order:
    OfficialWebsite, AbstractURL (unless it is an encyclopedia page), then
    the first parseable FirstURL in Results.
    """
    domain = extract_host(data.get("OfficialWebsite"))
    if domain:
        return domain, "OfficialWebsite"

    domain = extract_host(data.get("AbstractURL"))
    if domain and not any(generic in domain for generic in GENERIC_ABSTRACT_HOSTS):
        return domain, "AbstractURL"

    results = data.get("Results")
    if isinstance(results, list):
        for result in results:
            if not isinstance(result, dict):
                continue
            domain = extract_host(result.get("FirstURL"))
            if domain:
                return domain, "Results"

    return None


def decode_result_href(href: str) -> str | None:
    """
    Recover the destination URL of a search result link.

    Redirect links (path starting with /l/) carry a percent-encoded target in
    their uddg parameter; redirect links without one yield None. Any other
    href is returned unchanged. Unparseable hrefs yield None.
    """
    try:
        parsed = urlparse(href)
    except ValueError:
        return None
    if not parsed.path.startswith(REDIRECT_PATH_PREFIX):
        return href

    targets = parse_qs(parsed.query).get(REDIRECT_TARGET_PARAM)
    if not targets:
        return None
    return targets[0]


def domains_from_html(markup: str) -> list[str]:
    """Extract candidate result domains from an HTML search page, in page order."""
    soup = BeautifulSoup(markup, "html.parser")
    domains: list[str] = []

    for element in soup.select(RESULT_LINK_SELECTOR):
        href = element.get("href")
        if not href:
            continue
        logger.debug(f"Found candidate link: {href}")

        url = decode_result_href(str(href))
        if url is None:
            continue

        if not url.lower().startswith(WEB_SCHEMES):
            continue
        domain = extract_host(url)
        if not domain or SEARCH_PROVIDER_HOST in domain:
            continue
        domains.append(domain)

    return domains


class DomainResolver:
    """Resolves a free-text subscription name to its official domain."""

    def __init__(self, provider: ProviderClient, cache: MemoryCache | None = None):
        self.provider = provider
        self.cache = cache if cache is not None else MemoryCache()

    @property
    def tiers(self) -> list[tuple[str, Tier]]:
        """Resolution tiers in priority order, as (source, tier) pairs."""
        return [
            ("cache", self.from_cache),
            ("api", self.from_search_api),
            ("html", self.from_html_search),
        ]

    async def resolve(self, query: str) -> ResolutionOutcome:
        """
        Resolve a query to a domain.

        Raises:
            InvalidInput: if the query is empty after trimming
        """
        query = query.strip()
        if not query:
            raise InvalidInput("Query is empty")

        logger.info(f"Searching for: {query}")

        for source, tier in self.tiers:
            domain = await tier(query)
            if not domain:
                continue
            if source != "cache":
                self.cache.set(query, domain)
            return ResolutionOutcome.hit(domain, source)

        logger.info(f"No domain found for: {query}")
        return ResolutionOutcome.not_found()

    async def from_cache(self, query: str) -> str | None:
        cached = self.cache.get(query)
        if cached:
            logger.info(f"Cache hit: {cached}")
        return cached

    async def from_search_api(self, query: str) -> str | None:
        data = await self.provider.search_api(query)
        if data is None:
            return None

        found = domain_from_api_response(data)
        if found is None:
            logger.info("API failed to find domain, falling back to HTML search...")
            return None

        domain, field = found
        logger.info(f"Found via API ({field}): {domain}")
        return domain

    async def from_html_search(self, query: str) -> str | None:
        markup = await self.provider.search_html(query)
        if not markup:
            return None

        domains = domains_from_html(markup)
        if not domains:
            return None

        logger.info(f"Found domain: {domains[0]}")
        return domains[0]
