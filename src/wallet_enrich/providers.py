"""
External provider client for wallet-enrich.

Wraps the outbound HTTP calls the enrichment layer depends on:

- DuckDuckGo instant answer API (structured domain search)
- DuckDuckGo HTML search (domain search fallback)
- Google favicon service (icons)
- OpenAI-compatible chat completions (text extraction and advice)

Every call has a bounded timeout. Search and chat failures are reported as
None so callers can fall through to their next tier; favicon failures raise
UpstreamUnavailable because nothing else can supply the icon.
"""

import logging
from typing import Any

import httpx

from .config import EnrichConfig
from .models import UpstreamUnavailable

logger = logging.getLogger(__name__)

HTML_SEARCH_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Referer": "https://html.duckduckgo.com/",
}

FAVICON_USER_AGENT = "Mozilla/5.0"


class ProviderClient:
    """
    Client for the external search, favicon and language model providers.
    """

    def __init__(self, config: EnrichConfig):
        """
        Initialize the provider client.

        Args:
            config: Enrichment configuration (endpoints, timeouts, credentials)
        """
        self.config = config

    @property
    def has_llm(self) -> bool:
        """Whether a language model credential is configured."""
        return self.config.llm.get_api_key() is not None

    async def search_api(self, query: str) -> dict[str, Any] | None:
        """
        Query the structured search API.

        Args:
            query: Free-text search query

        Returns:
            Decoded JSON object, or None if the provider failed
        """
        search = self.config.search
        params = {"q": query, "format": "json"}

        logger.debug(f"Structured search: {query}")

        async with httpx.AsyncClient(
            timeout=search.timeout_seconds,
            headers={"User-Agent": search.user_agent},
        ) as client:
            try:
                response = await client.get(search.api_url, params=params, follow_redirects=True)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                logger.warning(f"API request failed: {e}")
                return None
            except ValueError as e:
                logger.warning(f"API returned malformed JSON: {e}")
                return None

        if not isinstance(data, dict):
            logger.warning("API returned a non-object JSON document")
            return None
        return data

    async def search_html(self, query: str) -> str | None:
        """
        Fetch the HTML search results page.

        Args:
            query: Free-text search query

        Returns:
            Page markup, or None if the provider failed
        """
        search = self.config.search
        headers = {"User-Agent": search.user_agent, **HTML_SEARCH_HEADERS}

        logger.debug(f"HTML search: {search.html_url}?q={query}")

        async with httpx.AsyncClient(timeout=search.timeout_seconds) as client:
            try:
                response = await client.get(
                    search.html_url,
                    params={"q": query},
                    headers=headers,
                    follow_redirects=True,
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"HTML search request failed: {e}")
                return None

        logger.debug(f"Response length: {len(response.text)}")
        return response.text

    async def fetch_favicon(self, domain: str, size: int) -> bytes:
        """
        Download a favicon PNG.

        Args:
            domain: Normalized domain name
            size: Requested icon size in pixels

        Returns:
            Icon bytes

        Raises:
            UpstreamUnavailable: on transport failure, non-2xx, or empty body
        """
        icons = self.config.icons
        params = {"domain": domain, "sz": size}

        async with httpx.AsyncClient(
            timeout=icons.timeout_seconds,
            headers={"User-Agent": FAVICON_USER_AGENT},
        ) as client:
            try:
                response = await client.get(icons.favicon_url, params=params, follow_redirects=True)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"Favicon fetch failed for {domain}: {e}")
                raise UpstreamUnavailable(f"Favicon provider unavailable: {e}") from e

        content = response.content
        if not content:
            raise UpstreamUnavailable(f"Favicon provider returned no data for {domain}")
        return content

    async def chat(self, system: str, user: str, temperature: float) -> str | None:
        """
        Send a chat completion request.

        Args:
            system: System prompt
            user: User prompt
            temperature: Sampling temperature

        Returns:
            The first choice's message content, or None if no credential is
            configured or the call failed
        """
        llm = self.config.llm
        api_key = llm.get_api_key()
        if api_key is None:
            return None

        body = {
            "model": llm.get_model(),
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
        }

        async with httpx.AsyncClient(timeout=llm.timeout_seconds) as client:
            try:
                response = await client.post(
                    f"{llm.get_base_url()}/chat/completions",
                    headers={"Authorization": f"Bearer {api_key}"},
                    json=body,
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                logger.warning(f"LLM API call failed: {e}")
                return None
            except ValueError as e:
                logger.warning(f"LLM API returned malformed JSON: {e}")
                return None

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning("LLM API response had no message content")
            return None

        if not isinstance(content, str):
            return None
        return content
