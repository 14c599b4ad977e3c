"""
Icon resolution: disk cache first, then the remote favicon provider.
"""

import logging
import re
from dataclasses import dataclass

from .cache import DiskIconCache
from .models import InvalidInput
from .providers import ProviderClient

logger = logging.getLogger(__name__)

ICON_CONTENT_TYPE = "image/png"
ICON_CACHE_CONTROL = "public, max-age=604800"  # one week

_DISALLOWED_DOMAIN_CHARS = re.compile(r"[^a-z0-9.-]")


def normalize_domain(domain: str) -> str:
    """Lowercase a domain and drop every character outside [a-z0-9.-]."""
    return _DISALLOWED_DOMAIN_CHARS.sub("", domain.lower())


@dataclass
class IconResult:
    """Icon bytes plus the metadata downstream consumers need to cache them."""

    content: bytes
    source: str  # "cache" or "remote"
    content_type: str = ICON_CONTENT_TYPE
    cache_control: str = ICON_CACHE_CONTROL


class IconResolver:
    """Resolves (domain, size) to favicon bytes, persisting fetched icons."""

    def __init__(self, provider: ProviderClient, cache: DiskIconCache):
        self.provider = provider
        self.cache = cache

    async def resolve_icon(self, domain: str, size: int = 64) -> IconResult:
        """
        Get the icon for a domain.

        Raises:
            InvalidInput: if the domain is empty after normalization or the
                size is not a positive integer
            UpstreamUnavailable: if the icon is not cached and the favicon
                provider fails
        """
        normalized = normalize_domain(domain)
        if not normalized:
            raise InvalidInput("invalid domain")
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise InvalidInput("invalid size")

        cached = self.cache.read(normalized, size)
        if cached is not None:
            logger.debug(f"Icon cache hit: {normalized} ({size}px)")
            return IconResult(content=cached, source="cache")

        content = await self.provider.fetch_favicon(normalized, size)

        try:
            path = self.cache.write(normalized, size, content)
            logger.debug(f"Cached icon at {path}")
        except OSError as e:
            logger.warning(f"Could not persist icon for {normalized}: {e}")

        return IconResult(content=content, source="remote")
