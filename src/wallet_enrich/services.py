"""
Service wiring for wallet-enrich.

Builds the shared, process-lifetime objects (caches, notifier, resolvers)
once, so request handlers receive them instead of reaching for globals.
"""

import logging
from dataclasses import dataclass

from .cache import DiskIconCache, MemoryCache
from .config import EnrichConfig
from .domain import DomainResolver
from .enrichment import TextEnricher
from .icons import IconResolver
from .models import SubscriptionDatabase
from .notifier import ChangeNotifier
from .providers import ProviderClient

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentServices:
    """Everything a request handler needs, constructed once at startup."""

    config: EnrichConfig
    provider: ProviderClient
    notifier: ChangeNotifier
    db: SubscriptionDatabase
    domains: DomainResolver
    icons: IconResolver
    enricher: TextEnricher

    @classmethod
    def build(
        cls,
        config: EnrichConfig,
        provider: ProviderClient | None = None,
    ) -> "EnrichmentServices":
        """
        Construct all services from configuration.

        Args:
            config: Enrichment configuration
            provider: Optional provider client (for testing)
        """
        provider = provider or ProviderClient(config)
        notifier = ChangeNotifier(buffer_size=config.notifier_buffer)

        logger.info(
            f"Enrichment services ready: db={config.db_path}, "
            f"icons={config.icons.cache_dir}, llm={'on' if provider.has_llm else 'off'}"
        )

        return cls(
            config=config,
            provider=provider,
            notifier=notifier,
            db=SubscriptionDatabase(config.db_path, notifier=notifier),
            domains=DomainResolver(provider, MemoryCache()),
            icons=IconResolver(provider, DiskIconCache(config.icons.cache_dir)),
            enricher=TextEnricher(provider, prompts_path=config.prompts_path),
        )
