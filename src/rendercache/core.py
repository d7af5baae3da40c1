"""Entry points held by the page-view and content-mutation pipelines."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .allowance import CacheAllowancePolicy
from .config import RenderCacheConfig
from .errors import ConfigurationError
from .invalidation import InvalidationCoordinator, PageLookup
from .models import RenderContext, RequestContext
from .observability import InvalidationLogRecord
from .orchestrator import RenderOrchestrator, Renderer
from .store import CacheStore

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "rendercache"


def open_store(config: RenderCacheConfig) -> Optional[CacheStore]:
    """Create the store, or None when caching is off or the root is unusable."""
    if not config.enabled:
        logger.info("Render cache disabled by configuration")
        return None
    try:
        return CacheStore(
            str(config.cache_dir),
            dir_mode=config.permissions.dirs,
            file_mode=config.permissions.files,
        )
    except ConfigurationError as exc:
        logger.error("Render cache unavailable, rendering uncached: %s", exc)
        return None


class RenderCache:
    def __init__(
        self,
        store: Optional[CacheStore],
        renderer: Renderer,
        page_lookup: Optional[PageLookup] = None,
        policy: Optional[CacheAllowancePolicy] = None,
    ) -> None:
        self.store = store
        self.orchestrator = RenderOrchestrator(store, renderer, policy)
        self.invalidator = InvalidationCoordinator(store, page_lookup)

    @classmethod
    def from_config(
        cls,
        config: RenderCacheConfig,
        renderer: Renderer,
        page_lookup: Optional[PageLookup] = None,
    ) -> "RenderCache":
        """Build the cache from config; ``log_level`` applies to the rendercache loggers."""
        logging.getLogger(PACKAGE_LOGGER).setLevel(config.log_level)
        return cls(open_store(config), renderer, page_lookup)

    def render(
        self,
        page: Any,
        request: RequestContext,
        context: Optional[RenderContext] = None,
        force_rebuild: bool = False,
    ) -> bytes:
        return self.orchestrator.render(page, request, context, force_rebuild)

    def on_page_saved(self, page: Any) -> InvalidationLogRecord:
        return self.invalidator.on_page_saved(page)

    def on_page_deleted(self, page: Any) -> InvalidationLogRecord:
        return self.invalidator.on_page_deleted(page)
