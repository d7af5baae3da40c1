"""
Render Orchestrator — cache-aware page rendering

Wraps the external renderer:

  allowed + cached      → cached payload, renderer not called
  miss / denied / force → renderer
  allowed + non-empty   → payload stored for the next request

Caching failures never reach the caller. Visibility failures and
renderer errors do.
"""

import logging
from typing import Any, Callable, Optional, Union

from .allowance import CacheAllowancePolicy
from .errors import NotViewable, StorageWriteFailure
from .key_builder import key_for_request
from .models import RenderContext, RequestContext
from .store import CacheStore

logger = logging.getLogger(__name__)

Renderer = Callable[[Any, RenderContext], Union[bytes, str]]


class RenderOrchestrator:
    def __init__(
        self,
        store: Optional[CacheStore],
        renderer: Renderer,
        policy: Optional[CacheAllowancePolicy] = None,
    ):
        self.store = store
        self.renderer = renderer
        self.policy = policy or CacheAllowancePolicy()

    def render(
        self,
        page: Any,
        request: RequestContext,
        context: Optional[RenderContext] = None,
        force_rebuild: bool = False,
    ) -> bytes:
        """
        Render a page, serving from and populating the cache when allowed.

        Args:
            page: The page being viewed
            request: Request facts from the HTTP layer
            context: Current-page context; pass the parent's context when
                     rendering nested pages
            force_rebuild: Skip the cache read but still store the result

        Raises:
            NotViewable: the page fails its visibility check
        """
        if not page.viewable():
            raise NotViewable(page.id)

        if context is None:
            context = RenderContext()

        allowed = self.store is not None and self.policy.is_allowed(page, request)
        key = key_for_request(page.id, request) if allowed else None

        if allowed and not force_rebuild:
            cached = self.store.get(key, page.template.cache_ttl)
            if cached is not None:
                return cached

        with context.rendering(page):
            output = self.renderer(page, context)
        payload = output.encode("utf-8") if isinstance(output, str) else bytes(output or b"")

        if allowed and payload:
            try:
                self.store.put(key, payload)
            except StorageWriteFailure as e:
                logger.error(f"Serving page {page.id} uncached: {e}")

        return payload
