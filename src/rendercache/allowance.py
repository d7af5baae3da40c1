"""Per-request cache allowance rules."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .models import RequestContext

logger = logging.getLogger(__name__)

NO_TTL = "template has no positive ttl"
AUTHENTICATED = "authenticated caching disabled for template"
EDITOR = "requester can edit page"
QUERY_PARAM = "no-cache query parameter present"
POST_PARAM = "no-cache post parameter present"
SESSION_BYPASS = "session bypass for page"


class CacheAllowancePolicy:
    """Decides whether a request may read or populate the cache.

    Rules are checked in order and the first denial wins. Every input
    comes from the page and the request context; the policy keeps no
    state of its own.
    """

    def check(self, page: Any, request: RequestContext) -> Optional[str]:
        """Return the reason caching is denied, or None when allowed."""
        template = page.template
        if not template.cache_ttl or template.cache_ttl <= 0:
            return NO_TTL

        if request.authenticated:
            if not template.cache_for_authenticated:
                return AUTHENTICATED
            if page.editable():
                return EDITOR

        if any(name in request.query_params for name in template.no_cache_query_params):
            return QUERY_PARAM
        if any(name in request.post_params for name in template.no_cache_post_params):
            return POST_PARAM

        if request.bypass_page_id is not None and request.bypass_page_id == page.id:
            return SESSION_BYPASS
        return None

    def is_allowed(self, page: Any, request: RequestContext) -> bool:
        reason = self.check(page, request)
        if reason is not None:
            logger.debug("cache not allowed for page=%s: %s", page.id, reason)
            return False
        return True
