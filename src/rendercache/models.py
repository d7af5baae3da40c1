"""Page, template and request shapes consumed by the render cache.

Pages and templates belong to the content system. The core only reads
them, so these dataclasses describe the attributes it relies on; any
object exposing the same attributes can be passed in their place.
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple


class InvalidationScope(str, Enum):
    NONE = "none"
    THIS_PAGE = "this_page"
    SITE_WIDE = "site_wide"
    ANCESTORS = "ancestors"
    EXPLICIT_LIST = "explicit_list"

    @classmethod
    def parse(cls, raw: Any) -> "InvalidationScope":
        """Accept enum values, ``"SiteWide"`` style names or ``None``."""
        if raw is None:
            return cls.NONE
        if isinstance(raw, cls):
            return raw
        text = str(raw).strip()
        if not text:
            return cls.NONE
        if not text.isupper() and "_" not in text:
            text = re.sub(r"(?<!^)(?=[A-Z])", "_", text)
        try:
            return cls(text.lower())
        except ValueError as exc:
            raise ValueError(f"unknown invalidation scope: {raw!r}") from exc


def _split_names(raw: Any) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        parts: Iterable[str] = re.split(r"[\s,]+", raw)
    else:
        parts = (str(item) for item in raw)
    return tuple(part.strip() for part in parts if part and part.strip())


@dataclass(frozen=True)
class Template:
    name: str = ""
    cache_ttl: int = 0
    cache_for_authenticated: bool = False
    no_cache_query_params: Tuple[str, ...] = ()
    no_cache_post_params: Tuple[str, ...] = ()
    invalidation_scope: InvalidationScope = InvalidationScope.NONE
    invalidation_targets: Tuple[int, ...] = ()

    @property
    def caching_enabled(self) -> bool:
        return self.cache_ttl > 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Template":
        """Build a template from stored field values.

        Parameter lists may be sequences or the free text template
        editors store them as (names separated by whitespace or commas).
        """
        return cls(
            name=str(data.get("name", "")),
            cache_ttl=max(int(data.get("cache_ttl") or 0), 0),
            cache_for_authenticated=bool(data.get("cache_for_authenticated", False)),
            no_cache_query_params=_split_names(data.get("no_cache_query_params")),
            no_cache_post_params=_split_names(data.get("no_cache_post_params")),
            invalidation_scope=InvalidationScope.parse(data.get("invalidation_scope")),
            invalidation_targets=tuple(int(t) for t in _split_names(data.get("invalidation_targets"))),
        )


@dataclass
class Page:
    id: int
    template: Template
    status: str = "published"
    parent: Optional["Page"] = None
    is_editable: bool = False
    is_viewable: bool = True

    def editable(self) -> bool:
        """Whether the current requester may edit this page."""
        return self.is_editable

    def viewable(self) -> bool:
        return self.is_viewable

    def parents(self) -> List["Page"]:
        """Ancestor chain, nearest parent first."""
        chain: List[Page] = []
        node = self.parent
        while node is not None:
            chain.append(node)
            node = node.parent
        return chain


@dataclass(frozen=True)
class RequestContext:
    """Request facts supplied by the HTTP layer.

    ``bypass_page_id`` carries the session-scoped "disable cache for
    page X" override.
    """

    query_params: frozenset = frozenset()
    post_params: frozenset = frozenset()
    authenticated: bool = False
    url_segments: Tuple[str, ...] = ()
    page_num: int = 1
    language_id: Optional[Any] = None
    is_default_language: bool = True
    bypass_page_id: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "query_params", frozenset(self.query_params))
        object.__setattr__(self, "post_params", frozenset(self.post_params))
        object.__setattr__(self, "url_segments", tuple(self.url_segments))


@dataclass
class RenderContext:
    """Current-page context threaded through (possibly nested) renders."""

    _stack: List[Any] = field(default_factory=list)

    @property
    def current_page(self) -> Optional[Any]:
        return self._stack[-1] if self._stack else None

    @contextmanager
    def rendering(self, page: Any) -> Iterator["RenderContext"]:
        depth = len(self._stack)
        self._stack.append(page)
        try:
            yield self
        finally:
            del self._stack[depth:]
