"""Error taxonomy for the render cache."""

from __future__ import annotations


class RenderCacheError(Exception):
    """Base class for render cache errors."""


class ConfigurationError(RenderCacheError):
    """Cache root cannot be created or is not writable."""


class NotViewable(RenderCacheError):
    """The requested page fails its visibility check."""

    def __init__(self, page_id: int) -> None:
        super().__init__(f"page {page_id} is not viewable")
        self.page_id = page_id


class StorageReadFailure(RenderCacheError):
    """A cache entry could not be read. Callers treat this as a miss."""


class StorageWriteFailure(RenderCacheError):
    """A cache entry could not be written or removed."""


class InvalidationTargetUnresolvable(RenderCacheError):
    """An invalidation target page id no longer resolves to a page."""

    def __init__(self, page_id: int) -> None:
        super().__init__(f"invalidation target {page_id} could not be resolved")
        self.page_id = page_id
