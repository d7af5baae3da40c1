#!/usr/bin/env python3
"""
Content Invalidation
Clears cached renders when pages are saved or deleted.

Scope is read from the mutated page's template:
- none           → nothing on save, the page itself on delete
- this_page      → the page itself
- site_wide      → every cached page
- ancestors      → every ancestor with caching enabled, plus the page
- explicit_list  → the configured target pages, plus the page

The mutated page's own entries are always removed.
"""

import json
import logging
from typing import Any, Callable, Iterable, Optional

from .errors import InvalidationTargetUnresolvable, StorageWriteFailure
from .models import InvalidationScope
from .observability import InvalidationLogRecord
from .store import CacheStore

logger = logging.getLogger(__name__)

PageLookup = Callable[[int], Optional[Any]]

SAVED = "saved"
DELETED = "deleted"


def _caching_enabled(page: Any) -> bool:
    ttl = getattr(page.template, "cache_ttl", 0)
    return bool(ttl) and ttl > 0


class InvalidationCoordinator:
    """
    Resolves invalidation scope for a mutated page and purges entries.

    Failures on individual pages are logged and recorded; they never
    stop the rest of the pass.
    """

    def __init__(self, store: Optional[CacheStore], page_lookup: Optional[PageLookup] = None):
        self.store = store
        self.page_lookup = page_lookup

    def on_page_saved(self, page: Any) -> InvalidationLogRecord:
        return self._invalidate(page, SAVED)

    def on_page_deleted(self, page: Any) -> InvalidationLogRecord:
        return self._invalidate(page, DELETED)

    def _invalidate(self, page: Any, event: str) -> InvalidationLogRecord:
        scope = InvalidationScope.parse(page.template.invalidation_scope)
        record = InvalidationLogRecord(event=event, page_id=int(page.id), scope=scope.value)
        self._purge(page, event, scope, record)
        self._log(record)
        return record

    def _purge(self, page: Any, event: str, scope: InvalidationScope, record: InvalidationLogRecord) -> None:
        if self.store is None or not _caching_enabled(page):
            return

        if scope is InvalidationScope.NONE:
            if event != DELETED:
                return
            scope = InvalidationScope.THIS_PAGE
        record.effective_scope = scope.value

        if scope is InvalidationScope.SITE_WIDE:
            try:
                record.entries_cleared += self.store.expire_all()
                record.site_wide = True
            except StorageWriteFailure as e:
                logger.error(f"Site-wide invalidation failed: {e}")
                record.failures.append(str(e))
        elif scope is InvalidationScope.ANCESTORS:
            self._clear_pages(page.parents(), record)
        elif scope is InvalidationScope.EXPLICIT_LIST:
            self._clear_pages(self._resolve_targets(page.template.invalidation_targets, record), record)

        self._clear_page(page, record)

    def _resolve_targets(self, target_ids: Iterable[int], record: InvalidationLogRecord):
        for target_id in target_ids:
            target = None
            if self.page_lookup is not None:
                try:
                    target = self.page_lookup(int(target_id))
                except LookupError:
                    target = None
            if target is None:
                error = InvalidationTargetUnresolvable(int(target_id))
                logger.warning(f"Skipping invalidation target: {error}")
                record.skipped_targets.append(int(target_id))
                continue
            yield target

    def _clear_pages(self, pages: Iterable[Any], record: InvalidationLogRecord) -> None:
        for target in pages:
            if _caching_enabled(target):
                self._clear_page(target, record)

    def _clear_page(self, page: Any, record: InvalidationLogRecord) -> None:
        page_id = int(page.id)
        if page_id in record.pages_cleared:
            return
        try:
            record.entries_cleared += self.store.remove_all_for_page(page_id)
        except StorageWriteFailure as e:
            logger.error(f"Invalidation failed for page {page_id}: {e}")
            record.failures.append(str(e))
            return
        record.pages_cleared.append(page_id)

    def _log(self, record: InvalidationLogRecord) -> None:
        payload = record.to_dict()
        logger.info("invalidation %s", json.dumps(payload, sort_keys=True))
