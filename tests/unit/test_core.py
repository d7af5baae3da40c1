#!/usr/bin/env python3
"""
Unit tests for the RenderCache entry points
"""

import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from rendercache.config import PermissionsConfig, RenderCacheConfig
from rendercache.core import RenderCache, open_store
from rendercache.models import InvalidationScope, Page, RequestContext, Template


@pytest.fixture(autouse=True)
def restore_package_log_level():
    package_logger = logging.getLogger("rendercache")
    previous = package_logger.level
    yield
    package_logger.setLevel(previous)


def make_config(cache_dir, enabled=True):
    return RenderCacheConfig(
        enabled=enabled,
        cache_dir=Path(cache_dir),
        permissions=PermissionsConfig(dirs=0o755, files=0o644),
        log_level="INFO",
    )


def test_render_then_invalidate_on_save(tmp_path):
    calls = []

    def renderer(page, context):
        calls.append(page.id)
        return f"page {page.id} v{len(calls)}"

    section = Page(1, Template(cache_ttl=300))
    article = Page(2, Template(cache_ttl=300, invalidation_scope=InvalidationScope.ANCESTORS), parent=section)
    pages = {1: section, 2: article}
    cache = RenderCache.from_config(make_config(tmp_path / "pages"), renderer, pages.get)

    assert cache.render(section, RequestContext()) == b"page 1 v1"
    assert cache.render(section, RequestContext()) == b"page 1 v1"

    record = cache.on_page_saved(article)

    assert record.pages_cleared == [1, 2]
    assert cache.render(section, RequestContext()) == b"page 1 v2"


def test_delete_clears_own_entries(tmp_path):
    page = Page(5, Template(cache_ttl=60))
    cache = RenderCache.from_config(make_config(tmp_path / "pages"), lambda p, c: "body")

    cache.render(page, RequestContext(url_segments=("a",)))
    cache.on_page_deleted(page)

    assert cache.store.count_entries() == 0


def test_disabled_config_renders_uncached(tmp_path):
    calls = []

    def renderer(page, context):
        calls.append(page.id)
        return "body"

    page = Page(5, Template(cache_ttl=60))
    cache = RenderCache.from_config(make_config(tmp_path / "pages", enabled=False), renderer)

    cache.render(page, RequestContext())
    cache.render(page, RequestContext())

    assert cache.store is None
    assert len(calls) == 2
    assert not (tmp_path / "pages").exists()
    assert cache.on_page_deleted(page).pages_cleared == []


def test_unusable_cache_dir_degrades(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")

    assert open_store(make_config(blocker / "pages")) is None

    cache = RenderCache.from_config(make_config(blocker / "pages"), lambda p, c: "ok")
    assert cache.render(Page(1, Template(cache_ttl=60)), RequestContext()) == b"ok"


def test_log_level_applied_to_package_loggers(tmp_path):
    config = RenderCacheConfig(
        enabled=True,
        cache_dir=tmp_path / "pages",
        permissions=PermissionsConfig(dirs=0o755, files=0o644),
        log_level="DEBUG",
    )

    RenderCache.from_config(config, lambda p, c: "body")

    assert logging.getLogger("rendercache").level == logging.DEBUG
    assert logging.getLogger("rendercache.store").isEnabledFor(logging.DEBUG)
