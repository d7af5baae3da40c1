#!/usr/bin/env python3
"""
Unit tests for cache-aware rendering
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from rendercache.errors import NotViewable, StorageWriteFailure
from rendercache.key_builder import build_key
from rendercache.models import Page, RenderContext, RequestContext, Template
from rendercache.orchestrator import RenderOrchestrator
from rendercache.store import CacheStore


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class CountingRenderer:
    def __init__(self, output="X"):
        self.output = output
        self.calls = []

    def __call__(self, page, context):
        self.calls.append((page.id, context.current_page))
        return self.output


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    return CacheStore(str(tmp_path / "pages"), clock=clock)


@pytest.fixture
def renderer():
    return CountingRenderer()


@pytest.fixture
def orchestrator(store, renderer):
    return RenderOrchestrator(store, renderer)


def make_page(page_id=20, **template_fields):
    fields = {"cache_ttl": 300}
    fields.update(template_fields)
    return Page(page_id, Template(**fields))


GUEST = RequestContext()


class TestCaching:

    def test_second_render_is_cache_hit(self, orchestrator, renderer):
        page = make_page()

        first = orchestrator.render(page, GUEST)
        second = orchestrator.render(page, GUEST)

        assert first == second == b"X"
        assert len(renderer.calls) == 1

    def test_hit_within_ttl_and_miss_after(self, orchestrator, renderer, clock):
        page = make_page()
        orchestrator.render(page, GUEST)

        clock.now += 299
        orchestrator.render(page, GUEST)
        assert len(renderer.calls) == 1

        clock.now += 1
        orchestrator.render(page, GUEST)
        assert len(renderer.calls) == 2

    def test_zero_ttl_never_touches_store(self, store, renderer, monkeypatch):
        def forbidden(*args, **kwargs):
            raise AssertionError("store must not be used")

        monkeypatch.setattr(store, "get", forbidden)
        monkeypatch.setattr(store, "put", forbidden)
        orchestrator = RenderOrchestrator(store, renderer)
        page = make_page(cache_ttl=0)

        orchestrator.render(page, GUEST)
        orchestrator.render(page, GUEST)

        assert len(renderer.calls) == 2

    def test_preview_query_param_bypasses(self, orchestrator, renderer, store):
        page = make_page(no_cache_query_params=("preview",))
        request = RequestContext(query_params={"preview"})

        orchestrator.render(page, request)
        orchestrator.render(page, request)

        assert len(renderer.calls) == 2
        assert not store.exists(build_key(page.id))

    def test_variants_cached_separately(self, orchestrator, renderer, store):
        page = make_page()

        orchestrator.render(page, RequestContext(page_num=1))
        orchestrator.render(page, RequestContext(page_num=2))
        orchestrator.render(page, RequestContext(page_num=2))

        assert len(renderer.calls) == 2
        assert store.exists(build_key(page.id, page_num=2))

    def test_force_rebuild_skips_read_but_stores(self, orchestrator, renderer, store):
        page = make_page()
        orchestrator.render(page, GUEST)
        renderer.output = "Y"

        assert orchestrator.render(page, GUEST, force_rebuild=True) == b"Y"
        assert orchestrator.render(page, GUEST) == b"Y"
        assert len(renderer.calls) == 2

    def test_empty_output_not_cached(self, orchestrator, renderer, store):
        renderer.output = ""
        page = make_page()

        assert orchestrator.render(page, GUEST) == b""
        assert not store.exists(build_key(page.id))

    def test_bytes_output_passed_through(self, orchestrator, renderer):
        renderer.output = b"\x89PNG"
        assert orchestrator.render(make_page(), GUEST) == b"\x89PNG"

    def test_str_output_encoded(self, orchestrator, renderer):
        renderer.output = "café"
        assert orchestrator.render(make_page(), GUEST) == "café".encode("utf-8")


class TestFailures:

    def test_not_viewable_raises_before_cache(self, orchestrator, renderer, store):
        page = make_page()
        store.put(build_key(page.id), b"stale")
        page.is_viewable = False

        with pytest.raises(NotViewable):
            orchestrator.render(page, GUEST)
        assert renderer.calls == []

    def test_write_failure_still_returns_payload(self, orchestrator, renderer, store, monkeypatch):
        def fail(key, payload):
            raise StorageWriteFailure("disk full")

        monkeypatch.setattr(store, "put", fail)

        assert orchestrator.render(make_page(), GUEST) == b"X"

    def test_renderer_error_propagates_and_restores_context(self, store):
        def broken(page, context):
            raise RuntimeError("template error")

        orchestrator = RenderOrchestrator(store, broken)
        context = RenderContext()

        with pytest.raises(RuntimeError):
            orchestrator.render(make_page(), GUEST, context)
        assert context.current_page is None
        assert store.count_entries() == 0

    def test_without_store_renders_uncached(self, renderer):
        orchestrator = RenderOrchestrator(None, renderer)
        page = make_page()

        orchestrator.render(page, GUEST)
        orchestrator.render(page, GUEST)

        assert len(renderer.calls) == 2


class TestNestedRendering:

    def test_nested_render_sees_own_page_and_restores_parent(self, store):
        child = make_page(page_id=30)
        seen = []
        orchestrator = None

        def renderer(page, context):
            seen.append((page.id, context.current_page.id))
            if page.id == 20:
                inner = orchestrator.render(child, GUEST, context).decode()
                seen.append(("after", context.current_page.id))
                return f"[{inner}]"
            return "child"

        orchestrator = RenderOrchestrator(store, renderer)
        context = RenderContext()

        assert orchestrator.render(make_page(), GUEST, context) == b"[child]"
        assert seen == [(20, 20), (30, 30), ("after", 20)]
        assert context.current_page is None
