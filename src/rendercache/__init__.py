"""
Page Render Cache
Filesystem-backed cache for rendered pages with hierarchical invalidation.
"""

from .allowance import CacheAllowancePolicy
from .core import RenderCache
from .invalidation import InvalidationCoordinator
from .key_builder import CacheKey, build_key
from .models import InvalidationScope, Page, RenderContext, RequestContext, Template
from .orchestrator import RenderOrchestrator
from .store import CacheStore

__all__ = [
    'CacheAllowancePolicy',
    'CacheKey',
    'CacheStore',
    'InvalidationCoordinator',
    'InvalidationScope',
    'Page',
    'RenderCache',
    'RenderContext',
    'RenderOrchestrator',
    'RequestContext',
    'Template',
    'build_key',
]
