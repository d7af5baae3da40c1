"""
Cache Key Generation — Request-Aware Page Keys

Implements:
- build_key(page_id, segments, page_num, language) → CacheKey
- Same page + same variation = identical key (cache hit)
- Any difference in URL segments, page number or non-default language
  produces a different key (cache miss)
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = "+"
TOKEN_SEPARATOR = "~"
SAFE_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_.-")

FILENAME_PREFIX = "v"
FILENAME_SUFFIX = ".cache"
MAX_FILENAME_VARIANT = 200


def sanitize_segment(segment: str) -> str:
    """
    Make a URL segment safe for use in file names.

    Unsafe bytes are percent-escaped instead of stripped, so two different
    segments never sanitize to the same string. Separators and ``%`` are
    outside SAFE_CHARS and therefore always escaped.
    """
    if all(ch in SAFE_CHARS for ch in segment):
        return segment
    out = []
    for byte in segment.encode("utf-8"):
        ch = chr(byte)
        out.append(ch if ch in SAFE_CHARS else f"%{byte:02X}")
    return "".join(out)


@dataclass(frozen=True)
class CacheKey:
    page_id: int
    variant: str = ""

    @property
    def filename(self) -> str:
        """File name for this variant inside the page's directory."""
        if len(self.variant) > MAX_FILENAME_VARIANT:
            digest = hashlib.sha256(self.variant.encode("utf-8")).hexdigest()
            return f"h{digest}{FILENAME_SUFFIX}"
        return f"{FILENAME_PREFIX}{self.variant}{FILENAME_SUFFIX}"

    def __str__(self) -> str:
        return f"{self.page_id}/{self.variant}" if self.variant else str(self.page_id)


def build_key(
    page_id: int,
    url_segments: Sequence[str] = (),
    page_num: int = 1,
    language_id: Optional[Any] = None,
    is_default_language: bool = True,
) -> CacheKey:
    """
    Build the composite key for one rendered variant of a page.

    Design:
        variant = seg1+seg2[~page{N}][~lang{id}]
        - segments first, then pagination, then language (fixed order)
        - empty segments carry no variation and are dropped
        - no variation at all → CacheKey(page_id, "")
    """
    if page_num < 1:
        raise ValueError(f"page_num must be >= 1, got {page_num}")

    has_language = language_id is not None and not is_default_language
    if not url_segments and page_num == 1 and not has_language:
        return CacheKey(int(page_id))

    # empty segments come from doubled slashes and never change the output;
    # the key is injective over the non-empty segments
    tokens = [SEGMENT_SEPARATOR.join(sanitize_segment(s) for s in url_segments if s)]
    if page_num > 1:
        tokens.append(f"page{page_num}")
    if has_language:
        tokens.append(f"lang{sanitize_segment(str(language_id))}")

    key = CacheKey(int(page_id), TOKEN_SEPARATOR.join(tokens))
    logger.debug(f"Generated key: {key} (segments={list(url_segments)}, page={page_num}, lang={language_id})")
    return key


def key_for_request(page_id: int, request) -> CacheKey:
    """Build the key from a RequestContext."""
    return build_key(
        page_id,
        url_segments=request.url_segments,
        page_num=request.page_num,
        language_id=request.language_id,
        is_default_language=request.is_default_language,
    )
