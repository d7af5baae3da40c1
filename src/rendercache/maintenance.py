#!/usr/bin/env python3
"""
Render Cache Maintenance

Administrative bulk operations on the page cache directory.

Usage:
    rendercache-admin count
    rendercache-admin clear
    rendercache-admin clear-page <page_id>

The cache location comes from the config file named by RENDERCACHE_CONFIG
(default: config/rendercache.defaults.yml) plus the usual environment
overrides.
"""

import logging
import sys

from .config import load_config
from .errors import ConfigurationError, StorageWriteFailure
from .store import CacheStore

logger = logging.getLogger(__name__)

USAGE = "usage: rendercache-admin count | clear | clear-page <page_id>"


def open_configured_store() -> CacheStore:
    config = load_config()
    logging.getLogger().setLevel(config.log_level)
    return CacheStore(
        str(config.cache_dir),
        dir_mode=config.permissions.dirs,
        file_mode=config.permissions.files,
    )


def main(argv=None):
    """Entry point for the maintenance command."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in {"count", "clear", "clear-page"}:
        print(USAGE, file=sys.stderr)
        return 1

    command = args[0]
    page_id = None
    if command == "clear-page":
        if len(args) != 2 or not args[1].isdigit():
            print(USAGE, file=sys.stderr)
            return 1
        page_id = int(args[1])

    try:
        store = open_configured_store()
    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        logger.error(f"Cannot open render cache: {e}")
        return 1

    try:
        if command == "count":
            print(f"{store.count_cached_pages()} pages, {store.count_entries()} entries")
        elif command == "clear":
            cleared = store.expire_all()
            logger.info(f"Cleared {cleared} entries from {store.cache_dir}")
        else:
            cleared = store.remove_all_for_page(page_id)
            logger.info(f"Cleared {cleared} entries for page {page_id}")
    except StorageWriteFailure as e:
        logger.error(f"Maintenance failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
