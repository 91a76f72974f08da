"""
Cache utilities for PL Predictor
Caches parsed feed listings per date window to avoid unnecessary API calls
"""

import logging
import time

from flask import current_app

from app import cache

logger = logging.getLogger(__name__)

# Cache entry that indexes the feed windows currently cached
FEED_INDEX_KEY = "feed_matches_index"


def make_feed_cache_key(date_from=None, date_to=None):
    """Generate a cache key for a feed date window"""
    start = date_from.isoformat() if date_from else "all"
    end = date_to.isoformat() if date_to else "all"
    return f"matches_{start}_{end}"


def _feed_timeout():
    return current_app.config.get("FEED_CACHE_TIMEOUT", 300)


def _get_index():
    return cache.get(FEED_INDEX_KEY) or {}


def _set_index(index):
    # The index outlives the entries it describes; stale rows are filtered on read
    cache.set(FEED_INDEX_KEY, index, timeout=0)


def get_cached_matches(client, date_from=None, date_to=None, force_refresh=False):
    """
    Get parsed feed matches from the cache or fetch them from the API

    Args:
        client: FootballDataClient used on a cache miss
        force_refresh: skip the cache lookup and always hit the API

    Returns:
        FeedMatchList: (matches, rejected)

    Raises:
        FootballDataError: if the feed has to be fetched and fails
    """
    cache_key = make_feed_cache_key(date_from, date_to)

    if not force_refresh:
        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Feed cache hit for key: {cache_key}")
            return cached

    feed = client.fetch_matches(date_from=date_from, date_to=date_to)

    cache.set(cache_key, feed, timeout=_feed_timeout())
    index = _get_index()
    index[cache_key] = {"timestamp": time.time(), "matches": len(feed.matches)}
    _set_index(index)
    logger.debug(f"Feed cache set for key: {cache_key}")

    return feed


def invalidate_feed_cache(date_from=None, date_to=None):
    """
    Invalidate a single feed window, or every cached window if no dates are given
    """
    index = _get_index()

    if date_from and date_to:
        cache_key = make_feed_cache_key(date_from, date_to)
        cache.delete(cache_key)
        index.pop(cache_key, None)
    else:
        for cache_key in list(index):
            cache.delete(cache_key)
        index = {}

    _set_index(index)
    logger.info(
        f"Feed cache invalidated for "
        f"{make_feed_cache_key(date_from, date_to) if date_from and date_to else 'all windows'}"
    )


def get_feed_cache_stats():
    """Get feed cache statistics"""
    index = _get_index()
    now = time.time()
    timeout = _feed_timeout()

    timestamps = [entry["timestamp"] for entry in index.values()]
    valid_entries = [
        entry for entry in index.values() if now - entry["timestamp"] < timeout
    ]

    return {
        "type": current_app.config.get("CACHE_TYPE", "Unknown"),
        "timeout": timeout,
        "total_entries": len(index),
        "valid_entries": len(valid_entries),
        "oldest_entry": min(timestamps) if timestamps else None,
        "newest_entry": max(timestamps) if timestamps else None,
        "total_matches": sum(entry["matches"] for entry in valid_entries),
    }
