# -*- coding: utf-8 -*-
"""
HTTP fetching and disk caching utilities for market index values.
"""

import hashlib
import http.client
import logging
import os
import re
import urllib.error
import urllib.request

import config_data

logger = logging.getLogger(__name__)

URLOpener = urllib.request.build_opener()
URLOpener.addheaders = [
    ("Cache-Control", "no-transform"),
    ("User-Agent", config_data.http_user_agent),
]

_DJIA_PATTERN = re.compile(r"[0-9]+\.[0-9]{2}")


def get_djia_url(date, url_format=None):
    """
    Build the market index URL for a date.

    Args:
        date: datetime.date
        url_format: Optional format string with one %s (defaults to config)

    Returns:
        URL string, e.g. http://geo.crox.net/djia/2008/03/25
    """
    url_format = url_format or config_data.djia_source_url_format
    return url_format % date.strftime("%Y/%m/%d")


def fetch_text(url, timeout=30, max_size=1024):
    """
    Fetch URL as text with timeout and size limit.

    Args:
        url: URL to fetch
        timeout: Connection timeout in seconds
        max_size: Maximum download size in bytes

    Returns:
        Response body as string

    Raises:
        urllib.error.URLError: On network errors (HTTPError on 404 etc.)
        http.client.HTTPException: On garbled or truncated responses
        LookupError: If the response declares an unknown charset
        ValueError: If content exceeds max_size
    """
    httpcon = URLOpener.open(url, timeout=timeout)
    try:
        content = httpcon.read(max_size)
        if httpcon.read(1):
            raise ValueError(f"Content exceeds max size of {max_size} bytes")
        charset = httpcon.headers.get_content_charset() or "utf-8"
    finally:
        httpcon.close()

    return content.decode(charset, errors="replace")


def _cache_path(url):
    cache_key = hashlib.sha256(url.encode("utf-8")).hexdigest()
    return os.path.join(config_data.cache_prefix, cache_key)


def get_cached(url):
    """
    Get content from cache if available.

    Args:
        url: URL to check

    Returns:
        Cached string or None if not cached
    """
    cache_path = _cache_path(url)

    if os.path.isfile(cache_path):
        with open(cache_path, "r", encoding="utf-8") as f:
            return f.read()

    return None


def store_cached(url, content):
    """
    Store content in cache.

    Args:
        url: URL key
        content: String to cache
    """
    os.makedirs(config_data.cache_prefix, exist_ok=True)

    with open(_cache_path(url), "w", encoding="utf-8") as f:
        f.write(content)


def get_djia(date, fetch_fn=None, use_cache=True):
    """
    Look up the opening market index for a date.

    Args:
        date: datetime.date (already adjusted by the 30W rule)
        fetch_fn: Optional (url, timeout, max_size) -> str
                  Defaults to fetch_text
        use_cache: Read and write the disk cache

    Returns:
        Index as published (e.g. "12948.96"), or None when unavailable
    """
    fetch_fn = fetch_fn or fetch_text
    url = get_djia_url(date)

    if use_cache:
        cached = get_cached(url)
        if cached:
            return cached

    try:
        answer = fetch_fn(
            url, config_data.djia_timeout, config_data.djia_max_size
        ).strip()
    except urllib.error.HTTPError as e:
        logger.warning("No market index for %s: HTTP %s", date, e.code)
        return None
    except (
        urllib.error.URLError,
        http.client.HTTPException,
        OSError,
        LookupError,
        ValueError,
    ) as e:
        logger.warning("Failed to fetch %s: %s", url, e)
        return None

    if not _DJIA_PATTERN.fullmatch(answer):
        logger.warning("Malformed market index for %s: %r", date, answer[:40])
        return None

    if use_cache:
        try:
            store_cached(url, answer)
        except OSError as e:
            logger.warning("Could not cache %s: %s", url, e)

    return answer
