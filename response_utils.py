# -*- coding: utf-8 -*-
"""
Response composition: reply text for each kind of query.
Geohash responses make network calls (market index lookup).
"""

import logging

import geohash_utils
import http_utils
from inquiry_utils import GeohashQuery
from inquiry_utils import UsageQuery

logger = logging.getLogger(__name__)

USAGE_TEXT = """Send a date and a graticule to get that day's geohash:

    YYYY-MM-DD LAT, LON

for example "2008-05-21 42, -71". Coordinates are whole degrees;
use a minus sign for south and west (-0 is valid)."""

_DIRECTION_SYMBOLS = {"lat": ("N", "S"), "lon": ("E", "W")}


def dms(value, orient):
    """
    Degree-minute-second format of a coordinate.

    Args:
        value: Coordinate in decimal degrees (-0.0 is south/west)
        orient: "lat" or "lon"

    Returns:
        String like N42 23' 6.360"
    """
    positive, negative = _DIRECTION_SYMBOLS[orient]
    dirsym = negative if geohash_utils.is_negative(value) else positive

    value = abs(value)
    degrees = int(value // 1)
    value = 60 * (value % 1)
    minutes = int(value // 1)
    seconds = 60 * (value % 1)

    return f"{dirsym}{degrees} {minutes}' {seconds:.3f}\""


def geohash_response(query, fetch_djia=None):
    """
    Produce the reply text for a geohash query.

    Args:
        query: GeohashQuery
        fetch_djia: Optional date -> index string or None
                    Defaults to http_utils.get_djia

    Returns:
        Reply text, or None if the market index is not available (yet)
    """
    fetch_djia = fetch_djia or http_utils.get_djia

    market_date = geohash_utils.dow_date(query.lat, query.lon, query.date)
    djia = fetch_djia(market_date)
    if djia is None:
        logger.warning("Market index for %s not available.", market_date)
        return None

    out_lat, out_lon = geohash_utils.geohash(query.lat, query.lon, query.date, djia)

    return "\n".join(
        [
            f"Geohash for {query.date:%Y-%m-%d}",
            f"{out_lat:.6f}, {out_lon:.6f}",
            "or",
            f"{dms(out_lat, 'lat')}, {dms(out_lon, 'lon')}",
        ]
    )


def compose_response(query, fetch_djia=None):
    """
    Produce the reply text for any query.

    Returns:
        Reply text, or None when the answer cannot be produced this cycle
    """
    match query:
        case UsageQuery():
            return USAGE_TEXT
        case GeohashQuery():
            return geohash_response(query, fetch_djia)
        case _:
            raise TypeError(f"Not a query: {query!r}")
