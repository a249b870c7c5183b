# -*- coding: utf-8 -*-
"""
Geohashing algorithm: market date selection (30W rule) and coordinate offsets.
"""

import datetime
import hashlib
import math

# From this date on, graticules east of -30 longitude use the previous
# day's opening index.
W30_RULE_START = datetime.date(2008, 5, 27)

W30_LONGITUDE = -30


def is_negative(value):
    """
    Check if a float is negative, counting -0.0 as negative.

    -0.0 < 0 is False, so the sign bit has to be read with copysign.
    """
    return math.copysign(1.0, value) < 0


def dow_date(lat, lon, date):
    """
    Date whose market index applies to a geohash (the geohashing 30W rule).

    East of -30 longitude, from 2008-05-27 on, the previous day's index is
    used; everywhere else the index of the geohash date itself.

    Args:
        lat: Latitude (unused, kept for a uniform signature)
        lon: Longitude in degrees
        date: Date of the geohash

    Returns:
        datetime.date for the market index lookup
    """
    if date >= W30_RULE_START and lon > W30_LONGITUDE:
        return date - datetime.timedelta(days=1)
    return date


def _hash_fractions(date, djia):
    """Split the MD5 of "YYYY-MM-DD-<djia>" into two fractions in [0, 1)."""
    seed = f"{date:%Y-%m-%d}-{djia}".encode("ascii")
    digest = hashlib.md5(seed).hexdigest()
    return int(digest[:16], 16) / 16**16, int(digest[16:], 16) / 16**16


def _offset(degrees, fraction):
    return math.copysign(abs(math.trunc(degrees)) + fraction, degrees)


def geohash(lat, lon, date, djia):
    """
    Compute the geohash point for a graticule.

    Args:
        lat: Graticule latitude (integer degrees, sign significant)
        lon: Graticule longitude (integer degrees, sign significant)
        date: Date of the geohash (not the market date)
        djia: Market index string exactly as published, e.g. "12948.96"

    Returns:
        (lat, lon) tuple of floats
    """
    lat_fraction, lon_fraction = _hash_fractions(date, djia)
    return _offset(lat, lat_fraction), _offset(lon, lon_fraction)
